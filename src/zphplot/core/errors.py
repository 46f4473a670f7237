from __future__ import annotations


class ZphPlotError(Exception):
    """Base class for errors raised by zphplot."""


class InvalidInputError(ZphPlotError, ValueError):
    """Input of the wrong kind, or a covariate selection that does not exist."""


class SingularFitError(ZphPlotError, ValueError):
    """The spline design matrix has lower rank than the requested degrees of freedom."""
