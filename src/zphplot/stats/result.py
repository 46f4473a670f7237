from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from zphplot.core.config import TimeTransform
from zphplot.core.errors import InvalidInputError


def _frozen(values, *, name: str, ndim: int) -> np.ndarray:
    try:
        arr = np.array(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"'{name}' must be numeric.") from e
    if arr.ndim != ndim:
        raise InvalidInputError(f"'{name}' must be {ndim}-dimensional, got shape {arr.shape}.")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class DiagnosticResult:
    """Output of a proportional-hazards goodness-of-fit test.

    One row per event, one column per covariate.

    x:
        Transformed event times, shape ``(d,)``.
    y:
        Beta(t) estimates, i.e. scaled Schoenfeld residuals plus the fitted
        coefficient, shape ``(d, nvar)``.
    var:
        Covariance matrix of the coefficients, shape ``(nvar, nvar)``.
    p_values:
        Per-covariate test p-values.
    names:
        Covariate names (column labels of ``y``).
    transform:
        ``"identity"``, ``"log"`` or the name of any other monotone transform
        (``"km"``, ``"rank"``, ...).
    times:
        Untransformed event times used to label a non-identity axis. Defaults
        to ``x``.
    """

    x: np.ndarray
    y: np.ndarray
    var: np.ndarray
    p_values: np.ndarray
    names: Tuple[str, ...]
    transform: str = TimeTransform.identity.value
    times: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        x = _frozen(self.x, name="x", ndim=1)
        y = _frozen(self.y, name="y", ndim=2)
        var = _frozen(self.var, name="var", ndim=2)
        p_values = _frozen(self.p_values, name="p_values", ndim=1)
        names = tuple(str(n) for n in self.names)

        d, nvar = y.shape
        if d == 0 or nvar == 0:
            raise InvalidInputError("Diagnostic result holds no events or no covariates.")
        if x.shape != (d,):
            raise InvalidInputError(f"x has {x.shape[0]} entries but y has {d} rows.")
        if var.shape != (nvar, nvar):
            raise InvalidInputError(f"var must have shape ({nvar}, {nvar}), got {var.shape}.")
        if p_values.shape != (nvar,):
            raise InvalidInputError(f"Expected {nvar} p-values, got {p_values.shape[0]}.")
        if len(names) != nvar:
            raise InvalidInputError(f"Expected {nvar} covariate names, got {len(names)}.")
        if len(set(names)) != nvar:
            raise InvalidInputError(f"Covariate names must be unique: {list(names)}")
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
            raise InvalidInputError("x and y must be finite.")

        times = x if self.times is None else _frozen(self.times, name="times", ndim=1)
        if times.shape != (d,):
            raise InvalidInputError(f"times has {times.shape[0]} entries but y has {d} rows.")

        transform = self.transform.value if isinstance(self.transform, TimeTransform) else str(self.transform)

        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "var", var)
        object.__setattr__(self, "p_values", p_values)
        object.__setattr__(self, "names", names)
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "transform", transform)

    @property
    def n_events(self) -> int:
        return int(self.y.shape[0])

    @property
    def nvar(self) -> int:
        return int(self.y.shape[1])

    def index_of(self, name: str) -> int:
        """Return the 0-based column of covariate ``name``."""
        try:
            return self.names.index(name)
        except ValueError:
            raise InvalidInputError(f"Unknown covariate '{name}'. Available: {list(self.names)}") from None

    @classmethod
    def from_arrays(
        cls,
        *,
        x: Sequence[float],
        y,
        var,
        p_values: Sequence[float],
        names: Optional[Sequence[str]] = None,
        transform: str = TimeTransform.identity.value,
        times: Optional[Sequence[float]] = None,
    ) -> "DiagnosticResult":
        """Build a result from plain arrays, naming unnamed covariates ``V1, V2, ...``."""

        y = np.asarray(y, dtype=float)
        if y.ndim == 1:
            y = y.reshape(-1, 1)
        var = np.atleast_2d(np.asarray(var, dtype=float))
        if names is None:
            names = [f"V{i + 1}" for i in range(y.shape[1])]
        return cls(
            x=x,
            y=y,
            var=var,
            p_values=np.atleast_1d(np.asarray(p_values, dtype=float)),
            names=tuple(names),
            transform=transform,
            times=times,
        )
