"""Proportional-hazards diagnostics from a fitted lifelines Cox model."""
from __future__ import annotations

import logging
from typing import Union

import numpy as np
import pandas as pd
from lifelines import CoxPHFitter, KaplanMeierFitter
from lifelines.statistics import proportional_hazard_test
from scipy.stats import rankdata

from zphplot.core.config import TimeTransform
from zphplot.core.errors import InvalidInputError
from zphplot.stats.result import DiagnosticResult

logger = logging.getLogger(__name__)


def km_transform(durations: pd.Series, events: pd.Series, event_times: np.ndarray) -> np.ndarray:
    """``1 - S(t-)`` at each event time, with S the Kaplan-Meier estimate of all subjects."""

    kmf = KaplanMeierFitter().fit(durations, event_observed=events)
    sf = kmf.survival_function_.iloc[:, 0]
    timeline = sf.index.to_numpy(dtype=float)
    surv = sf.to_numpy(dtype=float)

    # Survival just before each event time (left limit of the step function).
    pos = np.searchsorted(timeline, event_times, side="left")
    before = np.where(pos > 0, surv[np.maximum(pos - 1, 0)], 1.0)
    return 1.0 - before


def transform_times(
    transform: Union[str, TimeTransform],
    durations: pd.Series,
    events: pd.Series,
    event_times: np.ndarray,
) -> np.ndarray:
    transform = TimeTransform(transform)
    if transform == TimeTransform.identity:
        return event_times.copy()
    if transform == TimeTransform.log:
        return np.log(event_times)
    if transform == TimeTransform.rank:
        return rankdata(event_times)
    return km_transform(durations, events, event_times)


def cox_zph(
    fitter: CoxPHFitter,
    training_df: pd.DataFrame,
    *,
    transform: Union[str, TimeTransform] = TimeTransform.km,
) -> DiagnosticResult:
    """Test the proportional hazards assumption of a fitted Cox model.

    Parameters
    ----------
    fitter:
        A fitted :class:`lifelines.CoxPHFitter`.
    training_df:
        The dataframe the model was fitted on.
    transform:
        Time transform applied before testing and plotting: ``km`` (default),
        ``rank``, ``log`` or ``identity``.

    Returns
    -------
    DiagnosticResult
        One row per event, ordered by event time. ``y`` holds the scaled
        Schoenfeld residuals plus the coefficients, i.e. estimates of beta(t).
    """

    if not isinstance(fitter, CoxPHFitter):
        raise InvalidInputError(f"Can't handle an object of class {type(fitter).__name__}")
    if not hasattr(fitter, "params_"):
        raise InvalidInputError("The Cox model has not been fitted.")
    try:
        transform = TimeTransform(transform)
    except ValueError:
        raise InvalidInputError(
            f"Unknown time transform '{transform}'. Use one of {[t.value for t in TimeTransform]}"
        ) from None

    duration_col = fitter.duration_col
    event_col = fitter.event_col
    durations = training_df[duration_col].astype(float)
    if event_col is None:
        events = pd.Series(True, index=training_df.index)
    else:
        events = training_df[event_col].astype(bool)

    scaled = fitter.compute_residuals(training_df, kind="scaled_schoenfeld")
    names = list(fitter.params_.index)
    scaled = scaled[names]

    event_times = durations.loc[scaled.index].to_numpy(dtype=float)
    order = np.argsort(event_times, kind="stable")
    event_times = event_times[order]
    beta_t = scaled.to_numpy(dtype=float)[order] + fitter.params_.to_numpy(dtype=float)

    x = transform_times(transform, durations, events, event_times)

    test = proportional_hazard_test(fitter, training_df, time_transform=transform.value)
    p_values = np.atleast_1d(np.asarray(test.p_value, dtype=float))
    logger.debug("cox_zph: %d events, %d covariates, transform=%s", len(event_times), len(names), transform.value)

    return DiagnosticResult(
        x=x,
        y=beta_t,
        var=fitter.variance_matrix_.loc[names, names].to_numpy(dtype=float),
        p_values=p_values,
        names=tuple(str(n) for n in names),
        transform=transform.value,
        times=event_times,
    )


def zph_table(result: DiagnosticResult) -> pd.DataFrame:
    """Per-covariate p-values as a dataframe."""
    return pd.DataFrame({"covariate": list(result.names), "p": result.p_values})
