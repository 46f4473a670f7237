from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from .errors import InvalidInputError


def load_dataset(path: str | Path) -> pd.DataFrame:
    path = Path(path)
    if path.suffix.lower() in {".csv"}:
        return pd.read_csv(path)
    if path.suffix.lower() in {".parquet"}:
        return pd.read_parquet(path)
    raise InvalidInputError(f"Unsupported dataset format: {path.suffix}. Use .csv or .parquet")


def validate_survival_data(
    df: pd.DataFrame,
    *,
    duration_col: str,
    event_col: str,
    covariates: Optional[Sequence[str]] = None,
) -> None:
    """Check that duration/event/covariate columns exist and are numeric.

    Durations must be positive (a log time transform is applied to them) and
    at least one event must be observed.
    """

    covariates = list(covariates) if covariates is not None else []
    missing: List[str] = []
    for col in [duration_col, event_col] + covariates:
        if col not in df.columns:
            missing.append(col)
    if missing:
        raise InvalidInputError(f"Dataset is missing required columns: {missing}")

    for col in [duration_col, event_col] + covariates:
        coerced = pd.to_numeric(df[col], errors="coerce")
        if coerced.isna().any():
            bad_rows = coerced[coerced.isna()].index[:10].tolist()
            raise InvalidInputError(f"Column '{col}' must be numeric. Example bad rows: {bad_rows}")

    durations = pd.to_numeric(df[duration_col])
    if (durations <= 0).any():
        bad_rows = durations[durations <= 0].index[:10].tolist()
        raise InvalidInputError(
            f"Durations in '{duration_col}' must be positive. Example bad rows: {bad_rows}"
        )

    events = pd.to_numeric(df[event_col])
    if not events.isin([0, 1]).all():
        raise InvalidInputError(f"Event column '{event_col}' must only contain 0/1.")
    if events.sum() == 0:
        raise InvalidInputError(f"Event column '{event_col}' has no observed events.")


def model_frame(
    df: pd.DataFrame,
    *,
    duration_col: str,
    event_col: str,
    covariates: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Return the numeric columns a Cox model is fitted on.

    Without ``covariates`` every other column is used. Rows with missing values
    are dropped.
    """

    if covariates is None:
        covariates = [c for c in df.columns if c not in (duration_col, event_col)]
    covariates = list(covariates)
    if not covariates:
        raise InvalidInputError("At least one covariate is required.")

    frame = df[[duration_col, event_col] + covariates].dropna(axis=0).reset_index(drop=True)
    validate_survival_data(frame, duration_col=duration_col, event_col=event_col, covariates=covariates)
    return frame.apply(pd.to_numeric)
