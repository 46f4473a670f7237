from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from zphplot.core.config import GridConfig, PlotConfig, Theme, TimeTransform
from zphplot.core.errors import InvalidInputError
from zphplot.stats.result import DiagnosticResult
from zphplot.stats.spline import fit_spline_smoother
from zphplot.viz.chart import ChartBuilder, ChartSpec, with_theme

logger = logging.getLogger(__name__)

Selector = Union[int, str]

N_BREAKS = 8


class ZphPlots(Mapping):
    """Ordered, read-only collection of residual charts keyed by covariate name."""

    def __init__(self, charts: Sequence[ChartSpec]) -> None:
        self._charts: Dict[str, ChartSpec] = {}
        for spec in charts:
            if not isinstance(spec, ChartSpec):
                raise TypeError(f"Expected ChartSpec, got {type(spec).__name__}")
            if spec.name in self._charts:
                raise ValueError(f"Duplicate chart for covariate '{spec.name}'.")
            self._charts[spec.name] = spec

    def __getitem__(self, name: str) -> ChartSpec:
        return self._charts[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._charts)

    def __len__(self) -> int:
        return len(self._charts)

    def __repr__(self) -> str:
        return f"ZphPlots({list(self._charts)})"

    @property
    def names(self) -> List[str]:
        return list(self._charts)

    def at(self, position: int) -> ChartSpec:
        return list(self._charts.values())[position]

    def with_theme(self, theme: Theme) -> "ZphPlots":
        return ZphPlots([with_theme(spec, theme) for spec in self._charts.values()])

    def print(self, grid: Optional[GridConfig] = None, *, out_path: Optional[str | Path] = None):
        """Lay the charts out on one aligned grid; see :func:`zphplot.viz.grid.print_grid`."""
        from zphplot.viz.grid import print_grid

        return print_grid(self, grid=grid, out_path=out_path)

    def save(self, out_path: str | Path, grid: Optional[GridConfig] = None) -> Path:
        self.print(grid, out_path=out_path)
        return Path(out_path)

    def _repr_png_(self) -> bytes:
        import io

        rendering = self.print()
        buf = io.BytesIO()
        rendering.figure.savefig(buf, format="png")
        return buf.getvalue()


def select_covariates(result: DiagnosticResult, var: Optional[Union[Selector, Sequence[Selector]]]) -> List[int]:
    """Resolve a covariate selection to 0-based column indices.

    ``var`` may hold 1-based indices or covariate names (not both). ``None``
    selects every covariate in order.
    """

    nvar = result.nvar
    if var is None:
        return list(range(nvar))
    if isinstance(var, (int, np.integer, str)):
        var = [var]
    var = list(var)
    if not var:
        raise InvalidInputError("Invalid variable requested: empty selection")

    if all(isinstance(v, str) for v in var):
        missing = [v for v in var if v not in result.names]
        if missing:
            raise InvalidInputError(f"Invalid variable requested: {missing}. Available: {list(result.names)}")
        return [result.index_of(v) for v in var]

    if all(isinstance(v, (int, np.integer)) and not isinstance(v, bool) for v in var):
        bad = [int(v) for v in var if v < 1 or v > nvar]
        if bad:
            raise InvalidInputError(f"Invalid variable requested: {bad} is outside [1, {nvar}]")
        return [int(v) - 1 for v in var]

    raise InvalidInputError(f"Invalid variable requested: {var!r} (use 1-based indices or names)")


def _is_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def _resolve_df(df) -> int:
    # A sequence of degrees of freedom uses the largest one.
    if _is_int(df):
        return int(df)
    values = [] if isinstance(df, (str, bytes)) else df
    try:
        values = list(values)
    except TypeError:
        values = []
    if not values or not all(_is_int(v) for v in values):
        raise InvalidInputError(f"df must be an integer or a sequence of integers, got {df!r}")
    return int(max(values))


def _signif(values: np.ndarray, digits: int) -> np.ndarray:
    return np.array([float(f"{v:.{digits}g}") for v in values])


def _format_break(value: float) -> str:
    return np.format_float_positional(value, trim="-")


def time_axis_breaks(x: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, List[str]]:
    """Tick positions on the transformed scale, labelled in original time units.

    Eight evenly spaced positions across the transformed range are mapped back
    to time, rounded to two significant digits, and mapped forward again.
    """

    _, first = np.unique(x, return_index=True)
    keep = np.sort(first)
    xs, ts = x[keep], times[keep]
    order = np.argsort(xs)
    xs, ts = xs[order], ts[order]

    grid = np.linspace(xs.min(), xs.max(), 2 * N_BREAKS + 1)[1::2]
    rounded = _signif(np.interp(grid, xs, ts), 2)

    t_order = np.argsort(ts)
    positions = np.interp(rounded, ts[t_order], xs[t_order], left=np.nan, right=np.nan)
    ok = np.isfinite(positions)
    return positions[ok], [_format_break(v) for v in rounded[ok]]


def build_zph_plots(
    result: DiagnosticResult,
    *,
    resid: bool = True,
    se: bool = True,
    df: Union[int, Sequence[int]] = 4,
    nsmo: int = 40,
    var: Optional[Union[Selector, Sequence[Selector]]] = None,
    theme: Theme = Theme.classic,
    config: Optional[PlotConfig] = None,
) -> ZphPlots:
    """Build one scaled Schoenfeld residual chart per selected covariate.

    Parameters
    ----------
    result:
        A :class:`DiagnosticResult` (for instance from :func:`zphplot.stats.zph.cox_zph`).
    resid:
        Overlay the residuals on the smooth fit.
    se:
        Add dashed confidence bands at two standard errors.
    df:
        Degrees of freedom of the natural spline; ``df=2`` is a linear fit.
        A sequence uses its maximum.
    nsmo:
        Number of points used to draw the fitted spline.
    var:
        Covariates to plot, as 1-based indices or names. Defaults to all.
    theme:
        Chart theme.
    config:
        If given, supplies all of the above options instead.
    """

    if config is not None:
        resid, se, df, nsmo, var, theme = (
            config.resid,
            config.se,
            config.df,
            config.nsmo,
            config.var,
            config.theme,
        )

    if not isinstance(result, DiagnosticResult):
        raise InvalidInputError(f"Can't handle an object of class {type(result).__name__}")
    df = _resolve_df(df)
    try:
        theme = Theme(theme)
    except ValueError:
        raise InvalidInputError(f"Unknown theme {theme!r}. Choose from {[t.value for t in Theme]}") from None

    selected = select_covariates(result, var)
    logger.debug("plotting covariates %s", [result.names[i] for i in selected])

    smoother = fit_spline_smoother(result.x, df=df, nsmo=nsmo)
    pred_x = smoother.pred_x
    seval = smoother.variance_factor() if se else None

    xx = result.x
    transform = result.transform
    breaks = None
    if transform == TimeTransform.log.value:
        xx = np.exp(xx)
        pred_x = np.exp(pred_x)
    elif transform != TimeTransform.identity.value:
        breaks = time_axis_breaks(result.x, result.times)

    charts: List[ChartSpec] = []
    for i in selected:
        name = result.names[i]
        y = result.y[:, i]
        yhat = smoother.fitted(y)
        pval = round(float(result.p_values[i]), 4)

        builder = ChartBuilder(name, theme=theme).title(f"Schoenfeld Individual Test p: {pval:g}")
        builder.line(pred_x, yhat, role="fitted")

        yr = [yhat.min(), yhat.max()]
        if resid:
            yr += [y.min(), y.max()]
            builder.points(xx, y, role="residuals", color="red")

        if se:
            band = 2.0 * np.sqrt(result.var[i, i] * seval)
            yup = yhat + band
            ylow = yhat - band
            yr += [ylow.min(), yup.max()]
            builder.line(pred_x, yup, role="upper", linestyle="dashed")
            builder.line(pred_x, ylow, role="lower", linestyle="dashed")

        builder.labels(x="Time", y=f"Beta(t) for {name}").ylim(min(yr), max(yr))
        if transform == TimeTransform.log.value:
            builder.log_x()
        elif breaks is not None:
            builder.x_breaks(*breaks)

        charts.append(builder.build())

    return ZphPlots(charts)
