from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from zphplot.core.config import GridConfig, Theme
from zphplot.viz.chart import ChartSpec
from zphplot.viz.residual_plots import ZphPlots

logger = logging.getLogger(__name__)

THEME_RC: Dict[Theme, Dict[str, Any]] = {
    Theme.classic: {
        "axes.facecolor": "white",
        "axes.edgecolor": "black",
        "axes.grid": False,
        "axes.spines.top": False,
        "axes.spines.right": False,
    },
    Theme.bw: {
        "axes.facecolor": "white",
        "axes.edgecolor": "#333333",
        "axes.grid": True,
        "grid.color": "#ebebeb",
        "grid.linewidth": 0.8,
    },
    Theme.gray: {
        "axes.facecolor": "#ebebeb",
        "axes.edgecolor": "white",
        "axes.grid": True,
        "grid.color": "white",
        "grid.linewidth": 0.8,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "axes.spines.left": False,
        "axes.spines.bottom": False,
    },
    Theme.minimal: {
        "axes.facecolor": "white",
        "axes.grid": True,
        "grid.color": "#ebebeb",
        "grid.linewidth": 0.8,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "axes.spines.left": False,
        "axes.spines.bottom": False,
    },
}


@dataclass(frozen=True)
class GridRendering:
    """A laid-out figure; ``left_margins`` are in pixels, one per panel."""

    figure: Any
    axes: Tuple[Any, ...]
    names: Tuple[str, ...]
    left_margins: Tuple[float, ...]
    shape: Tuple[int, int]


def grid_shape(n: int, ncol: Optional[int] = None, nrow: Optional[int] = None) -> Tuple[int, int]:
    """Return ``(nrow, ncol)`` for ``n`` panels, filling in whatever is not given."""

    if n < 1:
        raise ValueError("Nothing to arrange.")
    if ncol is None and nrow is None:
        ncol = math.ceil(math.sqrt(n))
    if ncol is None:
        ncol = math.ceil(n / nrow)
    if nrow is None:
        nrow = math.ceil(n / ncol)
    if nrow * ncol < n:
        raise ValueError(f"A {nrow}x{ncol} grid cannot hold {n} plots.")
    return nrow, ncol


def render_chart(spec: ChartSpec, ax) -> None:
    """Draw ``spec`` onto a matplotlib axes."""

    for layer in spec.layers:
        if layer.kind == "line":
            ax.plot(layer.x, layer.y, color=layer.color, linestyle=layer.linestyle, linewidth=1.2)
        else:
            ax.scatter(layer.x, layer.y, color=layer.color, s=10, zorder=3)

    ax.set_title(spec.title, loc="left", fontsize="medium")
    ax.set_xlabel(spec.xlabel)
    ax.set_ylabel(spec.ylabel)
    if spec.ylim is not None and spec.ylim[0] < spec.ylim[1]:
        lo, hi = spec.ylim
        pad = 0.05 * (hi - lo)
        ax.set_ylim(lo - pad, hi + pad)
    if spec.x_scale == "log":
        ax.set_xscale("log")
    if spec.xticks is not None:
        ax.set_xticks(list(spec.xticks))
        ax.set_xticklabels(list(spec.xticklabels or ()))


def _decorations(ax, renderer) -> Tuple[float, float, float]:
    # Pixels taken by tick labels, axis labels and title outside the axes box.
    tight = ax.get_tightbbox(renderer)
    box = ax.get_window_extent(renderer)
    return (
        max(box.x0 - tight.x0, 0.0),
        max(box.y0 - tight.y0, 0.0),
        max(tight.y1 - box.y1, 0.0),
    )


def print_grid(
    plots: ZphPlots,
    *,
    grid: Optional[GridConfig] = None,
    out_path: Optional[str | Path] = None,
) -> GridRendering:
    """Render all charts on one figure with aligned left margins.

    Every panel gets the left margin of the widest one (y tick labels plus
    y label), so the plotting areas of a column line up. The figure is drawn
    on an Agg canvas and saved to ``out_path`` when given.
    """

    if not isinstance(plots, ZphPlots):
        raise TypeError("An object of class ZphPlots is required.")
    grid = grid or GridConfig()

    from matplotlib import rc_context
    from matplotlib.backends.backend_agg import FigureCanvasAgg
    from matplotlib.figure import Figure

    specs = [plots[name] for name in plots]
    nrow, ncol = grid_shape(len(specs), grid.ncol, grid.nrow)

    fig = Figure(figsize=(ncol * grid.panel_width, nrow * grid.panel_height), dpi=grid.dpi)
    canvas = FigureCanvasAgg(fig)
    fig_w, fig_h = fig.bbox.width, fig.bbox.height
    cell_w, cell_h = fig_w / ncol, fig_h / nrow
    pad_x, pad_y = grid.pad * cell_w, grid.pad * cell_h

    cells: List[Tuple[float, float]] = []
    axes = []
    for k, spec in enumerate(specs):
        row, col = divmod(k, ncol)
        x0, y0 = col * cell_w, fig_h - (row + 1) * cell_h
        cells.append((x0, y0))
        with rc_context(THEME_RC[spec.theme]):
            ax = fig.add_axes(
                [
                    (x0 + 0.2 * cell_w) / fig_w,
                    (y0 + 0.2 * cell_h) / fig_h,
                    0.7 * cell_w / fig_w,
                    0.65 * cell_h / fig_h,
                ]
            )
            render_chart(spec, ax)
        axes.append(ax)

    def place(left: float, bottom: float, top: float) -> None:
        for ax, (x0, y0) in zip(axes, cells):
            width = max(cell_w - left - 2 * pad_x, 1.0)
            height = max(cell_h - bottom - top - 2 * pad_y, 1.0)
            ax.set_position(
                [
                    (x0 + pad_x + left) / fig_w,
                    (y0 + pad_y + bottom) / fig_h,
                    width / fig_w,
                    height / fig_h,
                ]
            )

    # First pass settles the panel heights, which decide the y tick labels;
    # the second pass measures the final left decorations.
    canvas.draw()
    renderer = canvas.get_renderer()
    measured = [_decorations(ax, renderer) for ax in axes]
    bottom = max(m[1] for m in measured)
    top = max(m[2] for m in measured)
    place(max(m[0] for m in measured), bottom, top)

    canvas.draw()
    renderer = canvas.get_renderer()
    widest = max(_decorations(ax, renderer)[0] for ax in axes)
    logger.debug("aligning %d panels to a left margin of %.1f px", len(axes), widest)
    place(widest, bottom, top)

    left_margins = tuple(ax.get_position().x0 * fig_w - x0 for ax, (x0, _) in zip(axes, cells))

    if out_path is not None:
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, dpi=grid.dpi)
        logger.debug("wrote %s", out_path)

    return GridRendering(
        figure=fig,
        axes=tuple(axes),
        names=tuple(plots.names),
        left_margins=left_margins,
        shape=(nrow, ncol),
    )
