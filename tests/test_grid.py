import numpy as np
import pytest

from zphplot.core.config import GridConfig, Theme
from zphplot.stats.result import DiagnosticResult
from zphplot.viz.chart import ChartBuilder
from zphplot.viz.grid import grid_shape, print_grid, render_chart
from zphplot.viz.residual_plots import ZphPlots, build_zph_plots


def _plots(nvar=3, transform="identity", theme=Theme.classic):
    rng = np.random.default_rng(7)
    d = 40
    times = np.sort(rng.uniform(1.0, 50.0, d))
    y = rng.normal(size=(d, nvar))
    # Very different magnitudes give very different y tick label widths.
    y[:, 0] *= 1e5
    return build_zph_plots(
        DiagnosticResult(
            x=times if transform == "identity" else np.arange(1, d + 1) / d,
            y=y,
            var=np.eye(nvar) * 0.02,
            p_values=np.full(nvar, 0.5),
            names=tuple(f"v{i}" for i in range(nvar)),
            transform=transform,
            times=times,
        ),
        theme=theme,
    )


def test_left_margins_are_aligned():
    plots = _plots(nvar=3)
    rendering = print_grid(plots)

    assert len(rendering.axes) == 3
    assert rendering.names == ("v0", "v1", "v2")
    assert rendering.shape == (2, 2)
    assert len(rendering.left_margins) == 3
    assert np.allclose(rendering.left_margins, rendering.left_margins[0])
    assert rendering.left_margins[0] > 0


def test_panels_in_one_column_share_left_edge():
    rendering = print_grid(_plots(nvar=3), grid=GridConfig(ncol=1))
    lefts = [ax.get_position().x0 for ax in rendering.axes]

    assert rendering.shape == (3, 1)
    assert np.allclose(lefts, lefts[0])


def test_margin_fits_widest_tick_labels():
    rendering = print_grid(_plots(nvar=2), grid=GridConfig(ncol=1))
    fig = rendering.figure
    renderer = fig.canvas.get_renderer()

    for ax in rendering.axes:
        tight = ax.get_tightbbox(renderer)
        # Decorations stay inside the figure.
        assert tight.x0 >= -0.5


def test_drawn_plot_areas_line_up_across_columns():
    grid = GridConfig(ncol=2)
    rendering = print_grid(_plots(nvar=4), grid=grid)
    fig = rendering.figure
    fig.canvas.draw()
    renderer = fig.canvas.get_renderer()

    nrow, ncol = rendering.shape
    cell_w = fig.bbox.width / ncol
    pad_x = grid.pad * cell_w

    offsets, decorations = [], []
    for k, ax in enumerate(rendering.axes):
        col = k % ncol
        box = ax.get_window_extent(renderer)
        tight = ax.get_tightbbox(renderer)
        offsets.append(box.x0 - col * cell_w)
        decorations.append(box.x0 - tight.x0)

    # The first panel has much wider y tick labels than the others.
    assert decorations[0] > min(decorations[1:]) + 5.0
    assert np.allclose(offsets, offsets[0], atol=0.5)
    for deco in decorations:
        assert deco <= offsets[0] - pad_x + 0.5


def test_axes_carry_chart_content():
    plots = _plots(nvar=2, transform="km")
    rendering = print_grid(plots)

    ax = rendering.axes[1]
    assert ax.get_title(loc="left") == plots["v1"].title
    assert ax.get_ylabel() == "Beta(t) for v1"
    assert ax.get_xlabel() == "Time"
    assert [t.get_text() for t in ax.get_xticklabels()] == list(plots["v1"].xticklabels)
    # fitted + upper + lower lines, residuals as a scatter collection
    assert len(ax.get_lines()) == 3
    assert len(ax.collections) == 1


def test_saves_figure(tmp_path):
    out = tmp_path / "nested" / "zph.png"
    print_grid(_plots(nvar=2, theme=Theme.gray), out_path=out)

    assert out.exists()
    assert out.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_collection_print_and_save(tmp_path):
    plots = _plots(nvar=1)
    assert plots.print().shape == (1, 1)

    out = plots.save(tmp_path / "one.png")
    assert out.exists()
    assert plots._repr_png_()[:4] == b"\x89PNG"


@pytest.mark.parametrize("bad", [None, [], {"a": 1}, "plots"])
def test_requires_zph_plots(bad):
    with pytest.raises(TypeError, match="ZphPlots is required"):
        print_grid(bad)


def test_grid_shape():
    assert grid_shape(1) == (1, 1)
    assert grid_shape(2) == (1, 2)
    assert grid_shape(3) == (2, 2)
    assert grid_shape(5) == (2, 3)
    assert grid_shape(5, ncol=1) == (5, 1)
    assert grid_shape(5, nrow=1) == (1, 5)
    with pytest.raises(ValueError):
        grid_shape(5, ncol=2, nrow=2)
    with pytest.raises(ValueError):
        grid_shape(0)


def test_render_chart_log_axis():
    from matplotlib.backends.backend_agg import FigureCanvasAgg
    from matplotlib.figure import Figure

    spec = (
        ChartBuilder("age")
        .title("t")
        .line([1.0, 10.0, 100.0], [0.0, 1.0, 2.0], role="fitted")
        .labels(x="Time", y="Beta(t) for age")
        .ylim(0.0, 2.0)
        .log_x()
        .build()
    )
    fig = Figure()
    FigureCanvasAgg(fig)
    ax = fig.add_subplot()
    render_chart(spec, ax)

    assert ax.get_xscale() == "log"
    lo, hi = ax.get_ylim()
    assert lo < 0.0 and hi > 2.0


def test_empty_collection_cannot_be_printed():
    with pytest.raises(ValueError):
        print_grid(ZphPlots([]))
