from pathlib import Path

import numpy as np
from lifelines import CoxPHFitter
from lifelines.datasets import load_rossi

from zphplot.core.config import PlotConfig
from zphplot.stats.zph import cox_zph
from zphplot.viz.grid import print_grid
from zphplot.viz.residual_plots import build_zph_plots


ROOT = Path(__file__).resolve().parents[1]


def test_end_to_end_smoke(tmp_path):
    cfg = PlotConfig.from_yaml(ROOT / "examples" / "plot.yaml")
    rossi = load_rossi()

    cph = CoxPHFitter().fit(rossi, duration_col="week", event_col="arrest")
    res = cox_zph(cph, rossi, transform=cfg.transform)

    plots = build_zph_plots(res, config=cfg)
    assert plots.names == list(cph.params_.index)

    rendering = print_grid(plots, grid=cfg.grid, out_path=tmp_path / "zph.png")
    assert len(rendering.axes) == len(plots)
    assert np.allclose(rendering.left_margins, rendering.left_margins[0])
    assert (tmp_path / "zph.png").exists()
