import pytest
from pydantic import ValidationError

from zphplot.core.config import GridConfig, PlotConfig, Theme, TimeTransform


def test_defaults():
    cfg = PlotConfig()
    assert cfg.resid and cfg.se
    assert cfg.df == 4
    assert cfg.nsmo == 40
    assert cfg.var is None
    assert cfg.theme == Theme.classic
    assert cfg.transform == TimeTransform.km
    assert cfg.grid.ncol is None


def test_from_yaml(tmp_path):
    path = tmp_path / "plot.yaml"
    path.write_text(
        "resid: false\n"
        "df: [2, 5]\n"
        "nsmo: 25\n"
        "var: [age, 2]\n"
        "theme: minimal\n"
        "transform: rank\n"
        "grid:\n"
        "  ncol: 3\n"
        "  dpi: 150\n",
        encoding="utf-8",
    )
    cfg = PlotConfig.from_yaml(path)

    assert cfg.resid is False
    assert cfg.df == 5
    assert cfg.nsmo == 25
    assert cfg.var == ["age", 2]
    assert cfg.theme == Theme.minimal
    assert cfg.transform == TimeTransform.rank
    assert cfg.grid.ncol == 3
    assert cfg.grid.dpi == 150


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert PlotConfig.from_yaml(path) == PlotConfig()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"df": 0},
        {"df": []},
        {"nsmo": 1},
        {"var": []},
        {"theme": "dark"},
        {"transform": "sqrt"},
    ],
)
def test_rejects_bad_plot_options(kwargs):
    with pytest.raises(ValidationError):
        PlotConfig(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [{"ncol": 0}, {"nrow": -1}, {"panel_width": 0}, {"dpi": 0}, {"pad": 0.5}],
)
def test_rejects_bad_grid_options(kwargs):
    with pytest.raises(ValidationError):
        GridConfig(**kwargs)
