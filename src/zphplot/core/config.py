from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, model_validator


class Theme(str, Enum):
    """Chart look, named after the usual ggplot2 themes."""

    classic = "classic"
    bw = "bw"
    gray = "gray"
    minimal = "minimal"


class TimeTransform(str, Enum):
    """Time transforms understood by :func:`zphplot.stats.zph.cox_zph`."""

    identity = "identity"
    log = "log"
    rank = "rank"
    km = "km"


class GridConfig(BaseModel):
    """Layout of the multi-panel grid produced by the printer."""

    ncol: Optional[int] = None
    nrow: Optional[int] = None

    # Panel size in inches; the figure is ncol * panel_width wide.
    panel_width: float = 4.5
    panel_height: float = 3.5
    dpi: int = 100

    # Fraction of a cell kept free on the right / top / bottom of every panel.
    pad: float = 0.04

    @model_validator(mode="after")
    def _validate(self) -> "GridConfig":
        for name in ("ncol", "nrow"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}.")
        if self.panel_width <= 0 or self.panel_height <= 0:
            raise ValueError("panel_width and panel_height must be positive.")
        if self.dpi < 1:
            raise ValueError(f"dpi must be >= 1, got {self.dpi}.")
        if not 0.0 <= self.pad < 0.5:
            raise ValueError(f"pad must be in [0, 0.5), got {self.pad}.")
        return self


class PlotConfig(BaseModel):
    """Options for the Schoenfeld residual plots.

    Mirrors the keyword arguments of :func:`zphplot.viz.residual_plots.build_zph_plots`
    so a whole run can be described in one YAML file::

        resid: true
        se: true
        df: 4
        nsmo: 40
        var: [age, ecog.ps]
        theme: bw
        grid:
          ncol: 2
    """

    resid: bool = True
    se: bool = True
    df: int = Field(default=4, description="Degrees of freedom of the natural spline; 2 is a linear fit")
    nsmo: int = Field(default=40, description="Number of points used to draw the fitted spline")
    var: Optional[List[Union[int, str]]] = None
    theme: Theme = Theme.classic

    # Only used when the diagnostic result is computed from a dataset.
    transform: TimeTransform = TimeTransform.km

    grid: GridConfig = Field(default_factory=GridConfig)

    @model_validator(mode="before")
    @classmethod
    def _collapse_df(cls, data):
        # A list of degrees of freedom collapses to its maximum.
        if isinstance(data, dict) and isinstance(data.get("df"), (list, tuple)):
            if not data["df"]:
                raise ValueError("df must not be an empty list.")
            data = {**data, "df": max(data["df"])}
        return data

    @model_validator(mode="after")
    def _validate(self) -> "PlotConfig":
        if self.df < 1:
            raise ValueError(f"df must be >= 1, got {self.df}.")
        if self.nsmo < 2:
            raise ValueError(f"nsmo must be >= 2, got {self.nsmo}.")
        if self.var is not None and len(self.var) == 0:
            raise ValueError("var must name at least one covariate when given.")
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PlotConfig":
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)
