from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from zphplot.core.config import Theme


def _readonly(values: Sequence[float]) -> np.ndarray:
    arr = np.array(values, dtype=float).ravel()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Layer:
    """One drawable element of a chart: a line or a set of points."""

    kind: str
    role: str
    x: np.ndarray
    y: np.ndarray
    color: str = "black"
    linestyle: str = "solid"

    def __post_init__(self) -> None:
        if self.kind not in ("line", "points"):
            raise ValueError(f"Unknown layer kind: {self.kind}")
        x = _readonly(self.x)
        y = _readonly(self.y)
        if x.shape != y.shape:
            raise ValueError(f"Layer '{self.role}' has {x.size} x values but {y.size} y values.")
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)


@dataclass(frozen=True, eq=False)
class ChartSpec:
    """Everything needed to draw one residual chart.

    Built with :class:`ChartBuilder`; holds no reference to any plotting
    backend object.
    """

    name: str
    title: str
    layers: Tuple[Layer, ...]
    xlabel: str = ""
    ylabel: str = ""
    ylim: Optional[Tuple[float, float]] = None
    x_scale: str = "linear"
    xticks: Optional[Tuple[float, ...]] = None
    xticklabels: Optional[Tuple[str, ...]] = None
    theme: Theme = Theme.classic

    def layer(self, role: str) -> Optional[Layer]:
        for item in self.layers:
            if item.role == role:
                return item
        return None

    @property
    def fitted(self) -> Optional[Layer]:
        return self.layer("fitted")

    @property
    def residuals(self) -> Optional[Layer]:
        return self.layer("residuals")

    @property
    def upper(self) -> Optional[Layer]:
        return self.layer("upper")

    @property
    def lower(self) -> Optional[Layer]:
        return self.layer("lower")


@dataclass
class ChartBuilder:
    """Accumulates chart elements, then returns one immutable :class:`ChartSpec`.

    Every method returns the builder so calls can be chained::

        spec = (
            ChartBuilder("age")
            .title("Schoenfeld Individual Test p: 0.12")
            .line(x, yhat, role="fitted")
            .points(x_obs, y_obs, role="residuals", color="red")
            .labels(x="Time", y="Beta(t) for age")
            .build()
        )
    """

    name: str
    theme: Theme = Theme.classic
    _title: str = ""
    _layers: List[Layer] = field(default_factory=list)
    _xlabel: str = ""
    _ylabel: str = ""
    _ylim: Optional[Tuple[float, float]] = None
    _x_scale: str = "linear"
    _xticks: Optional[Tuple[float, ...]] = None
    _xticklabels: Optional[Tuple[str, ...]] = None

    def title(self, text: str) -> "ChartBuilder":
        self._title = text
        return self

    def line(self, x, y, *, role: str, color: str = "black", linestyle: str = "solid") -> "ChartBuilder":
        self._layers.append(Layer("line", role, x, y, color=color, linestyle=linestyle))
        return self

    def points(self, x, y, *, role: str, color: str = "black") -> "ChartBuilder":
        self._layers.append(Layer("points", role, x, y, color=color))
        return self

    def labels(self, *, x: str, y: str) -> "ChartBuilder":
        self._xlabel = x
        self._ylabel = y
        return self

    def ylim(self, lo: float, hi: float) -> "ChartBuilder":
        self._ylim = (float(lo), float(hi))
        return self

    def log_x(self) -> "ChartBuilder":
        self._x_scale = "log"
        return self

    def x_breaks(self, positions: Sequence[float], labels: Sequence[str]) -> "ChartBuilder":
        if len(positions) != len(labels):
            raise ValueError("x breaks and labels must have the same length.")
        self._xticks = tuple(float(p) for p in positions)
        self._xticklabels = tuple(str(s) for s in labels)
        return self

    def build(self) -> ChartSpec:
        return ChartSpec(
            name=self.name,
            title=self._title,
            layers=tuple(self._layers),
            xlabel=self._xlabel,
            ylabel=self._ylabel,
            ylim=self._ylim,
            x_scale=self._x_scale,
            xticks=self._xticks,
            xticklabels=self._xticklabels,
            theme=self.theme,
        )


def with_theme(spec: ChartSpec, theme: Theme) -> ChartSpec:
    """Return a copy of ``spec`` drawn with another theme."""
    return replace(spec, theme=Theme(theme))
