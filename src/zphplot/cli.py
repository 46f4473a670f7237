from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from lifelines import CoxPHFitter
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from zphplot.core.config import PlotConfig, Theme, TimeTransform
from zphplot.core.data import load_dataset, model_frame
from zphplot.core.errors import ZphPlotError
from zphplot.stats.result import DiagnosticResult
from zphplot.stats.zph import cox_zph
from zphplot.viz.residual_plots import build_zph_plots


app = typer.Typer(add_completion=False, help="Schoenfeld residual diagnostics for Cox models")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages")):
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


def _load_cfg(config: Optional[str]) -> PlotConfig:
    return PlotConfig.from_yaml(config) if config else PlotConfig()


def _fit_zph(
    data: str,
    duration_col: str,
    event_col: str,
    covariates: Optional[List[str]],
    transform: TimeTransform,
) -> DiagnosticResult:
    df = model_frame(
        load_dataset(data),
        duration_col=duration_col,
        event_col=event_col,
        covariates=covariates or None,
    )
    cph = CoxPHFitter()
    cph.fit(df, duration_col=duration_col, event_col=event_col)
    return cox_zph(cph, df, transform=transform)


@app.command("test")
def zph_test(
    data: str = typer.Option(..., "--data", help="Dataset CSV or Parquet"),
    duration_col: str = typer.Option(..., "--duration-col"),
    event_col: str = typer.Option(..., "--event-col"),
    covariates: Optional[List[str]] = typer.Option(None, "--covariates", help="Defaults to all other columns"),
    transform: TimeTransform = typer.Option(TimeTransform.km, "--transform"),
):
    """Fit a Cox model and print the per-covariate proportional hazards test."""

    try:
        res = _fit_zph(data, duration_col, event_col, covariates, transform)
    except ZphPlotError as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=1) from e

    table = Table(title=f"Proportional hazards test (transform={res.transform})")
    table.add_column("covariate")
    table.add_column("p")
    for name, p in zip(res.names, res.p_values):
        table.add_row(name, f"{p:.4g}")
    console.print(table)


@app.command("plot")
def zph_plot(
    data: str = typer.Option(..., "--data", help="Dataset CSV or Parquet"),
    duration_col: str = typer.Option(..., "--duration-col"),
    event_col: str = typer.Option(..., "--event-col"),
    out: str = typer.Option("zph.png", "--out", help="Output image path"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to plot YAML config"),
    covariates: Optional[List[str]] = typer.Option(None, "--covariates", help="Model covariates; defaults to all"),
    var: Optional[List[str]] = typer.Option(None, "--var", help="Covariates to plot; defaults to all"),
    df: Optional[int] = typer.Option(None, "--df", help="Spline degrees of freedom"),
    nsmo: Optional[int] = typer.Option(None, "--nsmo", help="Points used to draw the spline"),
    resid: Optional[bool] = typer.Option(None, "--resid/--no-resid"),
    se: Optional[bool] = typer.Option(None, "--se/--no-se"),
    theme: Optional[Theme] = typer.Option(None, "--theme"),
    transform: Optional[TimeTransform] = typer.Option(None, "--transform"),
    ncol: Optional[int] = typer.Option(None, "--ncol"),
):
    """Fit a Cox model and save the Schoenfeld residual plots as one grid."""

    cfg = _load_cfg(config)
    overrides = {
        "df": df,
        "nsmo": nsmo,
        "resid": resid,
        "se": se,
        "theme": theme,
        "transform": transform,
        "var": [int(v) if v.isdigit() else v for v in var] if var else None,
    }
    data_cfg = cfg.model_dump()
    data_cfg.update({k: v for k, v in overrides.items() if v is not None})
    if ncol is not None:
        data_cfg["grid"]["ncol"] = ncol

    try:
        cfg = PlotConfig.model_validate(data_cfg)
        res = _fit_zph(data, duration_col, event_col, covariates, cfg.transform)
        plots = build_zph_plots(res, config=cfg)
        plots.save(out, grid=cfg.grid)
    except (ZphPlotError, ValueError) as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=1) from e

    console.print(f"Wrote {len(plots)} plots to {Path(out)}")


if __name__ == "__main__":
    app()
