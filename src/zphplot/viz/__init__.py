"""Visualization of proportional-hazards diagnostics.

- Residual charts: one scaled Schoenfeld residual chart per covariate,
  built as immutable values (:mod:`zphplot.viz.residual_plots`)
- Grid printing: all charts on one figure with aligned left margins
  (:mod:`zphplot.viz.grid`)

Figures are drawn on an Agg canvas so they work in headless CI/CD environments.
"""
