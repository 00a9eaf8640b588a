"""Diagnostic visualization for exposure rating and simulation runs.

Plots of the synthesized claim-size curve, of the reconciliation between
simulated and analytic layer losses, and of ceded loss per trial.
"""

from .core import PLOT_COLORS, SERIES_COLORS, format_currency, set_plot_style
from .diagnostic_plots import (
    plot_layer_loss_distribution,
    plot_layer_validation,
    plot_synthesized_curve,
)

__all__ = [
    "PLOT_COLORS",
    "SERIES_COLORS",
    "format_currency",
    "set_plot_style",
    "plot_layer_loss_distribution",
    "plot_layer_validation",
    "plot_synthesized_curve",
]
