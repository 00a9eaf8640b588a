"""Diagnostic plots for synthesized curves and layer reconciliation.

All functions return a matplotlib ``Figure`` and leave showing or saving it
to the caller.
"""

from typing import List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
from matplotlib.figure import Figure
import numpy as np
import pandas as pd
import seaborn as sns

from ..exposure import ExposureBand
from ..layers import LayerValidation
from ..synthesis import PiecewiseSurvivalCurve
from .core import PLOT_COLORS, loss_axis_formatter, series_color, set_plot_style


def plot_synthesized_curve(
    curve: PiecewiseSurvivalCurve,
    bands: Optional[Sequence[ExposureBand]] = None,
    title: str = "Synthesized Claim-Size Distribution",
    figsize: Tuple[int, int] = (12, 6),
) -> Figure:
    """Plot the mixture CDF against each band's capped severity CDF.

    Args:
        curve: Synthesized curve.
        bands: Optional bands whose capped CDFs are overlaid.
        title: Plot title.
        figsize: Figure size (width, height).

    Returns:
        Matplotlib figure with a log claim-size axis.
    """
    set_plot_style()
    fig, ax = plt.subplots(figsize=figsize)

    # Log axis: skip the zero claim size
    x = curve.claim_sizes[1:]
    ax.step(x, curve.probabilities[1:], where="post", color=PLOT_COLORS["mixture"], label="Mixture")

    for i, band in enumerate(bands or []):
        capped = np.where(x < band.limit, band.severity.cdf(x), 1.0)
        ax.plot(
            x,
            capped,
            color=series_color(i + 1),
            linewidth=1,
            alpha=0.7,
            label=f"Band {band.id}",
        )

    for limit in sorted(set(curve.limits)):
        ax.axvline(limit, color=PLOT_COLORS["limit"], linestyle=":", linewidth=0.8)

    ax.set_xscale("log")
    ax.xaxis.set_major_formatter(loss_axis_formatter())
    ax.set_ylim(0, 1.02)
    ax.set_xlabel("Claim size")
    ax.set_ylabel("Cumulative probability")
    ax.set_title(title, fontweight="bold")
    ax.legend(loc="lower right")
    fig.tight_layout()
    return fig


def plot_layer_validation(
    validations: Sequence[LayerValidation],
    title: str = "Simulated vs Analytic Layer Loss",
    figsize: Tuple[int, int] = (10, 6),
) -> Figure:
    """Bar chart of simulated and analytic mean loss per layer.

    Layers outside tolerance are labelled in red.
    """
    set_plot_style()
    fig, ax = plt.subplots(figsize=figsize)

    labels = [v.layer_id for v in validations]
    positions = np.arange(len(labels))
    width = 0.38
    ax.bar(
        positions - width / 2,
        [v.analytic_loss for v in validations],
        width,
        color=PLOT_COLORS["analytic"],
        label="Analytic",
    )
    ax.bar(
        positions + width / 2,
        [v.simulated_mean for v in validations],
        width,
        color=PLOT_COLORS["simulated"],
        label="Simulated",
    )

    for pos, v in zip(positions, validations):
        if v.relative_error is None:
            continue
        ax.annotate(
            f"{v.relative_error:+.1%}",
            (pos + width / 2, v.simulated_mean),
            ha="center",
            va="bottom",
            fontsize=9,
            color=(
                PLOT_COLORS["within_tolerance"]
                if v.within_tolerance
                else PLOT_COLORS["outside_tolerance"]
            ),
        )

    ax.set_xticks(positions)
    ax.set_xticklabels(labels)
    ax.yaxis.set_major_formatter(loss_axis_formatter())
    ax.set_ylabel("Mean loss per trial")
    ax.set_title(title, fontweight="bold")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_layer_loss_distribution(
    layered_losses: pd.DataFrame,
    layer_ids: Optional[List[str]] = None,
    bins: int = 50,
    title: str = "Ceded Loss per Trial",
    figsize: Tuple[int, int] = (12, 6),
) -> Figure:
    """Histogram of per-trial ceded loss for each layer.

    Args:
        layered_losses: Frame with columns ``trial_id, layer_id, ceded_loss``.
        layer_ids: Layers to show (all when None).
        bins: Number of histogram bins.
        title: Plot title.
        figsize: Figure size (width, height).

    Returns:
        Matplotlib figure.
    """
    set_plot_style()
    data = layered_losses
    if layer_ids is not None:
        data = data[data["layer_id"].isin(layer_ids)]

    fig, ax = plt.subplots(figsize=figsize)
    n_layers = data["layer_id"].nunique()
    palette = [series_color(i) for i in range(n_layers)] or None
    sns.histplot(
        data=data,
        x="ceded_loss",
        hue="layer_id",
        bins=bins,
        element="step",
        stat="probability",
        common_norm=False,
        palette=palette,
        ax=ax,
    )
    ax.xaxis.set_major_formatter(loss_axis_formatter())
    ax.set_xlabel("Ceded loss")
    ax.set_title(title, fontweight="bold")
    fig.tight_layout()
    return fig
