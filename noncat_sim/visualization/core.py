"""Colors, matplotlib style and money formatting for the diagnostic plots.

Colors are keyed by what they show in a run: the merged curve, the bands
it is built from, the analytic and simulated layer losses, and whether a
layer reconciles.
"""

import matplotlib.pyplot as plt
from matplotlib.ticker import FuncFormatter

PLOT_COLORS = {
    "mixture": "#003F5C",  # Synthesized curve
    "limit": "#8C8C8C",  # Policy limit markers
    "analytic": "#A6A6A6",
    "simulated": "#0080C7",
    "within_tolerance": "#2E7D32",
    "outside_tolerance": "#C62828",
    "grid": "#E0E0E0",
}

# One color per band or layer, cycled when there are more series
SERIES_COLORS = [
    "#0080C7",
    "#FF9800",
    "#7B1FA2",
    "#00796B",
    "#D81B60",
    "#5D4037",
    "#546E7A",
]


def series_color(index: int) -> str:
    """Color of the ``index``-th band or layer series."""
    return SERIES_COLORS[index % len(SERIES_COLORS)]


def set_plot_style():
    """Apply the shared matplotlib style of the diagnostic plots."""
    plt.style.use("seaborn-v0_8-whitegrid")
    plt.rcParams.update(
        {
            "font.family": "sans-serif",
            "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
            "font.size": 11,
            "axes.titlesize": 14,
            "axes.labelsize": 12,
            "legend.fontsize": 10,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.edgecolor": PLOT_COLORS["limit"],
            "axes.linewidth": 0.8,
            "grid.color": PLOT_COLORS["grid"],
            "grid.linewidth": 0.5,
            "grid.alpha": 0.5,
            "lines.linewidth": 2,
        }
    )


def format_currency(value: float, decimals: int = 0, abbreviate: bool = False) -> str:
    """Format a loss amount as currency.

    Args:
        value: Amount to format.
        decimals: Number of decimal places.
        abbreviate: Use K/M/B notation, as for limits such as ``$1M``.

    Returns:
        Formatted string with the sign in front of the currency symbol.

    Examples:
        >>> format_currency(1000)
        '$1,000'
        >>> format_currency(1500000, decimals=1, abbreviate=True)
        '$1.5M'
    """
    sign = "-" if value < 0 else ""
    amount = abs(value)
    if abbreviate:
        for scale, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
            if amount >= scale:
                return f"{sign}${amount / scale:.{decimals}f}{suffix}"
        return f"{sign}${amount:.{decimals}f}"
    return f"{sign}${amount:,.{decimals}f}"


def loss_axis_formatter() -> FuncFormatter:
    """New tick formatter for claim-size and loss axes."""
    return FuncFormatter(lambda x, pos: format_currency(x, abbreviate=True))
