"""Layer aggregation of simulated claims and reconciliation with exposure rating.

Large claims of every line of business are pushed through each
per-occurrence layer, summed per trial and averaged over trials. The
average is compared with the analytic exposure-rating estimate of the
layer. A large relative error is reported, never corrected.
"""

from collections import defaultdict
from dataclasses import dataclass
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import warnings

import numpy as np
import pandas as pd

from ._warnings import ReconciliationWarning
from .exceptions import InvalidParameterError
from .exposure import Layer
from .simulator import SimulationTrial

logger = logging.getLogger(__name__)

LAYERED_LOSS_COLUMNS = ["trial_id", "layer_id", "ceded_loss"]


def apply_layer(claims: np.ndarray, layer: Layer) -> np.ndarray:
    """Apply a per-occurrence layer to each claim.

    Args:
        claims: Claim sizes.
        layer: Excess-of-loss layer.

    Returns:
        ``clamp(claim - attach, 0, limit)`` for every claim.
    """
    return np.clip(np.asarray(claims, dtype=float) - layer.attach, 0.0, layer.limit)


@dataclass(frozen=True)
class LayeredLossRecord:
    """Loss ceded to one layer in one trial."""

    trial_id: int
    layer_id: str
    ceded_loss: float


def aggregate_layer_losses(
    trials: Iterable[SimulationTrial], layers: Sequence[Layer]
) -> List[LayeredLossRecord]:
    """Sum the ceded large-claim losses of every trial in every layer.

    Trials of different lines with the same trial id form one portfolio
    year. Every trial id gets a record for every layer, including zero
    losses.

    Args:
        trials: Simulated trials of all lines.
        layers: Layers to apply.

    Returns:
        Records ordered by trial id, then layer.
    """
    claims_by_trial: Dict[int, List[np.ndarray]] = defaultdict(list)
    for trial in trials:
        claims_by_trial[trial.trial_id].append(trial.large_claim_losses)

    records = []
    for trial_id in sorted(claims_by_trial):
        claims = np.concatenate(claims_by_trial[trial_id])
        for layer in layers:
            ceded = float(apply_layer(claims, layer).sum())
            records.append(LayeredLossRecord(trial_id, layer.id, ceded))
    return records


def records_to_frame(records: Sequence[LayeredLossRecord]) -> pd.DataFrame:
    """Convert layered loss records to a DataFrame."""
    return pd.DataFrame(
        [(r.trial_id, r.layer_id, r.ceded_loss) for r in records], columns=LAYERED_LOSS_COLUMNS
    )


def simulated_layer_means(
    records: Sequence[LayeredLossRecord], layers: Sequence[Layer], trial_count: int
) -> Dict[str, float]:
    """Average ceded loss per trial for each layer.

    Args:
        records: Layered loss records.
        layers: Layers the records were computed for.
        trial_count: Number of trials the mean is taken over.

    Returns:
        Mapping of layer id to simulated mean loss.
    """
    if trial_count <= 0:
        raise InvalidParameterError(f"trial_count must be positive, got {trial_count}")
    totals = {layer.id: 0.0 for layer in layers}
    for record in records:
        totals[record.layer_id] += record.ceded_loss
    return {layer_id: total / trial_count for layer_id, total in totals.items()}


@dataclass(frozen=True)
class LayerValidation:
    """Comparison of the simulated and analytic mean loss of one layer.

    Attributes:
        layer_id: Layer identifier.
        simulated_mean: Mean ceded loss per trial.
        analytic_loss: Exposure-rating estimate summed over bands.
        relative_error: ``simulated / analytic - 1`` (None when the analytic
            loss is 0).
        within_tolerance: Whether the relative error is within tolerance.
    """

    layer_id: str
    simulated_mean: float
    analytic_loss: float
    relative_error: Optional[float]
    within_tolerance: bool


def validate_layers(
    simulated: Mapping[str, float],
    analytic: Mapping[str, float],
    tolerance: float,
    warn_on_failure: bool = True,
) -> List[LayerValidation]:
    """Compare simulated layer means with analytic estimates.

    Args:
        simulated: Simulated mean loss per layer id.
        analytic: Analytic expected loss per layer id.
        tolerance: Maximum absolute relative error.
        warn_on_failure: Issue a ``ReconciliationWarning`` per failing layer.

    Returns:
        One validation per layer, in the order of ``analytic``.
    """
    validations = []
    for layer_id, expected in analytic.items():
        actual = simulated.get(layer_id, 0.0)
        if expected == 0:
            relative_error = None
            within = actual == 0
        else:
            relative_error = actual / expected - 1
            within = abs(relative_error) <= tolerance

        validation = LayerValidation(layer_id, actual, expected, relative_error, within)
        validations.append(validation)

        if not within:
            message = (
                f"Layer {layer_id!r}: simulated mean {actual:,.0f} vs analytic {expected:,.0f}"
                + (f" (relative error {relative_error:+.2%})" if relative_error is not None else "")
            )
            logger.warning(message)
            if warn_on_failure:
                warnings.warn(message, ReconciliationWarning, stacklevel=2)

    return validations


def validation_frame(validations: Sequence[LayerValidation]) -> pd.DataFrame:
    """Convert layer validations to a DataFrame."""
    return pd.DataFrame(
        [
            (v.layer_id, v.simulated_mean, v.analytic_loss, v.relative_error, v.within_tolerance)
            for v in validations
        ],
        columns=["layer_id", "simulated_mean", "analytic_loss", "relative_error", "within_tolerance"],
    )
