"""Exposure bands, reinsurance layers, and analytic exposure rating.

Exposure rating allocates each band's expected gross loss to reinsurance
layers using ratios of limited expected values of the band's own severity
curve. The resulting estimates are the analytic benchmark the simulated
layer losses are reconciled against.

Example:
    Rate a single band against a single layer::

        band = ExposureBand("B1", limit=1_000_000, attach=0, premium=3e7,
                            gross_loss_ratio=0.65, mu=10, sigma=2)
        layer = Layer("L1", limit=500_000, attach=500_000)
        estimates = ExposureRater([band], [layer]).rate()
"""

from dataclasses import dataclass, field
from functools import cached_property
import logging
import math
import numbers
from typing import Dict, List, Sequence
import warnings

import pandas as pd

from ._warnings import DegenerateBandWarning
from .exceptions import InvalidParameterError
from .severity import LognormalSeverity

logger = logging.getLogger(__name__)


def _require_finite(name: str, value: float, owner: str) -> None:
    if not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise InvalidParameterError(f"{owner}: {name} must be a finite number, got {value!r}")


@dataclass(frozen=True)
class ExposureBand:
    """A band of policies sharing limit, attachment, and severity curve.

    Attributes:
        id: Band identifier.
        limit: Policy limit (must be positive).
        attach: Policy attachment / underlying (non-negative).
        premium: Subject premium of the band.
        gross_loss_ratio: Expected gross loss ratio in [0, 1].
        mu: Lognormal location of the ground-up severity.
        sigma: Lognormal scale of the ground-up severity (positive).
        lob: Line-of-business number (1-9) used to tag output events.
    """

    id: str
    limit: float
    attach: float
    premium: float
    gross_loss_ratio: float
    mu: float
    sigma: float
    lob: int = 1

    def __post_init__(self):
        """Validate band parameters."""
        owner = f"Band {self.id!r}"
        for name in ("limit", "attach", "premium", "gross_loss_ratio", "mu", "sigma"):
            _require_finite(name, getattr(self, name), owner)
        if self.limit <= 0:
            raise InvalidParameterError(f"{owner}: limit must be positive, got {self.limit}")
        if self.attach < 0:
            raise InvalidParameterError(f"{owner}: attach must be non-negative, got {self.attach}")
        if self.premium < 0:
            raise InvalidParameterError(
                f"{owner}: premium must be non-negative, got {self.premium}"
            )
        if not 0 <= self.gross_loss_ratio <= 1:
            raise InvalidParameterError(
                f"{owner}: gross_loss_ratio must be in [0, 1], got {self.gross_loss_ratio}"
            )
        if self.sigma <= 0:
            raise InvalidParameterError(f"{owner}: sigma must be positive, got {self.sigma}")
        if not isinstance(self.lob, numbers.Integral) or not 1 <= self.lob <= 9:
            raise InvalidParameterError(f"{owner}: lob must be an integer 1-9, got {self.lob!r}")

    @cached_property
    def severity(self) -> LognormalSeverity:
        """Ground-up severity distribution of the band."""
        return LognormalSeverity(mu=self.mu, sigma=self.sigma)

    @property
    def gross_loss(self) -> float:
        """Expected gross loss: premium times gross loss ratio."""
        return self.premium * self.gross_loss_ratio

    @property
    def mean_severity(self) -> float:
        """Mean claim size capped at the policy limit, LEV(limit)."""
        return float(self.severity.limited_expected_value(self.limit))

    @property
    def mean_frequency(self) -> float:
        """Expected claim count implied by the gross loss and the capped severity."""
        return self.gross_loss / self.mean_severity

    @property
    def point_mass(self) -> float:
        """Expected number of claims capped at the limit, (1 - CDF(limit)) * frequency."""
        return float(self.severity.survival(self.limit)) * self.mean_frequency


@dataclass(frozen=True)
class Layer:
    """Per-occurrence excess-of-loss reinsurance layer.

    Attributes:
        id: Layer identifier.
        limit: Layer limit (must be positive).
        attach: Attachment point (non-negative).
    """

    id: str
    limit: float
    attach: float

    def __post_init__(self):
        """Validate layer parameters."""
        owner = f"Layer {self.id!r}"
        _require_finite("limit", self.limit, owner)
        _require_finite("attach", self.attach, owner)
        if self.limit <= 0:
            raise InvalidParameterError(f"{owner}: limit must be positive, got {self.limit}")
        if self.attach < 0:
            raise InvalidParameterError(f"{owner}: attach must be non-negative, got {self.attach}")

    @property
    def exhaust(self) -> float:
        """Top of the layer, attach + limit."""
        return self.attach + self.limit

    def calculate_layer_loss(self, loss: float) -> float:
        """Calculate the portion of a single loss ceded to this layer.

        Args:
            loss: Ground-up claim amount.

        Returns:
            ``clamp(loss - attach, 0, limit)``.
        """
        if loss <= self.attach:
            return 0.0
        return min(loss - self.attach, self.limit)


@dataclass(frozen=True)
class ExposureEstimate:
    """Analytic share of one band's expected loss falling in one layer."""

    band_id: str
    layer_id: str
    pct_in_layer: float
    loss_in_layer: float


def exposure_ratio(band: ExposureBand, layer: Layer) -> float:
    """Calculate the fraction of a band's expected loss in a layer.

    ``(LEV(min(top, exhaust)) - LEV(min(top, attach))) / (LEV(top) - LEV(band.attach))``
    where ``top = band.limit + band.attach``. A zero denominator (degenerate
    band) yields 0.

    Args:
        band: Exposure band.
        layer: Reinsurance layer.

    Returns:
        Ratio in [0, 1].
    """
    severity = band.severity
    top = band.limit + band.attach
    denominator = float(
        severity.limited_expected_value(top) - severity.limited_expected_value(band.attach)
    )
    if denominator <= 0:
        warnings.warn(
            f"Band {band.id!r} has zero exposure width; its share of layer "
            f"{layer.id!r} is set to 0",
            DegenerateBandWarning,
            stacklevel=2,
        )
        logger.debug("Degenerate band %s: LEV denominator %r", band.id, denominator)
        return 0.0

    numerator = float(
        severity.limited_expected_value(min(top, layer.exhaust))
        - severity.limited_expected_value(min(top, layer.attach))
    )
    return min(max(numerator / denominator, 0.0), 1.0)


@dataclass
class ExposureRater:
    """Rates every (band, layer) pair with limited-expected-value ratios.

    Attributes:
        bands: Exposure bands to rate.
        layers: Layers to allocate expected losses to.
    """

    bands: Sequence[ExposureBand]
    layers: Sequence[Layer]
    _estimates: List[ExposureEstimate] = field(default_factory=list, init=False, repr=False)

    def rate(self) -> List[ExposureEstimate]:
        """Compute the exposure estimate of every band in every layer.

        Returns:
            List of estimates ordered by band, then layer.
        """
        estimates = []
        for band in self.bands:
            for layer in self.layers:
                pct = exposure_ratio(band, layer)
                estimates.append(
                    ExposureEstimate(
                        band_id=band.id,
                        layer_id=layer.id,
                        pct_in_layer=pct,
                        loss_in_layer=pct * band.gross_loss,
                    )
                )
        logger.info(
            "Rated %d bands against %d layers (%d estimates)",
            len(self.bands),
            len(self.layers),
            len(estimates),
        )
        self._estimates = estimates
        return list(estimates)

    @property
    def estimates(self) -> List[ExposureEstimate]:
        """Estimates from the last :meth:`rate` call, rating on first access."""
        if not self._estimates:
            self.rate()
        return list(self._estimates)

    def layer_totals(self) -> Dict[str, float]:
        """Sum of expected loss in each layer across all bands.

        Returns:
            Mapping of layer id to total analytic loss in layer.
        """
        totals = {layer.id: 0.0 for layer in self.layers}
        for estimate in self.estimates:
            totals[estimate.layer_id] += estimate.loss_in_layer
        return totals

    def to_frame(self) -> pd.DataFrame:
        """Return the estimates as a DataFrame keyed by (band_id, layer_id)."""
        return estimates_to_frame(self.estimates)


def estimates_to_frame(estimates: Sequence[ExposureEstimate]) -> pd.DataFrame:
    """Convert exposure estimates to a DataFrame.

    Returns:
        DataFrame with columns band_id, layer_id, pct_in_layer, loss_in_layer.
    """
    return pd.DataFrame(
        [(e.band_id, e.layer_id, e.pct_in_layer, e.loss_in_layer) for e in estimates],
        columns=["band_id", "layer_id", "pct_in_layer", "loss_in_layer"],
    )
