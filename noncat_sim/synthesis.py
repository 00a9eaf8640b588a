"""Synthesis of band severity curves into one piecewise-linear mixture CDF.

The simulator samples large claims from a single claim-size distribution
rather than juggling one parametric curve per band. This module builds that
distribution: a frequency-weighted mixture of every band's ground-up
severity, capped at each band's policy limit, evaluated on a shared grid
that is fine near zero and coarse in the tail.

Claims capped at a policy limit form a point mass. Each limit is
represented by two grid points at ``limit - epsilon`` and
``limit + epsilon``; the CDF jumps between them by the band's share of
capped claims. :func:`straddle_point_masses` applies that jump as a
separate, testable step.

Sampling lands on grid points only (the increment ``prob[i] - prob[i-1]``
is assigned to ``grid[i]``). The resulting upward bias is bounded by the
grid spacing and is measured by :func:`discretization_bias`.
"""

from dataclasses import dataclass, field
import logging
from typing import Iterable, Sequence, Tuple, Union

import numpy as np

from .config import GridConfig
from .exceptions import InvalidParameterError, SimulationError
from .exposure import ExposureBand

logger = logging.getLogger(__name__)

# Float noise tolerated in CDF increments before the curve is rejected
MONOTONE_TOLERANCE = 1e-12


def build_claim_size_grid(
    max_claim_size: float, initial_step: float, points_per_step: int
) -> np.ndarray:
    """Build the base claim-size grid.

    Starts at 0, advances by ``initial_step`` and multiplies the step by 10
    every ``points_per_step`` points. The grid ends with the first point
    that exceeds ``max_claim_size``.

    Args:
        max_claim_size: Claim size the grid must cover.
        initial_step: Spacing of the first block of points.
        points_per_step: Points generated per step size.

    Returns:
        Strictly increasing array of claim sizes starting at 0.
    """
    if max_claim_size <= 0 or initial_step <= 0 or points_per_step < 1:
        raise InvalidParameterError(
            "Grid requires positive max_claim_size, initial_step and points_per_step, got "
            f"{max_claim_size}, {initial_step}, {points_per_step}"
        )

    blocks = [np.zeros(1)]
    start = 0.0
    step = float(initial_step)
    offsets = np.arange(1, points_per_step + 1, dtype=float)
    while start <= max_claim_size:
        block = start + step * offsets
        blocks.append(block)
        start = float(block[-1])
        step *= 10

    grid = np.concatenate(blocks)
    first_beyond = int(np.searchsorted(grid, max_claim_size, side="right"))
    return grid[: first_beyond + 1]


def straddle_point_masses(
    probabilities: np.ndarray,
    below_indices: Sequence[int],
    above_indices: Sequence[int],
    jumps: Sequence[float],
) -> np.ndarray:
    """Spread point masses symmetrically over their straddling grid points.

    For each point mass the CDF is lowered by ``jump / 2`` at the grid
    point just below the limit and raised by ``jump / 2`` at the grid point
    just above it, producing a vertical step of height ``jump`` centred on
    the limit.

    Args:
        probabilities: CDF values on the grid (not modified).
        below_indices: Grid index of ``limit - epsilon`` for each mass.
        above_indices: Grid index of ``limit + epsilon`` for each mass.
        jumps: Height of each point mass as a probability.

    Returns:
        New array of CDF values with the point masses applied.
    """
    result = np.array(probabilities, dtype=float, copy=True)
    for below, above, jump in zip(below_indices, above_indices, jumps):
        result[below] -= jump / 2
        result[above] += jump / 2
    return result


@dataclass(frozen=True, eq=False)
class LargeClaimSampler:
    """Conditional claim-size distribution above the attritional threshold.

    Attributes:
        threshold: Claims strictly above this size are large.
        claim_sizes: Grid claim sizes above the threshold.
        weights: Conditional probability of each claim size (sums to 1).
    """

    threshold: float
    claim_sizes: np.ndarray
    weights: np.ndarray
    _cumulative: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Freeze the arrays and precompute the cumulative sampling weights."""
        for name in ("claim_sizes", "weights"):
            values = np.array(getattr(self, name), dtype=float, copy=True)
            values.setflags(write=False)
            object.__setattr__(self, name, values)
        cumulative = np.cumsum(self.weights)
        if cumulative.size:
            cumulative[-1] = 1.0
        cumulative.setflags(write=False)
        object.__setattr__(self, "_cumulative", cumulative)

    @property
    def is_empty(self) -> bool:
        """True when no probability mass lies above the threshold."""
        return self.claim_sizes.size == 0

    @property
    def mean(self) -> float:
        """Mean of the conditional grid distribution."""
        if self.is_empty:
            return 0.0
        return float(np.dot(self.weights, self.claim_sizes))

    def sample(self, rng: np.random.Generator, n_samples: int) -> np.ndarray:
        """Draw claim sizes with replacement, weighted by conditional mass.

        Args:
            rng: Random generator of the trial.
            n_samples: Number of large claims.

        Returns:
            Array of grid claim sizes.

        Raises:
            SimulationError: If claims are requested from an empty tail.
        """
        if n_samples <= 0:
            return np.array([], dtype=float)
        if self.is_empty:
            raise SimulationError(
                f"Cannot sample {n_samples} large claims: no mass above {self.threshold:,.0f}"
            )
        u = rng.random(n_samples)
        return self.claim_sizes[np.searchsorted(self._cumulative, u, side="right")]


@dataclass(frozen=True, eq=False)
class PiecewiseSurvivalCurve:
    """Mixture claim-size distribution on a shared grid.

    ``probabilities`` holds the mixture CDF at each grid claim size and is
    non-decreasing. Each policy limit appears as a pair of grid points
    straddling the limit, between which the CDF jumps by that band's point
    mass. Both arrays are read-only.

    Attributes:
        claim_sizes: Grid claim sizes, strictly increasing from 0.
        probabilities: Mixture CDF on the grid.
        limits: Policy limit of each band.
        point_masses: Point-mass height (as a probability) of each band.
        total_frequency: Sum of the bands' expected claim counts.
        epsilon: Offset of the straddling grid points.
    """

    claim_sizes: np.ndarray
    probabilities: np.ndarray
    limits: Tuple[float, ...]
    point_masses: Tuple[float, ...]
    total_frequency: float
    epsilon: float

    def __post_init__(self):
        """Freeze the underlying arrays."""
        for name in ("claim_sizes", "probabilities"):
            values = np.array(getattr(self, name), dtype=float, copy=True)
            values.setflags(write=False)
            object.__setattr__(self, name, values)

    @property
    def max_claim_size(self) -> float:
        """Largest grid claim size."""
        return float(self.claim_sizes[-1])

    def __len__(self) -> int:
        return int(self.claim_sizes.size)

    def _grid_index(self, x: np.ndarray) -> np.ndarray:
        return np.searchsorted(self.claim_sizes, x, side="right") - 1

    def cdf(self, x: Union[float, np.ndarray], interpolate: bool = False):
        """Mixture CDF.

        Args:
            x: Claim size(s).
            interpolate: Interpolate linearly between grid points instead of
                reading the value at the grid point at or below ``x``.

        Returns:
            CDF value(s), 0 for negative claim sizes.
        """
        scalar = np.ndim(x) == 0
        x_arr = np.atleast_1d(np.asarray(x, dtype=float))
        if interpolate:
            values = np.interp(x_arr, self.claim_sizes, self.probabilities, left=0.0)
        else:
            idx = self._grid_index(x_arr)
            values = np.where(idx >= 0, self.probabilities[np.clip(idx, 0, None)], 0.0)
        return float(values[0]) if scalar else values

    def survival(self, x: Union[float, np.ndarray], interpolate: bool = False):
        """Mixture survival function, ``1 - cdf(x)``."""
        scalar = np.ndim(x) == 0
        values = 1.0 - np.atleast_1d(self.cdf(x, interpolate=interpolate))
        return float(values[0]) if scalar else values

    def quantile(self, p: Union[float, np.ndarray], interpolate: bool = False):
        """Inverse CDF.

        Args:
            p: Probability level(s) in [0, 1].
            interpolate: Interpolate linearly between grid points instead of
                returning the smallest grid claim size with ``cdf >= p``.

        Returns:
            Claim size(s).
        """
        scalar = np.ndim(p) == 0
        p_arr = np.atleast_1d(np.asarray(p, dtype=float))
        if np.any((p_arr < 0) | (p_arr > 1)):
            raise InvalidParameterError(f"Probability levels must be in [0, 1], got {p}")
        if interpolate:
            values = np.interp(p_arr, self.probabilities, self.claim_sizes)
        else:
            idx = np.searchsorted(self.probabilities, p_arr, side="left")
            values = self.claim_sizes[np.clip(idx, 0, len(self) - 1)]
        return float(values[0]) if scalar else values

    def increments(self) -> np.ndarray:
        """Probability mass attached to each grid claim size."""
        return np.diff(self.probabilities, prepend=0.0)

    def point_mass_height(self, limit: float) -> float:
        """Measured CDF jump across the straddling points of a policy limit.

        Args:
            limit: Policy limit of a band.

        Returns:
            ``cdf(limit + epsilon) - cdf(limit - epsilon)``.
        """
        below = int(np.searchsorted(self.claim_sizes, limit - self.epsilon))
        above = int(np.searchsorted(self.claim_sizes, limit + self.epsilon))
        return float(self.probabilities[above] - self.probabilities[below])

    def _threshold_index(self, threshold: float) -> int:
        """Grid index whose CDF value is ``P(claim <= threshold)``.

        A threshold in ``[L, L + epsilon)`` for a policy limit ``L`` sits
        inside that limit's jump. Claims capped at ``L`` do not exceed it, so
        it is read at the upper straddle point.
        """
        idx = int(self._grid_index(np.atleast_1d(threshold))[0])
        for limit in self.limits:
            if limit <= threshold < limit + self.epsilon:
                above = int(np.searchsorted(self.claim_sizes, limit + self.epsilon))
                idx = max(idx, above)
        return idx

    def probability_large(self, threshold: float) -> float:
        """Probability that a claim exceeds the threshold, read at a grid point."""
        idx = self._threshold_index(threshold)
        if idx < 0:
            return 1.0
        return float(1.0 - self.probabilities[idx])

    def conditional_sampler(self, threshold: float) -> LargeClaimSampler:
        """Restrict the curve to claims above a threshold and renormalize.

        Args:
            threshold: Attritional threshold.

        Returns:
            Sampler over grid claim sizes strictly above the threshold that
            carry positive mass.
        """
        start = self._threshold_index(threshold) + 1
        weights = self.increments()[start:]
        # Rounding noise around the straddle points is not sampled
        keep = weights > MONOTONE_TOLERANCE
        total = float(weights[keep].sum())
        if total <= MONOTONE_TOLERANCE:
            return LargeClaimSampler(threshold, np.array([], dtype=float), np.array([]))
        sizes = self.claim_sizes[start:]
        return LargeClaimSampler(threshold, sizes[keep], weights[keep] / total)


def synthesize_curve(
    bands: Sequence[ExposureBand],
    max_claim_size: float,
    grid_config: GridConfig = GridConfig(),
    breakpoints: Iterable[float] = (),
) -> PiecewiseSurvivalCurve:
    """Merge the bands' severity curves into one mixture CDF.

    Args:
        bands: Exposure bands (all sharing one claim-size distribution).
        max_claim_size: Claim size the grid must cover.
        grid_config: Grid resolution and straddle offset.
        breakpoints: Extra claim sizes to place on the grid (e.g. the
            attritional threshold, so the large/attritional split is read
            exactly).

    Returns:
        Immutable mixture curve. Identical inputs give bit-identical curves.

    Raises:
        InvalidParameterError: If there are no bands, no expected claims, or
            a limit lies outside the grid.
        SimulationError: If the resulting CDF is not finite or decreases.
    """
    if not bands:
        raise InvalidParameterError("At least one exposure band is required")

    eps = grid_config.limit_epsilon
    limits = np.array([band.limit for band in bands], dtype=float)
    frequencies = np.array([band.mean_frequency for band in bands], dtype=float)
    total_frequency = float(frequencies.sum())
    if not np.isfinite(total_frequency) or total_frequency <= 0:
        raise InvalidParameterError(
            f"Bands imply no expected claims (total frequency {total_frequency})"
        )

    too_large = limits + eps >= max_claim_size
    if np.any(too_large):
        offenders = [band.id for band, flag in zip(bands, too_large) if flag]
        raise InvalidParameterError(
            f"Band limits must lie below max_claim_size_for_grid ({max_claim_size:,.0f}); "
            f"offending bands: {offenders}"
        )

    extra = np.array(list(breakpoints), dtype=float)
    if np.any((extra <= 0) | (extra >= max_claim_size)):
        raise InvalidParameterError(f"Breakpoints must lie inside (0, {max_claim_size:,.0f})")

    base = build_claim_size_grid(max_claim_size, grid_config.initial_step, grid_config.points_per_step)
    grid = np.unique(np.concatenate([base, limits - eps, limits + eps, extra]))
    below_idx = np.searchsorted(grid, limits - eps)
    above_idx = np.searchsorted(grid, limits + eps)

    survival_sum = np.zeros_like(grid)
    for band, freq, below, above in zip(bands, frequencies, below_idx, above_idx):
        # The band's own straddle points are evaluated at the limit with a half step
        x_eval = grid.copy()
        x_eval[[below, above]] = band.limit
        inside = np.heaviside(band.limit - x_eval, 0.5)
        survival_sum += freq * band.severity.survival(x_eval) * inside

    probabilities = 1.0 - survival_sum / total_frequency

    point_masses = np.array([band.point_mass for band in bands]) / total_frequency
    probabilities = straddle_point_masses(probabilities, below_idx, above_idx, point_masses)

    if not np.all(np.isfinite(probabilities)):
        raise SimulationError("Synthesized CDF contains non-finite values")
    steps = np.diff(probabilities)
    if np.any(steps < -MONOTONE_TOLERANCE):
        worst = int(np.argmin(steps))
        raise SimulationError(
            f"Synthesized CDF decreases by {-steps[worst]:.3e} at claim size {grid[worst + 1]:,.2f}"
        )
    probabilities = np.clip(np.maximum.accumulate(probabilities), 0.0, 1.0)

    logger.debug(
        "Synthesized curve: %d bands, %d grid points, total frequency %.4f",
        len(bands),
        grid.size,
        total_frequency,
    )

    return PiecewiseSurvivalCurve(
        claim_sizes=grid,
        probabilities=probabilities,
        limits=tuple(float(x) for x in limits),
        point_masses=tuple(float(x) for x in point_masses),
        total_frequency=total_frequency,
        epsilon=eps,
    )


def continuous_tail_mean(bands: Sequence[ExposureBand], threshold: float) -> float:
    """Exact mean of a large claim from the continuous capped mixture.

    Args:
        bands: Exposure bands of the mixture.
        threshold: Attritional threshold.

    Returns:
        ``E[min(X, L) | min(X, L) > threshold]`` under the mixture, or 0 when
        no band can produce a claim above the threshold.
    """
    numerator = 0.0
    denominator = 0.0
    for band in bands:
        if threshold >= band.limit:
            continue
        freq = band.mean_frequency
        numerator += freq * band.severity.capped_tail_expectation(threshold, band.limit)
        denominator += freq * float(band.severity.survival(threshold))
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def discretization_bias(
    bands: Sequence[ExposureBand], sampler: LargeClaimSampler
) -> float:
    """Relative bias of grid sampling for large claims.

    Args:
        bands: Exposure bands of the mixture.
        sampler: Conditional sampler built from the synthesized curve.

    Returns:
        ``grid_mean / continuous_mean - 1`` (0 when there is no tail).
    """
    exact = continuous_tail_mean(bands, sampler.threshold)
    if exact <= 0 or sampler.is_empty:
        return 0.0
    return sampler.mean / exact - 1.0
