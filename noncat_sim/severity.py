"""Parametric severity distributions for exposure bands.

This module provides the severity curves behind every exposure band: the
survival function, the CDF, and the closed-form limited expected value
(LEV) used both by exposure rating and by the distribution synthesizer.
It also hosts the mean/CV moment matching used for lognormal
approximations of attritional losses.
"""

from abc import ABC, abstractmethod
import math
from typing import Optional, Tuple, Union

import numpy as np
from scipy import stats

from .exceptions import InvalidParameterError

ArrayLike = Union[float, np.ndarray]


def lognormal_params_from_moments(mean: float, cv: float) -> Tuple[float, float]:
    """Convert a (mean, coefficient of variation) pair to lognormal (mu, sigma).

    Uses the standard moment matching ``sigma^2 = ln(1 + cv^2)`` and
    ``mu = ln(mean) - sigma^2 / 2``.

    Args:
        mean: Mean of the lognormal distribution (must be positive).
        cv: Coefficient of variation (std/mean, must be non-negative).

    Returns:
        Tuple of (mu, sigma).

    Raises:
        InvalidParameterError: If mean is not positive or cv is negative.
    """
    if not math.isfinite(mean) or mean <= 0:
        raise InvalidParameterError(f"Mean must be positive, got {mean}")
    if not math.isfinite(cv) or cv < 0:
        raise InvalidParameterError(f"CV must be non-negative, got {cv}")

    sigma = math.sqrt(math.log1p(cv**2))
    mu = math.log(mean) - sigma**2 / 2
    return mu, sigma


def _as_output(values: np.ndarray, scalar: bool) -> ArrayLike:
    return float(values) if scalar else values


class SeverityDistribution(ABC):
    """Abstract base class for band severity distributions.

    Provides a common interface for the survival and limited-expected-value
    queries required by exposure rating and curve synthesis.
    """

    @abstractmethod
    def cdf(self, x: ArrayLike) -> ArrayLike:
        """Cumulative distribution function P(X <= x)."""

    @abstractmethod
    def limited_expected_value(self, limit: ArrayLike) -> ArrayLike:
        """Calculate E[min(X, limit)].

        Args:
            limit: Cap (scalar or array). Non-positive caps give 0.

        Returns:
            Limited expected value with the same shape as ``limit``.
        """

    @abstractmethod
    def expected_value(self) -> float:
        """Calculate the analytical expected value of the distribution."""

    def survival(self, x: ArrayLike) -> ArrayLike:
        """Survival function P(X > x) = 1 - CDF(x)."""
        scalar = np.ndim(x) == 0
        values = 1.0 - np.asarray(self.cdf(x), dtype=float)
        return _as_output(values, scalar)

    def capped_tail_expectation(self, threshold: float, cap: float) -> float:
        """Calculate E[min(X, cap) ; X > threshold].

        Uses ``LEV(cap) - LEV(threshold) + threshold * S(threshold)`` for
        ``threshold < cap``. Losses capped at ``cap`` can never exceed a
        threshold at or above the cap, so the result is 0 there.

        Args:
            threshold: Lower bound of the tail (exclusive).
            cap: Policy limit applied to each loss.

        Returns:
            Partial expectation of the capped loss above the threshold.
        """
        if threshold >= cap:
            return 0.0
        threshold = max(threshold, 0.0)
        return float(
            self.limited_expected_value(cap)
            - self.limited_expected_value(threshold)
            + threshold * self.survival(threshold)
        )


class LognormalSeverity(SeverityDistribution):
    """Lognormal severity distribution.

    Parameters can be specified as either (mu, sigma) or (mean, cv).
    """

    def __init__(
        self,
        mu: Optional[float] = None,
        sigma: Optional[float] = None,
        mean: Optional[float] = None,
        cv: Optional[float] = None,
    ):
        """Initialize lognormal distribution.

        Args:
            mu: Log-space location parameter.
            sigma: Log-space scale parameter (must be positive).
            mean: Mean of the distribution (alternative to mu/sigma).
            cv: Coefficient of variation (alternative to mu/sigma).

        Raises:
            InvalidParameterError: If invalid parameter combinations are provided.
        """
        if mu is not None and sigma is not None:
            if not math.isfinite(mu):
                raise InvalidParameterError(f"Mu must be finite, got {mu}")
        elif mean is not None and cv is not None:
            mu, sigma = lognormal_params_from_moments(mean, cv)
        else:
            raise InvalidParameterError("Must provide either (mu, sigma) or (mean, cv) parameters")

        if not math.isfinite(sigma) or sigma <= 0:
            raise InvalidParameterError(f"Sigma must be positive, got {sigma}")

        self.mu = float(mu)
        self.sigma = float(sigma)
        self.mean = math.exp(self.mu + self.sigma**2 / 2)
        self.cv = math.sqrt(math.expm1(self.sigma**2))

    def __repr__(self) -> str:
        return f"LognormalSeverity(mu={self.mu!r}, sigma={self.sigma!r})"

    def cdf(self, x: ArrayLike) -> ArrayLike:
        """Lognormal CDF; zero for non-positive claim sizes."""
        scalar = np.ndim(x) == 0
        x_arr = np.atleast_1d(np.asarray(x, dtype=float))
        result = np.zeros_like(x_arr)
        positive = x_arr > 0
        result[positive] = stats.lognorm.cdf(
            x_arr[positive], s=self.sigma, scale=math.exp(self.mu)
        )
        return _as_output(result[0] if scalar else result, scalar)

    def survival(self, x: ArrayLike) -> ArrayLike:
        """Lognormal survival function evaluated directly for tail precision."""
        scalar = np.ndim(x) == 0
        x_arr = np.atleast_1d(np.asarray(x, dtype=float))
        result = np.ones_like(x_arr)
        positive = x_arr > 0
        result[positive] = stats.lognorm.sf(x_arr[positive], s=self.sigma, scale=math.exp(self.mu))
        return _as_output(result[0] if scalar else result, scalar)

    def limited_expected_value(self, limit: ArrayLike) -> ArrayLike:
        """Closed-form lognormal LEV.

        ``E[min(X, c)] = exp(mu + sigma^2/2) * Phi((ln c - mu - sigma^2)/sigma)
        + c * (1 - Phi((ln c - mu)/sigma))``

        Args:
            limit: Cap (scalar or array). ``c <= 0`` gives 0 and ``c = inf``
                gives the mean.

        Returns:
            Limited expected value with the same shape as ``limit``.
        """
        scalar = np.ndim(limit) == 0
        c = np.atleast_1d(np.asarray(limit, dtype=float))
        result = np.zeros_like(c)

        finite = (c > 0) & np.isfinite(c)
        if np.any(finite):
            log_c = np.log(c[finite])
            z = (log_c - self.mu) / self.sigma
            result[finite] = self.mean * stats.norm.cdf(z - self.sigma) + c[finite] * stats.norm.sf(
                z
            )
        result[np.isposinf(c)] = self.mean

        return _as_output(result[0] if scalar else result, scalar)

    def expected_value(self) -> float:
        """Calculate expected value of lognormal distribution.

        Returns:
            Analytical expected value.
        """
        return self.mean
