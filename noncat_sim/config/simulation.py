"""Simulation execution, grid, and validation configuration.

Contains configuration classes that control the collective-risk simulation:
the recognized run parameters, the claim-size grid used by the distribution
synthesizer, per-line overrides, and reconciliation tolerances.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class SimulationConfig(BaseModel):
    """Collective-risk simulation parameters.

    Attributes:
        trial_count: Number of simulated trials (years).
        attritional_threshold: Claim size separating attritional from large
            claims. Claims strictly above the threshold are large.
        mix_cv: Coefficient of variation of the gamma contagion multiplier
            applied to the expected claim count of each trial. Zero disables
            contagion (plain Poisson frequency).
        attritional_severity_mean: Mean severity of a single attritional claim.
        attritional_severity_cv: Coefficient of variation of a single
            attritional claim.
        max_claim_size_for_grid: Largest claim size covered by the
            synthesized claim-size grid. Every band limit must lie below it.
        random_seed: Base seed. Each trial derives its own stream from this
            seed and its index, so results do not depend on execution order.
            None draws fresh entropy once per run.
        parallel: Run trials on a process pool.
        n_workers: Number of worker processes (None for auto).
        chunk_size: Trials per work chunk submitted to the pool.
        progress_bar: Show a tqdm progress bar while trials run.

    Examples:
        Low-contagion casualty run::

            sim = SimulationConfig(
                trial_count=10_000,
                attritional_threshold=250_000,
                mix_cv=0.05,
                random_seed=2020,
            )
    """

    trial_count: int = Field(default=10_000, ge=1, description="Number of simulated trials")
    attritional_threshold: float = Field(
        default=100_000, gt=0, description="Large/attritional split point"
    )
    mix_cv: float = Field(default=0.1, ge=0, le=5, description="Contagion coefficient of variation")
    attritional_severity_mean: float = Field(
        default=25_000, gt=0, description="Mean attritional claim severity"
    )
    attritional_severity_cv: float = Field(
        default=1.5, ge=0, description="Attritional claim severity CV"
    )
    max_claim_size_for_grid: float = Field(
        default=100_000_000, gt=0, description="Maximum claim size covered by the grid"
    )
    random_seed: Optional[int] = Field(default=None, ge=0, description="Base random seed")
    parallel: bool = Field(default=False, description="Run trials on a process pool")
    n_workers: Optional[int] = Field(default=None, ge=1, description="Worker processes")
    chunk_size: int = Field(default=1_000, ge=1, description="Trials per work chunk")
    progress_bar: bool = Field(default=False, description="Show progress bar")

    @model_validator(mode="after")
    def validate_threshold_inside_grid(self):
        """Ensure the attritional threshold lies inside the claim-size grid.

        Returns:
            SimulationConfig: The validated config object.

        Raises:
            ValueError: If the threshold is not below the grid maximum.
        """
        if self.attritional_threshold >= self.max_claim_size_for_grid:
            raise ValueError(
                f"attritional_threshold ({self.attritional_threshold:,.0f}) must be below "
                f"max_claim_size_for_grid ({self.max_claim_size_for_grid:,.0f})"
            )
        return self


class GridConfig(BaseModel):
    """Claim-size grid used by the distribution synthesizer.

    The grid starts at zero with ``initial_step`` and multiplies the step by
    10 every ``points_per_step`` points, giving fine resolution for small
    claims and coarse resolution in the tail.

    Attributes:
        initial_step: Spacing of the first block of grid points.
        points_per_step: Number of grid points generated before the step is
            multiplied by 10.
        limit_epsilon: Offset of the two grid points inserted on either side
            of each band limit to carry its point mass.
    """

    initial_step: float = Field(default=10.0, gt=0, description="First grid spacing")
    points_per_step: int = Field(default=1_000, ge=2, description="Points per step size")
    limit_epsilon: float = Field(default=1e-4, gt=0, description="Point-mass straddle offset")

    @model_validator(mode="after")
    def validate_epsilon(self):
        """Ensure straddle points cannot jump over neighbouring grid points.

        Returns:
            GridConfig: The validated config object.

        Raises:
            ValueError: If the epsilon is not small relative to the grid step.
        """
        if self.limit_epsilon >= self.initial_step / 2:
            raise ValueError(
                f"limit_epsilon ({self.limit_epsilon}) must be smaller than half the "
                f"initial grid step ({self.initial_step})"
            )
        return self


class LineOfBusinessConfig(BaseModel):
    """Per line-of-business overrides of the simulation parameters.

    Any field left as None falls back to the value in
    :class:`SimulationConfig`.
    """

    attritional_threshold: Optional[float] = Field(default=None, gt=0)
    mix_cv: Optional[float] = Field(default=None, ge=0, le=5)
    attritional_severity_mean: Optional[float] = Field(default=None, gt=0)
    attritional_severity_cv: Optional[float] = Field(default=None, ge=0)


class ValidationConfig(BaseModel):
    """Reconciliation tolerances for simulated versus analytic layer losses.

    Attributes:
        tolerance: Maximum absolute relative error between the simulated mean
            layer loss and the exposure-rating estimate.
        discretization_tolerance: Maximum absolute relative bias of the
            grid conditional mean of large claims before a
            ``SamplingDiscretizationWarning`` is issued.
        warn_on_failure: Issue a ``ReconciliationWarning`` for layers outside
            tolerance.
    """

    tolerance: float = Field(default=0.05, gt=0, description="Relative error tolerance")
    discretization_tolerance: float = Field(
        default=0.01, gt=0, description="Grid sampling bias tolerance"
    )
    warn_on_failure: bool = Field(default=True, description="Warn for layers outside tolerance")
