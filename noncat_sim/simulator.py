"""Collective-risk simulation of trial claim counts and claim sizes.

Each trial (one simulated year of one line of business) goes through the
stages mixing, frequency, split, large severity and attritional severity:

1. A gamma contagion multiplier with mean 1 scales the expected claim count.
2. The total claim count is a Poisson draw given the multiplier.
3. Claims are split binomially into large and attritional by the
   probability of exceeding the attritional threshold.
4. Large claim sizes are drawn from the synthesized curve above the
   threshold.
5. Attritional claims are modelled as one moment-matched lognormal
   aggregate.

Trials only read an immutable :class:`TrialContext`. Every trial derives its
own random stream from the base seed, its line of business and its trial
id, so the output does not depend on execution order or worker count.
"""

from dataclasses import dataclass, field
import logging
import math
import threading
import time
from typing import Callable, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from .config import SimulationConfig
from .exceptions import SimulationError
from .parallel_executor import ParallelExecutor
from .severity import lognormal_params_from_moments
from .synthesis import LargeClaimSampler, PiecewiseSurvivalCurve

logger = logging.getLogger(__name__)


def draw_mixing(rng: np.random.Generator, mix_cv: float) -> float:
    """Draw a contagion multiplier with mean 1 and CV ``mix_cv``.

    Args:
        rng: Random generator of the trial.
        mix_cv: Coefficient of variation; 0 disables contagion.

    Returns:
        Gamma(shape=1/cv^2, scale=cv^2) draw, or exactly 1 when ``mix_cv`` is 0.
    """
    if mix_cv == 0:
        return 1.0
    variance = mix_cv**2
    return float(rng.gamma(shape=1.0 / variance, scale=variance))


def attritional_aggregate(
    rng: np.random.Generator, claim_count: int, severity_mean: float, severity_cv: float
) -> float:
    """Draw the aggregate attritional loss of a trial.

    The aggregate is lognormal with mean ``severity_mean * n`` and CV
    ``sqrt((1 + severity_cv^2) / n)``.

    Args:
        rng: Random generator of the trial.
        claim_count: Attritional claim count ``n``.
        severity_mean: Mean attritional claim size.
        severity_cv: CV of a single attritional claim.

    Returns:
        Aggregate loss, 0 for a trial without attritional claims.
    """
    if claim_count <= 0:
        return 0.0
    aggregate_cv = math.sqrt((1 + severity_cv**2) / claim_count)
    mu, sigma = lognormal_params_from_moments(severity_mean * claim_count, aggregate_cv)
    return float(rng.lognormal(mu, sigma))


@dataclass(frozen=True)
class SimulationTrial:
    """Simulated claims of one trial for one line of business.

    Attributes:
        trial_id: 1-based trial index.
        lob: Line-of-business number.
        mixing_draw: Contagion multiplier applied to the expected count.
        total_claim_count: Poisson claim count.
        large_claim_count: Claims above the attritional threshold.
        attritional_claim_count: Claims at or below the threshold.
        large_claim_losses: Size of every large claim (read-only array).
        attritional_aggregate_loss: Aggregate loss of attritional claims.
    """

    trial_id: int
    lob: int
    mixing_draw: float
    total_claim_count: int
    large_claim_count: int
    attritional_claim_count: int
    large_claim_losses: np.ndarray = field(repr=False, compare=False)
    attritional_aggregate_loss: float

    def __post_init__(self):
        """Freeze the loss array and check claim count conservation."""
        losses = np.array(self.large_claim_losses, dtype=float, copy=True)
        losses.setflags(write=False)
        object.__setattr__(self, "large_claim_losses", losses)

        if self.large_claim_count + self.attritional_claim_count != self.total_claim_count:
            raise SimulationError(
                f"Trial {self.trial_id}: large ({self.large_claim_count}) + attritional "
                f"({self.attritional_claim_count}) != total ({self.total_claim_count})"
            )
        if losses.size != self.large_claim_count:
            raise SimulationError(
                f"Trial {self.trial_id}: {losses.size} large losses for "
                f"{self.large_claim_count} large claims"
            )

    @property
    def is_zero_claim(self) -> bool:
        """True when the trial drew no claims at all."""
        return self.total_claim_count == 0

    @property
    def large_loss(self) -> float:
        """Sum of large claim sizes."""
        return float(self.large_claim_losses.sum())

    @property
    def total_loss(self) -> float:
        """Large plus attritional loss."""
        return self.large_loss + self.attritional_aggregate_loss


@dataclass(frozen=True)
class TrialContext:
    """Read-only inputs shared by all trials of one line of business.

    Attributes:
        lob: Line-of-business number.
        base_seed: Run seed; trial streams are derived from it.
        total_frequency: Expected claim count per trial.
        probability_large: Probability a claim exceeds the threshold.
        sampler: Conditional large-claim size sampler.
        mix_cv: Contagion coefficient of variation.
        attritional_severity_mean: Mean attritional claim size.
        attritional_severity_cv: CV of an attritional claim.
    """

    lob: int
    base_seed: int
    total_frequency: float
    probability_large: float
    sampler: LargeClaimSampler
    mix_cv: float
    attritional_severity_mean: float
    attritional_severity_cv: float

    @classmethod
    def from_curve(
        cls,
        curve: PiecewiseSurvivalCurve,
        config: SimulationConfig,
        lob: int,
        base_seed: int,
    ) -> "TrialContext":
        """Build the context of a line from its synthesized curve.

        Args:
            curve: Synthesized claim-size curve of the line.
            config: Simulation parameters resolved for the line.
            lob: Line-of-business number.
            base_seed: Run seed.

        Returns:
            Immutable trial context.
        """
        threshold = config.attritional_threshold
        probability_large = min(max(curve.probability_large(threshold), 0.0), 1.0)
        return cls(
            lob=lob,
            base_seed=base_seed,
            total_frequency=curve.total_frequency,
            probability_large=probability_large,
            sampler=curve.conditional_sampler(threshold),
            mix_cv=config.mix_cv,
            attritional_severity_mean=config.attritional_severity_mean,
            attritional_severity_cv=config.attritional_severity_cv,
        )

    def rng_for(self, trial_id: int) -> np.random.Generator:
        """Random generator of one trial, keyed by (lob, trial_id)."""
        return np.random.default_rng(
            np.random.SeedSequence(self.base_seed, spawn_key=(self.lob, trial_id))
        )


def simulate_trial(trial_id: int, context: TrialContext) -> SimulationTrial:
    """Simulate one trial.

    Args:
        trial_id: 1-based trial index.
        context: Shared read-only inputs of the line.

    Returns:
        The simulated trial.

    Raises:
        SimulationError: If any sampled value is not finite.
    """
    rng = context.rng_for(trial_id)

    mixing = draw_mixing(rng, context.mix_cv)
    expected_count = context.total_frequency * mixing
    if not math.isfinite(expected_count) or expected_count < 0:
        raise SimulationError(f"Trial {trial_id}: invalid expected claim count {expected_count}")

    total = int(rng.poisson(expected_count))
    large = int(rng.binomial(total, context.probability_large)) if total else 0
    attritional = total - large

    large_losses = context.sampler.sample(rng, large)
    attritional_loss = attritional_aggregate(
        rng, attritional, context.attritional_severity_mean, context.attritional_severity_cv
    )

    if not (np.all(np.isfinite(large_losses)) and math.isfinite(attritional_loss)):
        raise SimulationError(f"Trial {trial_id} (line {context.lob}) produced non-finite losses")

    return SimulationTrial(
        trial_id=trial_id,
        lob=context.lob,
        mixing_draw=mixing,
        total_claim_count=total,
        large_claim_count=large,
        attritional_claim_count=attritional,
        large_claim_losses=large_losses,
        attritional_aggregate_loss=attritional_loss,
    )


@dataclass
class SimulationRun:
    """Trials produced by one simulator run.

    Attributes:
        trials: Completed trials ordered by trial id.
        requested_trials: Number of trials requested.
        partial: True when the run was cancelled before completion.
        execution_time: Wall-clock seconds.
    """

    trials: List[SimulationTrial]
    requested_trials: int
    partial: bool = False
    execution_time: float = 0.0

    @property
    def zero_claim_trials(self) -> int:
        """Number of trials without any claim."""
        return sum(1 for trial in self.trials if trial.is_zero_claim)

    @property
    def mean_mixing_draw(self) -> float:
        """Average contagion multiplier over completed trials."""
        if not self.trials:
            return 0.0
        return float(np.mean([trial.mixing_draw for trial in self.trials]))


class CollectiveRiskSimulator:
    """Runs the trials of one line of business serially or on a process pool.

    Args:
        context: Shared read-only inputs of the line.
        config: Execution settings (trial count, parallelism, progress bar).
    """

    def __init__(self, context: TrialContext, config: SimulationConfig):
        self.context = context
        self.config = config

    def run(
        self,
        progress_callback: Optional[Callable[[int, int, float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        trial_ids: Optional[Sequence[int]] = None,
    ) -> SimulationRun:
        """Simulate ``config.trial_count`` trials with ids 1..trial_count.

        Args:
            progress_callback: Optional callback invoked with
                ``(completed, total, elapsed_seconds)``.
            cancel_event: Optional :class:`threading.Event`. When set, the
                remaining trials are abandoned and the completed ones are
                returned as a partial run.
            trial_ids: Explicit trial ids to simulate instead of
                1..trial_count. Used to line up the lines of a cancelled run.

        Returns:
            SimulationRun with the completed trials.
        """
        if trial_ids is None:
            trial_ids = range(1, self.config.trial_count + 1)

        start = time.time()
        if self.config.parallel:
            run = self._run_parallel(trial_ids, progress_callback, cancel_event)
        else:
            run = self._run_sequential(trial_ids, progress_callback, cancel_event)
        run.execution_time = time.time() - start

        logger.info(
            "Line %d: simulated %d/%d trials in %.2fs (%d zero-claim)%s",
            self.context.lob,
            len(run.trials),
            run.requested_trials,
            run.execution_time,
            run.zero_claim_trials,
            " [partial]" if run.partial else "",
        )
        return run

    def _run_sequential(
        self,
        trial_ids: Sequence[int],
        progress_callback: Optional[Callable[[int, int, float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationRun:
        """Run trials one after the other."""
        n_trials = len(trial_ids)
        iterator = trial_ids
        if self.config.progress_bar:
            iterator = tqdm(iterator, desc=f"Simulating line {self.context.lob}")

        callback_interval = max(1, n_trials // 100)
        seq_start = time.time()

        trials = []
        cancelled = False
        for trial_id in iterator:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Cancellation requested at trial %d/%d", trial_id, n_trials)
                cancelled = True
                break

            trials.append(simulate_trial(trial_id, self.context))

            if progress_callback is not None and len(trials) % callback_interval == 0:
                progress_callback(len(trials), n_trials, time.time() - seq_start)

        if progress_callback is not None and len(trials) % callback_interval != 0:
            progress_callback(len(trials), n_trials, time.time() - seq_start)

        return SimulationRun(trials=trials, requested_trials=n_trials, partial=cancelled)

    def _run_parallel(
        self,
        trial_ids: Sequence[int],
        progress_callback: Optional[Callable[[int, int, float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationRun:
        """Run trials in chunks on a process pool."""
        executor = ParallelExecutor(
            n_workers=self.config.n_workers, chunk_size=self.config.chunk_size
        )
        trials = executor.map_chunks(
            work_function=simulate_trial,
            work_items=trial_ids,
            shared_data={"context": self.context},
            progress_bar=self.config.progress_bar,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )
        logger.debug("Line %d: %s", self.context.lob, executor.performance_metrics.summary())
        return SimulationRun(
            trials=trials, requested_trials=len(trial_ids), partial=executor.cancelled
        )
