"""End-to-end exposure rating and collective-risk simulation pipeline.

The engine runs the immutable pipeline

    bands -> (exposure estimates, synthesized curve per line)
          -> simulated trials -> layered losses -> validation

and gathers everything, including quality diagnostics, in
:class:`SimulationResults`.

Example:
    Run a schedule with a fixed seed::

        from noncat_sim import Config, ExposureSimulationEngine
        from noncat_sim.schedules import read_band_schedule, read_layer_schedule

        config = Config().with_overrides({"simulation.random_seed": 2020})
        engine = ExposureSimulationEngine(
            config, read_band_schedule("bands.csv"), read_layer_schedule("layers.csv")
        )
        results = engine.run()
        print(results.summary())
"""

from collections import defaultdict
from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence
import warnings

import numpy as np
import pandas as pd

from ._warnings import ConfigurationWarning, SamplingDiscretizationWarning
from .config import Config
from .exceptions import InvalidParameterError, SimulationError
from .export import build_event_loss_table
from .exposure import ExposureBand, ExposureEstimate, ExposureRater, Layer, estimates_to_frame
from .layers import (
    LayerValidation,
    aggregate_layer_losses,
    records_to_frame,
    simulated_layer_means,
    validate_layers,
    validation_frame,
)
from .simulator import CollectiveRiskSimulator, SimulationRun, SimulationTrial, TrialContext
from .synthesis import PiecewiseSurvivalCurve, discretization_bias, synthesize_curve

logger = logging.getLogger(__name__)


@dataclass
class LineDiagnostics:
    """Quality metrics of one line of business.

    Attributes:
        lob: Line-of-business number.
        n_bands: Number of bands in the line.
        total_frequency: Expected claim count per trial.
        probability_large: Probability a claim exceeds the threshold.
        discretization_bias: Relative bias of the grid conditional mean of
            large claims against the continuous mixture.
        trials_completed: Trials simulated for the line.
        zero_claim_trials: Trials without any claim.
        mean_mixing_draw: Average contagion multiplier.
    """

    lob: int
    n_bands: int
    total_frequency: float
    probability_large: float
    discretization_bias: float
    trials_completed: int = 0
    zero_claim_trials: int = 0
    mean_mixing_draw: float = 0.0


@dataclass
class SimulationResults:
    """Container for the outputs of an engine run.

    Attributes:
        trials: Simulated trials of every line, ordered by line then trial.
        trial_count: Trials per line the layer means are taken over.
        estimates: Analytic exposure estimates.
        curves: Synthesized curve per line.
        event_loss_table: YELT with columns ``trialid, eventid, day, loss``.
        layered_losses: Ceded loss per trial and layer.
        validations: Simulated versus analytic comparison per layer.
        diagnostics: Quality metrics per line.
        base_seed: Seed the trial streams were derived from.
        execution_time: Wall-clock seconds.
        partial: True when the run was cancelled before completion.
        config: Configuration of the run.
    """

    trials: List[SimulationTrial]
    trial_count: int
    estimates: List[ExposureEstimate]
    curves: Dict[int, PiecewiseSurvivalCurve]
    event_loss_table: pd.DataFrame
    layered_losses: pd.DataFrame
    validations: List[LayerValidation]
    diagnostics: Dict[int, LineDiagnostics]
    base_seed: int
    execution_time: float
    partial: bool = False
    config: Config = field(default_factory=Config, repr=False)

    @property
    def estimates_frame(self) -> pd.DataFrame:
        """Exposure estimates as a DataFrame."""
        return estimates_to_frame(self.estimates)

    @property
    def validation_frame(self) -> pd.DataFrame:
        """Layer validations as a DataFrame."""
        return validation_frame(self.validations)

    @property
    def all_layers_valid(self) -> bool:
        """True when every layer reconciles within tolerance."""
        return all(v.within_tolerance for v in self.validations)

    @property
    def zero_claim_trials(self) -> int:
        """Number of (line, trial) pairs without any claim."""
        return sum(d.zero_claim_trials for d in self.diagnostics.values())

    def summary(self) -> str:
        """Generate summary of simulation results."""
        lines = [
            "Simulation Results Summary",
            "=" * 50,
            f"Trials: {self.trial_count:,}" + (" (partial)" if self.partial else ""),
            f"Lines of business: {len(self.curves)}",
            f"Base seed: {self.base_seed}",
            f"Execution Time: {self.execution_time:.2f}s",
            f"Event-loss rows: {len(self.event_loss_table):,}",
            "",
            "Line diagnostics:",
        ]
        for lob, diag in sorted(self.diagnostics.items()):
            lines.append(
                f"  Line {lob}: {diag.n_bands} bands, frequency {diag.total_frequency:,.2f}, "
                f"P(large) {diag.probability_large:.4f}, grid bias {diag.discretization_bias:+.4%}, "
                f"zero-claim trials {diag.zero_claim_trials}, "
                f"mean mixing {diag.mean_mixing_draw:.4f}"
            )

        lines.extend(["", "Layer validation:"])
        for v in self.validations:
            error = f"{v.relative_error:+.2%}" if v.relative_error is not None else "n/a"
            status = "OK" if v.within_tolerance else "FAIL"
            lines.append(
                f"  {v.layer_id}: simulated ${v.simulated_mean:,.0f} vs analytic "
                f"${v.analytic_loss:,.0f} ({error}) {status}"
            )
        return "\n".join(lines) + "\n"


class ExposureSimulationEngine:
    """Exposure rating and collective-risk simulation of a band schedule.

    Bands are grouped by line of business. Each line gets its own
    synthesized curve and simulation parameters (:meth:`Config.for_line`);
    layers apply to the combined large claims of all lines.

    Args:
        config: Run configuration.
        bands: Exposure bands of all lines.
        layers: Per-occurrence layers.

    Raises:
        InvalidParameterError: If there are no bands or no layers.
        ConfigurationError: If the configuration is inconsistent.
    """

    def __init__(
        self, config: Config, bands: Sequence[ExposureBand], layers: Sequence[Layer]
    ):
        if not bands:
            raise InvalidParameterError("At least one exposure band is required")
        if not layers:
            raise InvalidParameterError("At least one layer is required")
        config.check_consistency()

        self.config = config
        self.bands = list(bands)
        self.layers = list(layers)
        self.rater = ExposureRater(self.bands, self.layers)

        unused = sorted(set(config.lines) - {band.lob for band in self.bands})
        if unused:
            warnings.warn(
                f"Line overrides configured for lines without bands: {unused}",
                ConfigurationWarning,
                stacklevel=2,
            )

    def bands_by_line(self) -> Dict[int, List[ExposureBand]]:
        """Group bands by line-of-business number."""
        grouped: Dict[int, List[ExposureBand]] = defaultdict(list)
        for band in self.bands:
            grouped[band.lob].append(band)
        return dict(sorted(grouped.items()))

    def synthesize(self) -> Dict[int, PiecewiseSurvivalCurve]:
        """Synthesize the claim-size curve of every line.

        The attritional threshold of the line is placed on the grid so the
        large/attritional split is read at an exact grid point.
        """
        curves = {}
        for lob, bands in self.bands_by_line().items():
            line_config = self.config.for_line(lob)
            curves[lob] = synthesize_curve(
                bands,
                line_config.max_claim_size_for_grid,
                self.config.grid,
                breakpoints=(line_config.attritional_threshold,),
            )
        return curves

    def _resolve_seed(self) -> int:
        seed = self.config.simulation.random_seed
        if seed is None:
            seed = int(np.random.SeedSequence().generate_state(1, dtype=np.uint32)[0])
            logger.info("No random seed configured; drew base seed %d", seed)
        return seed

    def run(
        self,
        progress_callback: Optional[Callable[[int, int, float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationResults:
        """Run rating, synthesis, simulation and validation.

        Args:
            progress_callback: Optional callback invoked with
                ``(completed, total, elapsed_seconds)`` per line.
            cancel_event: Optional event; when set, remaining trials are
                abandoned. The lines after the cancelled one are simulated
                over its completed trial ids, and the results cover those trials.

        Returns:
            SimulationResults of the run.

        Raises:
            SimulationError: If a trial produces non-finite values or the run
                is cancelled before any trial completes.
        """
        start_time = time.time()
        logger.info(
            "Starting run: %d bands, %d layers, %d trials",
            len(self.bands),
            len(self.layers),
            self.config.simulation.trial_count,
        )

        estimates = self.rater.rate()
        curves = self.synthesize()
        base_seed = self._resolve_seed()
        grouped = self.bands_by_line()

        contexts: Dict[int, TrialContext] = {}
        biases: Dict[int, float] = {}
        trials_by_line: Dict[int, List[SimulationTrial]] = {}
        completed_ids: Optional[List[int]] = None

        for lob, curve in curves.items():
            line_config = self.config.for_line(lob)
            context = TrialContext.from_curve(curve, line_config, lob, base_seed)
            contexts[lob] = context
            biases[lob] = self._check_discretization(lob, grouped[lob], context)

            simulator = CollectiveRiskSimulator(context, line_config)
            if completed_ids is None:
                run = simulator.run(progress_callback=progress_callback, cancel_event=cancel_event)
                if run.partial:
                    completed_ids = self._completed_trial_ids(run.trials)
            else:
                # Later lines cover exactly the trials of the cancelled line
                run = simulator.run(progress_callback=progress_callback, trial_ids=completed_ids)
            trials_by_line[lob] = run.trials

        partial = completed_ids is not None
        trial_count = self.config.simulation.trial_count
        if partial:
            kept = set(completed_ids)
            trials_by_line = {
                lob: [trial for trial in trials if trial.trial_id in kept]
                for lob, trials in trials_by_line.items()
            }
            trial_count = len(kept)

        diagnostics: Dict[int, LineDiagnostics] = {}
        for lob, line_trials in trials_by_line.items():
            line_run = SimulationRun(trials=line_trials, requested_trials=trial_count)
            diagnostics[lob] = LineDiagnostics(
                lob=lob,
                n_bands=len(grouped[lob]),
                total_frequency=contexts[lob].total_frequency,
                probability_large=contexts[lob].probability_large,
                discretization_bias=biases[lob],
                trials_completed=len(line_trials),
                zero_claim_trials=line_run.zero_claim_trials,
                mean_mixing_draw=line_run.mean_mixing_draw,
            )

        trials = [trial for lob in sorted(trials_by_line) for trial in trials_by_line[lob]]

        records = aggregate_layer_losses(trials, self.layers)
        validations = validate_layers(
            simulated_layer_means(records, self.layers, trial_count),
            self.rater.layer_totals(),
            self.config.validation.tolerance,
            warn_on_failure=self.config.validation.warn_on_failure,
        )

        results = SimulationResults(
            trials=trials,
            trial_count=trial_count,
            estimates=estimates,
            curves=curves,
            event_loss_table=build_event_loss_table(trials),
            layered_losses=records_to_frame(records),
            validations=validations,
            diagnostics=diagnostics,
            base_seed=base_seed,
            execution_time=time.time() - start_time,
            partial=partial,
            config=self.config,
        )
        logger.info(
            "Run finished in %.2fs: %d/%d layers within tolerance",
            results.execution_time,
            sum(v.within_tolerance for v in validations),
            len(validations),
        )
        return results

    def _check_discretization(
        self, lob: int, bands: Sequence[ExposureBand], context: TrialContext
    ) -> float:
        bias = discretization_bias(bands, context.sampler)
        tolerance = self.config.validation.discretization_tolerance
        if abs(bias) > tolerance:
            message = (
                f"Line {lob}: grid sampling biases the large-claim mean by {bias:+.3%} "
                f"(tolerance {tolerance:.3%}); consider a finer grid"
            )
            logger.warning(message)
            warnings.warn(message, SamplingDiscretizationWarning, stacklevel=3)
        else:
            logger.debug("Line %d: grid sampling bias %+.4f%%", lob, bias * 100)
        return bias

    @staticmethod
    def _completed_trial_ids(trials: Sequence[SimulationTrial]) -> List[int]:
        """Trial ids of a cancelled line; the run is abandoned when there are none."""
        if not trials:
            raise SimulationError("Run was cancelled before any trial completed")
        logger.warning("Run cancelled: results cover %d completed trials", len(trials))
        return [trial.trial_id for trial in trials]
