"""Tests for the end-to-end rating and simulation engine."""

import threading
import warnings

import numpy as np
import pandas as pd
import pytest

from noncat_sim._warnings import ConfigurationWarning, SamplingDiscretizationWarning
from noncat_sim.config import (
    Config,
    ConfigurationError,
    GridConfig,
    LineOfBusinessConfig,
    LoggingConfig,
    OutputConfig,
    SimulationConfig,
    ValidationConfig,
)
from noncat_sim.engine import ExposureSimulationEngine
from noncat_sim.exceptions import InvalidParameterError, SimulationError
from noncat_sim.export import YELT_COLUMNS, write_results


def run_engine(config, bands, layers):
    """Run the engine with reconciliation warnings silenced."""
    config = config.with_overrides({"validation.warn_on_failure": False})
    return ExposureSimulationEngine(config, bands, layers).run()


class TestEngineSetup:
    """Test engine construction."""

    def test_requires_bands_and_layers(self, quiet_config, casualty_bands, xol_layers):
        """Empty schedules are rejected before any work."""
        with pytest.raises(InvalidParameterError, match="band"):
            ExposureSimulationEngine(quiet_config, [], xol_layers)
        with pytest.raises(InvalidParameterError, match="layer"):
            ExposureSimulationEngine(quiet_config, casualty_bands, [])

    def test_inconsistent_config(self, casualty_bands, xol_layers):
        """Cross-field configuration problems stop the run."""
        config = Config(
            simulation=SimulationConfig(max_claim_size_for_grid=1e7),
            lines={1: LineOfBusinessConfig(attritional_threshold=5e7)},
        )
        with pytest.raises(ConfigurationError):
            ExposureSimulationEngine(config, casualty_bands, xol_layers)

    def test_overrides_for_missing_line(self, quiet_config, casualty_bands, xol_layers):
        """Overrides for a line without bands are flagged."""
        config = quiet_config.model_copy(update={"lines": {4: LineOfBusinessConfig(mix_cv=0.2)}})
        with pytest.warns(ConfigurationWarning, match=r"\[4\]"):
            ExposureSimulationEngine(config, casualty_bands, xol_layers)

    def test_bands_by_line(self, quiet_config, multi_line_bands, xol_layers):
        """Bands are grouped by line number in ascending order."""
        grouped = ExposureSimulationEngine(quiet_config, multi_line_bands, xol_layers).bands_by_line()
        assert list(grouped) == [1, 2]
        assert [b.id for b in grouped[1]] == ["B1M", "B2M"]
        assert [b.id for b in grouped[2]] == ["P1M"]


class TestEngineRun:
    """Test a full run."""

    def test_results(self, quiet_config, casualty_bands, xol_layers):
        """A run produces every output table."""
        results = run_engine(quiet_config, casualty_bands, xol_layers)

        assert results.trial_count == 300
        assert not results.partial
        assert results.base_seed == 7
        assert len(results.trials) == 300
        assert list(results.event_loss_table.columns) == YELT_COLUMNS
        assert set(results.event_loss_table["eventid"]) <= {10, 11}
        assert len(results.layered_losses) == 300 * len(xol_layers)
        assert len(results.estimates) == len(casualty_bands) * len(xol_layers)
        assert [v.layer_id for v in results.validations] == ["500xs500", "1Mxs1M"]
        assert list(results.curves) == [1]

        diag = results.diagnostics[1]
        assert diag.n_bands == 2
        assert diag.trials_completed == 300
        assert 0 < diag.probability_large < 1
        assert abs(diag.discretization_bias) < quiet_config.validation.discretization_tolerance

    def test_yelt_losses_match_trials(self, quiet_config, casualty_bands, xol_layers):
        """The event-loss table carries every simulated loss."""
        results = run_engine(quiet_config, casualty_bands, xol_layers)
        assert results.event_loss_table["loss"].sum() == pytest.approx(
            sum(trial.total_loss for trial in results.trials)
        )

    def test_same_seed_same_output(self, quiet_config, casualty_bands, xol_layers):
        """Runs are reproducible from the seed."""
        first = run_engine(quiet_config, casualty_bands, xol_layers)
        second = run_engine(quiet_config, casualty_bands, xol_layers)
        pd.testing.assert_frame_equal(first.event_loss_table, second.event_loss_table)
        pd.testing.assert_frame_equal(first.layered_losses, second.layered_losses)

    def test_different_seed_different_output(self, quiet_config, casualty_bands, xol_layers):
        """Changing the seed changes the losses."""
        other = quiet_config.with_overrides({"simulation.random_seed": 8})
        first = run_engine(quiet_config, casualty_bands, xol_layers)
        second = run_engine(other, casualty_bands, xol_layers)
        assert not first.event_loss_table.equals(second.event_loss_table)

    def test_unseeded_run_records_seed(self, quiet_config, casualty_bands, xol_layers):
        """Without a seed, the drawn base seed is reported."""
        config = quiet_config.with_overrides(
            {"simulation.random_seed": None, "simulation.trial_count": 20}
        )
        results = run_engine(config, casualty_bands, xol_layers)
        assert isinstance(results.base_seed, int)

        replay = run_engine(
            config.with_overrides({"simulation.random_seed": results.base_seed}),
            casualty_bands,
            xol_layers,
        )
        pd.testing.assert_frame_equal(results.event_loss_table, replay.event_loss_table)

    def test_multiple_lines(self, quiet_config, multi_line_bands, xol_layers):
        """Each line gets its own curve, events and diagnostics."""
        results = run_engine(quiet_config, multi_line_bands, xol_layers)
        assert sorted(results.curves) == [1, 2]
        assert sorted(results.diagnostics) == [1, 2]
        assert len(results.trials) == 600
        assert set(results.event_loss_table["eventid"]) <= {10, 11, 20, 21}
        # Layers pool both lines per trial
        assert len(results.layered_losses) == 300 * len(xol_layers)

    def test_line_overrides(self, quiet_config, multi_line_bands, xol_layers):
        """A line-specific threshold applies to that line only."""
        config = quiet_config.model_copy(
            update={"lines": {2: LineOfBusinessConfig(attritional_threshold=200_000)}}
        )
        results = run_engine(config, multi_line_bands, xol_layers)
        assert 200_000 in results.curves[2].claim_sizes
        for trial in results.trials:
            threshold = 200_000 if trial.lob == 2 else 100_000
            assert np.all(trial.large_claim_losses > threshold)

    def test_validation_reports_run_means(self, quiet_config, casualty_bands, xol_layers):
        """Each validation pairs the run's mean ceded loss with the rated layer loss."""
        results = run_engine(quiet_config, casualty_bands, xol_layers)
        ceded = results.layered_losses.groupby("layer_id")["ceded_loss"].sum()
        rated = pd.DataFrame(
            [(e.layer_id, e.loss_in_layer) for e in results.estimates],
            columns=["layer_id", "loss_in_layer"],
        ).groupby("layer_id")["loss_in_layer"].sum()

        tolerance = quiet_config.validation.tolerance
        for validation in results.validations:
            assert validation.simulated_mean > 0
            assert validation.simulated_mean == pytest.approx(
                ceded[validation.layer_id] / results.trial_count
            )
            assert validation.analytic_loss == pytest.approx(rated[validation.layer_id])
            assert validation.relative_error == pytest.approx(
                validation.simulated_mean / validation.analytic_loss - 1
            )
            assert validation.within_tolerance == (abs(validation.relative_error) <= tolerance)

    def test_summary(self, quiet_config, multi_line_bands, xol_layers):
        """The summary reports lines and layers."""
        summary = run_engine(quiet_config, multi_line_bands, xol_layers).summary()
        assert "Simulation Results Summary" in summary
        assert "Line 1:" in summary
        assert "Line 2:" in summary
        assert "500xs500" in summary
        assert "1Mxs1M" in summary


class TestEngineDiagnostics:
    """Test quality warnings and cancellation."""

    def test_coarse_grid_warns(self, casualty_bands, xol_layers):
        """A coarse grid triggers a discretization warning."""
        config = Config(
            simulation=SimulationConfig(trial_count=20, random_seed=1),
            grid=GridConfig(initial_step=1_000, points_per_step=2),
            validation=ValidationConfig(warn_on_failure=False),
            logging=LoggingConfig(enabled=False),
        )
        with pytest.warns(SamplingDiscretizationWarning):
            results = ExposureSimulationEngine(config, casualty_bands, xol_layers).run()
        assert results.diagnostics[1].discretization_bias > 0.01

    def test_default_grid_does_not_warn(self, quiet_config, casualty_bands, xol_layers):
        """The default grid stays within the discretization tolerance."""
        with warnings.catch_warnings():
            warnings.simplefilter("error", SamplingDiscretizationWarning)
            run_engine(quiet_config, casualty_bands, xol_layers)

    def test_cancel_before_start(self, quiet_config, casualty_bands, xol_layers):
        """Cancelling before any trial completes is an error."""
        cancel = threading.Event()
        cancel.set()
        engine = ExposureSimulationEngine(quiet_config, casualty_bands, xol_layers)
        with pytest.raises(SimulationError, match="cancelled"):
            engine.run(cancel_event=cancel)

    def test_partial_run(self, quiet_config, casualty_bands, xol_layers):
        """A cancelled run covers the completed trials."""
        cancel = threading.Event()

        def stop(completed, total, elapsed):
            if completed >= 30:
                cancel.set()

        config = quiet_config.with_overrides({"validation.warn_on_failure": False})
        results = ExposureSimulationEngine(config, casualty_bands, xol_layers).run(
            progress_callback=stop, cancel_event=cancel
        )
        assert results.partial
        assert results.trial_count == 30
        assert len(results.layered_losses) == 30 * len(xol_layers)
        assert "(partial)" in results.summary()

    def test_partial_run_multiple_lines(self, quiet_config, multi_line_bands, xol_layers):
        """After a cancel, the remaining lines cover the same completed trials."""
        cancel = threading.Event()

        def stop(completed, total, elapsed):
            if completed >= 30:
                cancel.set()

        config = quiet_config.with_overrides({"validation.warn_on_failure": False})
        results = ExposureSimulationEngine(config, multi_line_bands, xol_layers).run(
            progress_callback=stop, cancel_event=cancel
        )
        assert results.partial
        assert results.trial_count == 30
        assert len(results.trials) == 60
        assert results.diagnostics[1].trials_completed == 30
        assert results.diagnostics[2].trials_completed == 30
        assert len(results.layered_losses) == 30 * len(xol_layers)

        ids = {lob: [t.trial_id for t in results.trials if t.lob == lob] for lob in (1, 2)}
        assert ids[1] == ids[2] == list(range(1, 31))

        # Line 2 draws the same losses as in an uncancelled run
        full = run_engine(quiet_config, multi_line_bands, xol_layers)
        expected = [t.total_loss for t in full.trials if t.lob == 2 and t.trial_id <= 30]
        assert [t.total_loss for t in results.trials if t.lob == 2] == pytest.approx(expected)


class TestWriteResults:
    """Test CSV output of a run."""

    def test_writes_all_tables(self, tmp_path, quiet_config, casualty_bands, xol_layers):
        """The YELT and companion tables are written and readable."""
        results = run_engine(quiet_config, casualty_bands, xol_layers)
        written = write_results(results, OutputConfig(output_directory=str(tmp_path / "out")))

        assert set(written) == {
            "yelt",
            "estimates",
            "layered_losses",
            "validation",
            "event_catalog",
            "simulation_grid",
        }
        assert all(path.exists() for path in written.values())

        yelt = pd.read_csv(written["yelt"])
        assert list(yelt.columns) == YELT_COLUMNS
        assert len(yelt) == len(results.event_loss_table)
        assert yelt["loss"].sum() == pytest.approx(results.event_loss_table["loss"].sum())

        catalog = pd.read_csv(written["event_catalog"])
        assert catalog["rate"].tolist() == pytest.approx([1 / 300] * len(catalog))

    def test_yelt_only(self, tmp_path, quiet_config, casualty_bands, xol_layers):
        """Companion tables can be switched off."""
        results = run_engine(quiet_config, casualty_bands, xol_layers)
        written = write_results(
            results,
            OutputConfig(
                output_directory=str(tmp_path),
                yelt_filename="yelt.csv",
                write_companion_tables=False,
            ),
        )
        assert list(written) == ["yelt"]
        assert written["yelt"].name == "yelt.csv"
