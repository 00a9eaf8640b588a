"""Tests for the command line interface."""

import pandas as pd
import pytest

from noncat_sim.cli import build_parser, load_config, main

BAND_HEADER = ["id", "limit", "attach", "premium", "gross_loss_ratio", "mu", "sigma", "lob"]
BAND_ROWS = [
    ["B1M", 1_000_000, 0, 5e6, 0.6, 10.5, 1.8, 1],
    ["B2M", 2_000_000, 0, 1e7, 0.65, 10, 2, 1],
]
LAYER_ROWS = [["500xs500", 500_000, 500_000], ["1Mxs1M", 1_000_000, 1_000_000]]


@pytest.fixture
def inputs(write_csv, tmp_path):
    """Band, layer and config files for a small run."""
    bands = write_csv("bands.csv", BAND_HEADER, BAND_ROWS)
    layers = write_csv("layers.csv", ["id", "limit", "attach"], LAYER_ROWS)
    config = tmp_path / "run.yaml"
    config.write_text(
        "simulation:\n  trial_count: 200\n"
        "logging:\n  enabled: false\n"
        "validation:\n  warn_on_failure: false\n",
        encoding="utf-8",
    )
    return bands, layers, config


def base_args(inputs, tmp_path):
    """Arguments common to every run."""
    bands, layers, config = inputs
    return [
        "--bands",
        str(bands),
        "--layers",
        str(layers),
        "--config",
        str(config),
        "--output",
        str(tmp_path / "out"),
        "--seed",
        "2020",
    ]


class TestLoadConfig:
    """Test command-line overrides."""

    def test_overrides(self, inputs, tmp_path):
        """Flags override the configuration file."""
        args = build_parser().parse_args(base_args(inputs, tmp_path) + ["--trials", "50", "--workers", "3"])
        config = load_config(args)
        assert config.simulation.trial_count == 50
        assert config.simulation.random_seed == 2020
        assert config.simulation.parallel
        assert config.simulation.n_workers == 3
        assert config.output.output_directory == str(tmp_path / "out")

    def test_file_values_kept(self, inputs, tmp_path):
        """Values without a flag come from the file."""
        args = build_parser().parse_args(base_args(inputs, tmp_path))
        config = load_config(args)
        assert config.simulation.trial_count == 200
        assert not config.logging.enabled


class TestMain:
    """Test exit codes and outputs."""

    def test_success(self, inputs, tmp_path, capsys):
        """A valid run writes the tables and exits 0."""
        assert main(base_args(inputs, tmp_path)) == 0
        out = capsys.readouterr().out
        assert "Simulation Results Summary" in out
        assert "[OK] yelt:" in out

        yelt = pd.read_csv(tmp_path / "out" / "event_loss_table.csv")
        assert list(yelt.columns) == ["trialid", "eventid", "day", "loss"]
        assert yelt["trialid"].between(1, 200).all()

    def test_reproducible(self, inputs, tmp_path):
        """The same seed writes the same event-loss table."""
        args = base_args(inputs, tmp_path)
        assert main(args) == 0
        first = pd.read_csv(tmp_path / "out" / "event_loss_table.csv")
        assert main(args) == 0
        second = pd.read_csv(tmp_path / "out" / "event_loss_table.csv")
        pd.testing.assert_frame_equal(first, second)

    def test_strict_failure(self, inputs, tmp_path, capsys):
        """With --strict, a layer outside tolerance exits 1."""
        bands, layers, config = inputs
        config.write_text(
            config.read_text(encoding="utf-8") + "  tolerance: 1.0e-9\n", encoding="utf-8"
        )
        assert main(base_args(inputs, tmp_path) + ["--strict"]) == 1
        assert "outside tolerance" in capsys.readouterr().err

    def test_missing_schedule(self, inputs, tmp_path, capsys):
        """A missing input file exits 2."""
        args = base_args(inputs, tmp_path)
        args[1] = str(tmp_path / "missing.csv")
        assert main(args) == 2
        assert "not found" in capsys.readouterr().err

    def test_invalid_band(self, inputs, tmp_path, write_csv, capsys):
        """A malformed band row exits 2."""
        write_csv("bands.csv", BAND_HEADER, [["BAD", 1_000_000, 0, 5e6, 1.7, 10, 2, 1]])
        assert main(base_args(inputs, tmp_path)) == 2
        assert "row 1" in capsys.readouterr().err

    def test_invalid_config(self, inputs, tmp_path, capsys):
        """An invalid configuration value exits 2."""
        _, _, config = inputs
        config.write_text("simulation:\n  trial_count: 0\n", encoding="utf-8")
        assert main(base_args(inputs, tmp_path)) == 2
        assert "Invalid input" in capsys.readouterr().err
