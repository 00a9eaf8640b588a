"""Tests for the Pydantic configuration models."""

import logging

from pydantic import ValidationError
import pytest

from noncat_sim.config import (
    Config,
    ConfigurationError,
    GridConfig,
    LineOfBusinessConfig,
    LoggingConfig,
    SimulationConfig,
)
from noncat_sim.config.utils import deep_merge, set_dotted


class TestSimulationConfig:
    """Test simulation parameter validation."""

    def test_defaults(self):
        """Defaults describe a serial 10,000-trial run."""
        config = SimulationConfig()
        assert config.trial_count == 10_000
        assert config.attritional_threshold < config.max_claim_size_for_grid
        assert config.random_seed is None
        assert not config.parallel

    @pytest.mark.parametrize(
        "field,value",
        [
            ("trial_count", 0),
            ("attritional_threshold", 0),
            ("mix_cv", -0.1),
            ("attritional_severity_mean", 0),
            ("random_seed", -1),
        ],
    )
    def test_invalid_values(self, field, value):
        """Out-of-range parameters are rejected."""
        with pytest.raises(ValidationError):
            SimulationConfig(**{field: value})

    def test_threshold_must_be_inside_grid(self):
        """The attritional threshold must be below the grid maximum."""
        with pytest.raises(ValidationError, match="max_claim_size_for_grid"):
            SimulationConfig(attritional_threshold=5e6, max_claim_size_for_grid=1e6)


class TestGridConfig:
    """Test grid settings."""

    def test_epsilon_smaller_than_step(self):
        """The straddle offset cannot reach the neighbouring grid point."""
        with pytest.raises(ValidationError, match="limit_epsilon"):
            GridConfig(initial_step=1.0, limit_epsilon=0.5)


class TestConfig:
    """Test the composed configuration."""

    def test_default_is_consistent(self):
        """Config() is valid as is."""
        config = Config()
        assert config.collect_issues() == []
        config.check_consistency()

    def test_yaml_round_trip(self, tmp_path):
        """Saving and loading preserves every value."""
        config = Config(
            simulation=SimulationConfig(trial_count=2_500, random_seed=42, mix_cv=0.05),
            lines={2: LineOfBusinessConfig(attritional_severity_mean=40_000)},
        )
        path = tmp_path / "run.yaml"
        config.to_yaml(path)
        loaded = Config.from_yaml(path)
        assert loaded.simulation == config.simulation
        assert loaded.lines == config.lines

    def test_from_yaml_skips_private_anchors(self, tmp_path):
        """Top-level keys starting with an underscore are ignored."""
        path = tmp_path / "run.yaml"
        path.write_text(
            "_defaults: &d\n  trial_count: 500\n"
            "simulation:\n  <<: *d\n  random_seed: 3\n",
            encoding="utf-8",
        )
        config = Config.from_yaml(path)
        assert config.simulation.trial_count == 500
        assert config.simulation.random_seed == 3

    def test_from_yaml_missing(self, tmp_path):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "absent.yaml")

    def test_from_dict_merges_base(self):
        """Partial dictionaries override a base config section by section."""
        base = Config(simulation=SimulationConfig(trial_count=100, random_seed=1))
        merged = Config.from_dict({"simulation": {"mix_cv": 0.3}}, base_config=base)
        assert merged.simulation.trial_count == 100
        assert merged.simulation.mix_cv == 0.3

    def test_with_overrides(self):
        """Dot-notation overrides create a new config and are recorded."""
        config = Config()
        updated = config.with_overrides({"simulation.trial_count": 50, "grid.initial_step": 100})
        assert updated.simulation.trial_count == 50
        assert updated.grid.initial_step == 100
        assert config.simulation.trial_count == 10_000
        assert updated.overrides["simulation.trial_count"] == 50

    def test_with_overrides_unknown_section(self):
        """Unknown sections are rejected with the valid ones listed."""
        with pytest.raises(ValueError, match="not a valid config section"):
            Config().with_overrides({"simulaton.trial_count": 5})

    def test_for_line(self):
        """Per-line overrides fall back to the shared simulation settings."""
        config = Config(
            simulation=SimulationConfig(mix_cv=0.1, attritional_threshold=100_000),
            lines={2: LineOfBusinessConfig(mix_cv=0.3)},
        )
        assert config.for_line(1) is config.simulation
        line = config.for_line(2)
        assert line.mix_cv == 0.3
        assert line.attritional_threshold == 100_000

    def test_line_numbers_are_single_digit(self):
        """Line numbers must fit the event-id tag."""
        with pytest.raises(ValidationError, match="1-9"):
            Config(lines={10: LineOfBusinessConfig()})

    def test_check_consistency(self):
        """A line threshold beyond the grid is a cross-field issue."""
        config = Config(
            simulation=SimulationConfig(max_claim_size_for_grid=1e7),
            lines={3: LineOfBusinessConfig(attritional_threshold=2e7)},
        )
        issues = config.collect_issues()
        assert len(issues) == 1
        assert "Line 3" in issues[0]
        with pytest.raises(ConfigurationError) as exc_info:
            config.check_consistency()
        assert exc_info.value.issues == issues
        assert "Inconsistent simulation configuration (1 issue)" in str(exc_info.value)


class TestSetupLogging:
    """Test logging configuration."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        """Leave the package logger as it was."""
        logger = logging.getLogger("noncat_sim")
        handlers, level = list(logger.handlers), logger.level
        yield
        for handler in logger.handlers:
            handler.close()
        logger.handlers[:] = handlers
        logger.setLevel(level)

    def test_disabled(self):
        """Disabled logging leaves handlers untouched."""
        logger = logging.getLogger("noncat_sim")
        before = list(logger.handlers)
        Config(logging=LoggingConfig(enabled=False)).setup_logging()
        assert logger.handlers == before

    def test_file_handler(self, tmp_path):
        """A log file is created under the output directory."""
        config = Config.from_dict(
            {
                "output": {"output_directory": str(tmp_path)},
                "logging": {"level": "DEBUG", "log_file": "run.log", "console_output": False},
            }
        )
        config.setup_logging()
        logger = logging.getLogger("noncat_sim")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        logger.debug("hello")
        logger.handlers[0].flush()
        assert "hello" in (tmp_path / "run.log").read_text(encoding="utf-8")


class TestConfigUtils:
    """Test the dictionary helpers behind file merging and overrides."""

    def test_deep_merge_keeps_untouched_keys(self):
        """Nested sections merge key by key without mutating the inputs."""
        base = {"simulation": {"trial_count": 100, "mix_cv": 0.1}, "grid": {"initial_step": 10}}
        override = {"simulation": {"mix_cv": 0.3}}
        merged = deep_merge(base, override)
        assert merged == {
            "simulation": {"trial_count": 100, "mix_cv": 0.3},
            "grid": {"initial_step": 10},
        }
        assert base["simulation"]["mix_cv"] == 0.1

    def test_set_dotted_creates_sections(self):
        """Dotted paths reach into existing or new sections."""
        data = {"simulation": {"trial_count": 100}}
        set_dotted(data, "simulation.trial_count", 5)
        set_dotted(data, "output.yelt_filename", "yelt.csv")
        assert data == {
            "simulation": {"trial_count": 5},
            "output": {"yelt_filename": "yelt.csv"},
        }
