"""Master configuration class composing all sub-configurations.

Contains the top-level ``Config`` class that aggregates the simulation,
grid, validation, per-line, output, and logging configuration into one
validated object with YAML loading, saving, and override support.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
import yaml

from .exceptions import ConfigurationError
from .reporting import LoggingConfig, OutputConfig
from .simulation import GridConfig, LineOfBusinessConfig, SimulationConfig, ValidationConfig
from .utils import deep_merge, set_dotted


class Config(BaseModel):
    """Complete configuration for an exposure rating and simulation run.

    All sub-configs have sensible defaults, so ``Config()`` with no arguments
    creates a valid configuration for a 10,000-trial run.

    Examples:
        Minimal usage::

            config = Config()

        Override specific parameters::

            config = Config(simulation=SimulationConfig(trial_count=50_000, random_seed=1))

        From a YAML file::

            config = Config.from_yaml(Path("casualty_xol.yaml"))

        Line-specific attritional parameters::

            config = Config(lines={2: LineOfBusinessConfig(attritional_severity_mean=40_000)})
    """

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    grid: GridConfig = Field(default_factory=GridConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    lines: Dict[int, LineOfBusinessConfig] = Field(
        default_factory=dict, description="Per line-of-business overrides keyed by LOB number"
    )
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    overrides: Dict[str, Any] = Field(default_factory=dict, description="Runtime overrides")

    @field_validator("lines")
    @classmethod
    def validate_line_numbers(
        cls, v: Dict[int, LineOfBusinessConfig]
    ) -> Dict[int, LineOfBusinessConfig]:
        """Ensure line-of-business numbers fit the single-digit event-id tag.

        Args:
            v: Per-line overrides.

        Returns:
            The validated mapping.

        Raises:
            ValueError: If a line number is not in 1..9.
        """
        for lob in v:
            if not 1 <= lob <= 9:
                raise ValueError(f"Line of business numbers must be 1-9, got {lob}")
        return v

    # ------------------------------------------------------------------ #
    #  Factory methods
    # ------------------------------------------------------------------ #

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Config object with validated parameters.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValidationError: If configuration is invalid.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # Remove private anchors if present
        data = {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(**data)

    @classmethod
    def from_dict(cls, data: dict, base_config: Optional["Config"] = None) -> "Config":
        """Create config from dictionary, optionally overriding base config.

        Args:
            data: Dictionary with configuration parameters.
            base_config: Optional base configuration to override.

        Returns:
            Config object with validated parameters.
        """
        if base_config is None:
            return cls(**data)

        config_dict = base_config.model_dump()
        merged = deep_merge(config_dict, data)
        return cls(**merged)

    def with_overrides(self, overrides: Dict[str, Any]) -> "Config":
        """Create a new config with runtime overrides.

        Accepts a dictionary with dot-notation keys to override nested
        configuration values. Section-level dictionaries are also supported.

        Args:
            overrides: Dictionary mapping dot-notation paths to values, or
                section-level dictionaries.
                Example: ``{"simulation.trial_count": 50_000}``

        Returns:
            New Config instance with overrides applied.

        Raises:
            ValueError: If a path references an unknown config section.
        """
        data = self.model_dump()

        for key, value in overrides.items():
            section = key.split(".")[0]
            if section not in type(self).model_fields:
                valid = ", ".join(sorted(type(self).model_fields.keys()))
                raise ValueError(
                    f"Invalid config path '{key}': '{section}' is not a valid "
                    f"config section. Valid sections: {valid}"
                )
            if "." in key:
                set_dotted(data, key, value)
            elif isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = deep_merge(data[key], value)
            else:
                data[key] = value

        data["overrides"] = {**self.overrides, **overrides}

        return Config(**data)

    # ------------------------------------------------------------------ #
    #  Per-line resolution
    # ------------------------------------------------------------------ #

    def for_line(self, lob: int) -> SimulationConfig:
        """Resolve the simulation parameters for one line of business.

        Args:
            lob: Line-of-business number.

        Returns:
            SimulationConfig with any per-line overrides applied.
        """
        line = self.lines.get(lob)
        if line is None:
            return self.simulation
        line_overrides = line.model_dump(exclude_none=True)
        return SimulationConfig(**{**self.simulation.model_dump(), **line_overrides})

    # ------------------------------------------------------------------ #
    #  Validation
    # ------------------------------------------------------------------ #

    def collect_issues(self) -> List[str]:
        """Collect cross-field configuration problems.

        Returns:
            List of human-readable issue descriptions (empty when consistent).
        """
        issues = []
        grid_max = self.simulation.max_claim_size_for_grid

        for lob, line in sorted(self.lines.items()):
            if line.attritional_threshold is not None and line.attritional_threshold >= grid_max:
                issues.append(
                    f"Line {lob}: attritional_threshold {line.attritional_threshold:,.0f} "
                    f"is not below max_claim_size_for_grid {grid_max:,.0f}"
                )

        if self.grid.initial_step >= grid_max:
            issues.append(
                f"grid.initial_step {self.grid.initial_step:,.0f} is not below "
                f"max_claim_size_for_grid {grid_max:,.0f}"
            )

        return issues

    def check_consistency(self) -> None:
        """Raise if the configuration has cross-field problems.

        Raises:
            ConfigurationError: If :meth:`collect_issues` reports any issue.
        """
        issues = self.collect_issues()
        if issues:
            raise ConfigurationError(issues)

    # ------------------------------------------------------------------ #
    #  Serialization
    # ------------------------------------------------------------------ #

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file.

        Args:
            path: Path where to save the configuration.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)

    # ------------------------------------------------------------------ #
    #  Logging / paths
    # ------------------------------------------------------------------ #

    def setup_logging(self) -> None:
        """Configure logging based on settings.

        Sets up logging handlers for console and/or file output based
        on the logging configuration.
        """
        if not self.logging.enabled:
            return

        import logging
        import sys

        logger = logging.getLogger("noncat_sim")
        logger.setLevel(getattr(logging, self.logging.level))
        logger.handlers.clear()

        formatter = logging.Formatter(self.logging.format)

        if self.logging.console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        if self.logging.log_file:
            log_path = Path(self.output.output_directory) / self.logging.log_file
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    def validate_paths(self) -> None:
        """Create the output directory if it doesn't exist."""
        Path(self.output.output_directory).mkdir(parents=True, exist_ok=True)
