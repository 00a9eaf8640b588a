"""Configuration management using Pydantic v2 models.

This package provides the configuration classes for exposure rating and
collective-risk simulation runs. Pydantic models give validation, type
safety, and YAML round-tripping of every run parameter.

Sub-modules:
    core: Master Config class that composes all sub-configs.
    simulation: Simulation, grid, per-line, and validation configs.
    reporting: Output and logging configs.
    exceptions: ConfigurationError for cross-field problems.

Examples:
    Quick start with defaults::

        from noncat_sim.config import Config

        config = Config()

    Loading from file::

        config = Config.from_yaml(Path("casualty_xol.yaml"))

    Runtime overrides::

        config = config.with_overrides({"simulation.trial_count": 50_000})

Note:
    All monetary values are in nominal currency units. Rates, ratios and
    coefficients of variation are expressed as decimals (0.1 = 10%).
"""

from .core import Config
from .exceptions import ConfigurationError
from .reporting import LoggingConfig, OutputConfig
from .simulation import GridConfig, LineOfBusinessConfig, SimulationConfig, ValidationConfig

__all__ = [
    "Config",
    "ConfigurationError",
    "GridConfig",
    "LineOfBusinessConfig",
    "LoggingConfig",
    "OutputConfig",
    "SimulationConfig",
    "ValidationConfig",
]
