"""Non-catastrophe exposure rating and collective-risk loss simulation."""

from ._version import __version__

# Lazy imports keep ``import noncat_sim`` light (no scipy/pandas until needed)

__all__ = [
    "__version__",
    "CollectiveRiskSimulator",
    "Config",
    "ConfigurationError",
    "ExposureBand",
    "ExposureEstimate",
    "ExposureRater",
    "ExposureSimulationEngine",
    "InvalidParameterError",
    "Layer",
    "LognormalSeverity",
    "PiecewiseSurvivalCurve",
    "SimulationConfig",
    "SimulationError",
    "SimulationResults",
    "SimulationTrial",
    "synthesize_curve",
]


def __getattr__(name):
    """Lazy import public names on first access."""
    if name in ("Config", "ConfigurationError", "SimulationConfig"):
        from . import config

        return getattr(config, name)
    elif name in ("InvalidParameterError", "SimulationError"):
        from . import exceptions

        return getattr(exceptions, name)
    elif name in ("ExposureBand", "ExposureEstimate", "ExposureRater", "Layer"):
        from . import exposure

        return getattr(exposure, name)
    elif name == "LognormalSeverity":
        from .severity import LognormalSeverity

        return LognormalSeverity
    elif name in ("PiecewiseSurvivalCurve", "synthesize_curve"):
        from . import synthesis

        return getattr(synthesis, name)
    elif name in ("CollectiveRiskSimulator", "SimulationTrial"):
        from . import simulator

        return getattr(simulator, name)
    elif name in ("ExposureSimulationEngine", "SimulationResults"):
        from . import engine

        return getattr(engine, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
