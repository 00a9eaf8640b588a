"""Exception types raised by the rating and simulation pipeline."""


class InvalidParameterError(ValueError):
    """Raised for non-positive scale/shape parameters or malformed band/layer rows.

    Always raised before any simulation work starts.
    """


class SimulationError(RuntimeError):
    """Raised when a numeric failure (NaN/inf, decreasing CDF) invalidates a run.

    The run halts before producing any output records.
    """
