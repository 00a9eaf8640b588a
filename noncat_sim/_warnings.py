"""Custom warning classes for the noncat_sim package.

These warning classes allow users to programmatically filter, suppress,
or capture warnings using Python's standard ``warnings`` module.

Example:
    Suppress degenerate-band notices in a batch run::

        import warnings
        from noncat_sim._warnings import DegenerateBandWarning

        warnings.filterwarnings("ignore", category=DegenerateBandWarning)

    Capture discretization quality signals during simulation::

        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always", SamplingDiscretizationWarning)
            # ... run simulation ...
            issues = [x for x in w if issubclass(x.category, SamplingDiscretizationWarning)]
"""


class NoncatSimWarning(UserWarning):
    """Base class for all noncat_sim warnings."""


class ConfigurationWarning(NoncatSimWarning):
    """Unusual or potentially incorrect configuration parameters.

    Issued when parameter values are legal but suspicious, e.g. per-line
    overrides for a line of business that has no bands.
    """


class DataQualityWarning(NoncatSimWarning):
    """Runtime data-quality observations on the input schedules or results."""


class DegenerateBandWarning(DataQualityWarning):
    """An exposure band has zero width, so its layer ratios are defined as 0."""


class SamplingDiscretizationWarning(DataQualityWarning):
    """Large-claim sampling shows measurable bias from the claim-size grid.

    Large claims are drawn from grid points of the synthesized curve without
    interpolation. The relative difference between the grid conditional mean
    and the continuous conditional mean is reported as a quality metric; this
    warning fires when it exceeds the configured tolerance.
    """


class ReconciliationWarning(DataQualityWarning):
    """Simulated mean layer loss is outside tolerance of the exposure estimate."""
