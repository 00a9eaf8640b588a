"""Tests for the event-loss table and its companion tables."""

import numpy as np
import pandas as pd
import pytest

from noncat_sim.exceptions import InvalidParameterError
from noncat_sim.export import (
    ATTRITIONAL_DAY,
    YELT_COLUMNS,
    build_event_catalog,
    build_event_loss_table,
    build_simulation_grid,
    event_id,
    split_loss_sets,
)
from noncat_sim.simulator import SimulationTrial


def make_trial(trial_id, lob, losses, attritional=0.0):
    """Trial with the given large losses and an optional attritional aggregate."""
    losses = np.asarray(losses, dtype=float)
    n_attr = 2 if attritional else 0
    return SimulationTrial(
        trial_id, lob, 1.0, losses.size + n_attr, losses.size, n_attr, losses, attritional
    )


@pytest.fixture
def trials():
    """Two lines over three trials, including a zero-claim trial."""
    return [
        make_trial(1, 1, [300_000, 150_000], attritional=40_000.0),
        make_trial(2, 1, []),
        make_trial(3, 1, [500_000], attritional=10_000.0),
        make_trial(1, 2, [], attritional=25_000.0),
        make_trial(3, 2, [120_000]),
    ]


class TestEventId:
    """Test event ids."""

    def test_line_and_loss_type(self):
        """The line is the tens digit and the loss type the units digit."""
        assert event_id(1, large=False) == 10
        assert event_id(1, large=True) == 11
        assert event_id(9, large=True) == 91


class TestEventLossTable:
    """Test YELT construction."""

    def test_columns_and_types(self, trials):
        """Columns are exactly trialid, eventid, day, loss."""
        yelt = build_event_loss_table(trials)
        assert list(yelt.columns) == YELT_COLUMNS
        for column in ("trialid", "eventid", "day"):
            assert yelt[column].dtype == np.int64
        assert yelt["loss"].dtype == float

    def test_rows(self, trials):
        """Large claims are numbered by day; attritional aggregates use the sentinel day."""
        yelt = build_event_loss_table(trials)
        assert yelt.values.tolist() == [
            [1, 10, ATTRITIONAL_DAY, 40_000],
            [1, 11, 1, 300_000],
            [1, 11, 2, 150_000],
            [1, 20, ATTRITIONAL_DAY, 25_000],
            [3, 10, ATTRITIONAL_DAY, 10_000],
            [3, 11, 1, 500_000],
            [3, 21, 1, 120_000],
        ]

    def test_losses_preserved(self, trials):
        """Total YELT loss equals total simulated loss."""
        yelt = build_event_loss_table(trials)
        assert yelt["loss"].sum() == pytest.approx(sum(t.total_loss for t in trials))

    def test_zero_claim_trial_has_no_rows(self, trials):
        """Trials without claims produce no records."""
        assert 2 not in build_event_loss_table(trials)["trialid"].values

    def test_empty(self):
        """No trials gives an empty table with the YELT columns."""
        yelt = build_event_loss_table([])
        assert list(yelt.columns) == YELT_COLUMNS
        assert yelt.empty
        assert yelt["trialid"].dtype == np.int64


class TestCompanionTables:
    """Test catalog, grid and loss-set derivations."""

    def test_event_catalog(self, trials):
        """Distinct events carry rate, line and loss type."""
        catalog = build_event_catalog(build_event_loss_table(trials), trial_count=3)
        assert catalog["eventid"].tolist() == [10, 11, 20, 21]
        assert catalog["lob_num"].tolist() == [1, 1, 2, 2]
        assert catalog["loss_type"].tolist() == ["attr", "large", "attr", "large"]
        np.testing.assert_allclose(catalog["rate"], 1 / 3)

    def test_event_catalog_requires_trials(self, trials):
        """The rate needs a positive trial count."""
        with pytest.raises(InvalidParameterError):
            build_event_catalog(build_event_loss_table(trials), trial_count=0)

    def test_simulation_grid(self, trials):
        """Occurrences are ordered by trial, day, then event."""
        grid = build_simulation_grid(build_event_loss_table(trials))
        assert list(grid.columns) == ["trialid", "eventid", "day"]
        assert grid.values.tolist() == [
            [1, 10, 0],
            [1, 20, 0],
            [1, 11, 1],
            [1, 11, 2],
            [3, 10, 0],
            [3, 11, 1],
            [3, 21, 1],
        ]

    def test_split_loss_sets(self, trials):
        """One loss set per line and loss type, each with the YELT columns."""
        yelt = build_event_loss_table(trials)
        loss_sets = split_loss_sets(yelt)
        assert sorted(loss_sets) == [(1, "attr"), (1, "large"), (2, "attr"), (2, "large")]
        assert all(list(frame.columns) == YELT_COLUMNS for frame in loss_sets.values())
        assert sum(len(frame) for frame in loss_sets.values()) == len(yelt)
        pd.testing.assert_series_equal(
            loss_sets[(1, "large")]["loss"],
            pd.Series([300_000.0, 150_000.0, 500_000.0], name="loss"),
        )
