"""Event-loss table and companion tables for downstream loss-set loaders.

The event-loss table (YELT) is the one output contract of a simulation run.
Its columns are exactly ``trialid, eventid, day, loss``:

* ``eventid`` is ``lob * 10 + 0`` for the attritional aggregate and
  ``lob * 10 + 1`` for large claims.
* ``day`` numbers large claims ``1..n`` within each trial and line; the
  attritional aggregate uses :data:`ATTRITIONAL_DAY`.

The catalog, simulation grid and loss-set split are pure derivations of the
YELT in the shape pricing platforms expect for upload.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Tuple

import numpy as np
import pandas as pd

from .config import OutputConfig
from .exceptions import InvalidParameterError
from .simulator import SimulationTrial

if TYPE_CHECKING:
    from .engine import SimulationResults

logger = logging.getLogger(__name__)

YELT_COLUMNS = ["trialid", "eventid", "day", "loss"]
ATTRITIONAL_DAY = 0
ATTRITIONAL_TAG = 0
LARGE_TAG = 1
LOSS_TYPES = {ATTRITIONAL_TAG: "attr", LARGE_TAG: "large"}


def event_id(lob: int, large: bool) -> int:
    """Event id of a line and loss type."""
    return lob * 10 + (LARGE_TAG if large else ATTRITIONAL_TAG)


def build_event_loss_table(trials: Iterable[SimulationTrial]) -> pd.DataFrame:
    """Flatten simulated trials into the event-loss table.

    Zero attritional aggregates produce no row.

    Args:
        trials: Simulated trials of any number of lines.

    Returns:
        DataFrame with columns ``trialid, eventid, day, loss`` sorted by
        trial, event and day.
    """
    trial_ids, event_ids, days, losses = [], [], [], []
    for trial in trials:
        n_large = trial.large_claim_count
        if n_large:
            trial_ids.append(np.full(n_large, trial.trial_id, dtype=np.int64))
            event_ids.append(np.full(n_large, event_id(trial.lob, True), dtype=np.int64))
            days.append(np.arange(1, n_large + 1, dtype=np.int64))
            losses.append(np.asarray(trial.large_claim_losses, dtype=float))
        if trial.attritional_aggregate_loss > 0:
            trial_ids.append(np.array([trial.trial_id], dtype=np.int64))
            event_ids.append(np.array([event_id(trial.lob, False)], dtype=np.int64))
            days.append(np.array([ATTRITIONAL_DAY], dtype=np.int64))
            losses.append(np.array([trial.attritional_aggregate_loss]))

    if not losses:
        return pd.DataFrame(
            {
                "trialid": np.array([], dtype=np.int64),
                "eventid": np.array([], dtype=np.int64),
                "day": np.array([], dtype=np.int64),
                "loss": np.array([], dtype=float),
            }
        )

    yelt = pd.DataFrame(
        {
            "trialid": np.concatenate(trial_ids),
            "eventid": np.concatenate(event_ids),
            "day": np.concatenate(days),
            "loss": np.concatenate(losses),
        }
    )
    return yelt.sort_values(["trialid", "eventid", "day"], kind="stable").reset_index(drop=True)


def _with_event_tags(frame: pd.DataFrame) -> pd.DataFrame:
    return frame.assign(
        lob_num=frame["eventid"] // 10,
        loss_type=(frame["eventid"] % 10).map(LOSS_TYPES),
    )


def build_event_catalog(yelt: pd.DataFrame, trial_count: int) -> pd.DataFrame:
    """Distinct events with their annual rate.

    Args:
        yelt: Event-loss table.
        trial_count: Number of simulated trials.

    Returns:
        DataFrame with columns ``eventid, rate, lob_num, loss_type``.
    """
    if trial_count <= 0:
        raise InvalidParameterError(f"trial_count must be positive, got {trial_count}")
    events = pd.DataFrame({"eventid": np.sort(yelt["eventid"].unique())})
    events["rate"] = 1.0 / trial_count
    return _with_event_tags(events)


def build_simulation_grid(yelt: pd.DataFrame) -> pd.DataFrame:
    """Distinct ``trialid, eventid, day`` occurrences ordered by trial, day, event."""
    grid = yelt[["trialid", "eventid", "day"]].drop_duplicates()
    return grid.sort_values(["trialid", "day", "eventid"]).reset_index(drop=True)


def split_loss_sets(yelt: pd.DataFrame) -> Dict[Tuple[int, str], pd.DataFrame]:
    """Split the event-loss table into one loss set per line and loss type.

    Returns:
        Mapping of ``(lob_num, loss_type)`` to frames with the YELT columns.
    """
    tagged = _with_event_tags(yelt)
    return {
        (int(lob), str(loss_type)): group[YELT_COLUMNS].reset_index(drop=True)
        for (lob, loss_type), group in tagged.groupby(["lob_num", "loss_type"], sort=True)
    }


def write_results(results: "SimulationResults", output_config: OutputConfig) -> Dict[str, Path]:
    """Write the event-loss table and companion tables as CSV.

    Args:
        results: Results of an engine run.
        output_config: Output directory and file settings.

    Returns:
        Mapping of table name to written path.
    """
    directory = output_config.output_path
    directory.mkdir(parents=True, exist_ok=True)

    tables = {"yelt": (output_config.yelt_filename, results.event_loss_table)}
    if output_config.write_companion_tables:
        tables.update(
            {
                "estimates": ("exposure_estimates.csv", results.estimates_frame),
                "layered_losses": ("layered_losses.csv", results.layered_losses),
                "validation": ("layer_validation.csv", results.validation_frame),
                "event_catalog": (
                    "event_catalog.csv",
                    build_event_catalog(results.event_loss_table, results.trial_count),
                ),
                "simulation_grid": (
                    "simulation_grid.csv",
                    build_simulation_grid(results.event_loss_table),
                ),
            }
        )

    written = {}
    for name, (filename, frame) in tables.items():
        path = directory / filename
        frame.to_csv(path, index=False, float_format=output_config.float_format)
        written[name] = path
        logger.info("Wrote %s (%d rows) to %s", name, len(frame), path)
    return written
