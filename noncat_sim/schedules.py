"""Band and layer schedules read from CSV files with pandas.

Column names are normalized (case, surrounding whitespace, spaces and
hyphens) and a few common aliases are accepted. Every row is validated by
the record constructors; a malformed row raises ``InvalidParameterError``
naming the row.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

import pandas as pd

from .exceptions import InvalidParameterError
from .exposure import ExposureBand, Layer

logger = logging.getLogger(__name__)

BAND_COLUMNS = ["id", "limit", "attach", "premium", "gross_loss_ratio", "mu", "sigma"]
LAYER_COLUMNS = ["id", "limit", "attach"]

COLUMN_ALIASES: Dict[str, str] = {
    "band_id": "id",
    "layer_id": "id",
    "attachment": "attach",
    "attachment_point": "attach",
    "glr": "gross_loss_ratio",
    "loss_ratio": "gross_loss_ratio",
    "line_of_business": "lob",
    "lob_num": "lob",
}


def normalize_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Return a copy with normalized, de-aliased column names."""
    renamed = {}
    for column in frame.columns:
        key = str(column).strip().lower().replace(" ", "_").replace("-", "_")
        renamed[column] = COLUMN_ALIASES.get(key, key)
    return frame.rename(columns=renamed)


def _require_columns(frame: pd.DataFrame, required: List[str], kind: str) -> None:
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise InvalidParameterError(f"{kind} schedule is missing columns: {', '.join(missing)}")


def bands_from_frame(frame: pd.DataFrame) -> List[ExposureBand]:
    """Build exposure bands from a DataFrame.

    Args:
        frame: One row per band with columns ``id, limit, attach, premium,
            gross_loss_ratio, mu, sigma`` and optionally ``lob``.

    Returns:
        Bands in row order.

    Raises:
        InvalidParameterError: If columns are missing, a row is malformed,
            or band ids are duplicated.
    """
    frame = normalize_columns(frame)
    _require_columns(frame, BAND_COLUMNS, "Band")
    if frame.empty:
        raise InvalidParameterError("Band schedule has no rows")

    frame = frame.reset_index(drop=True)
    ids = frame["id"].astype(str)
    if ids.duplicated().any():
        raise InvalidParameterError(f"Duplicate band ids: {sorted(set(ids[ids.duplicated()]))}")

    bands = []
    for index, row in frame.iterrows():
        try:
            lob = row["lob"] if "lob" in frame.columns and pd.notna(row["lob"]) else 1
            bands.append(
                ExposureBand(
                    id=ids[index],
                    limit=float(row["limit"]),
                    attach=float(row["attach"]),
                    premium=float(row["premium"]),
                    gross_loss_ratio=float(row["gross_loss_ratio"]),
                    mu=float(row["mu"]),
                    sigma=float(row["sigma"]),
                    lob=_as_lob(lob),
                )
            )
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"Band schedule row {index + 1}: {e}") from e

    logger.debug("Parsed %d bands", len(bands))
    return bands


def _as_lob(value) -> int:
    number = float(value)
    if not number.is_integer():
        raise InvalidParameterError(f"lob must be an integer 1-9, got {value!r}")
    return int(number)


def layers_from_frame(frame: pd.DataFrame) -> List[Layer]:
    """Build layers from a DataFrame with columns ``id, limit, attach``.

    Raises:
        InvalidParameterError: If columns are missing, a row is malformed,
            or layer ids are duplicated.
    """
    frame = normalize_columns(frame)
    _require_columns(frame, LAYER_COLUMNS, "Layer")
    if frame.empty:
        raise InvalidParameterError("Layer schedule has no rows")

    frame = frame.reset_index(drop=True)
    ids = frame["id"].astype(str)
    if ids.duplicated().any():
        raise InvalidParameterError(f"Duplicate layer ids: {sorted(set(ids[ids.duplicated()]))}")

    layers = []
    for index, row in frame.iterrows():
        try:
            layers.append(
                Layer(id=ids[index], limit=float(row["limit"]), attach=float(row["attach"]))
            )
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"Layer schedule row {index + 1}: {e}") from e

    logger.debug("Parsed %d layers", len(layers))
    return layers


def read_band_schedule(path: Union[str, Path]) -> List[ExposureBand]:
    """Read exposure bands from a CSV file.

    Args:
        path: CSV file with one row per band.

    Returns:
        Validated bands.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Band schedule not found: {path}")
    bands = bands_from_frame(pd.read_csv(path))
    logger.info("Loaded %d bands from %s", len(bands), path)
    return bands


def read_layer_schedule(path: Union[str, Path]) -> List[Layer]:
    """Read reinsurance layers from a CSV file.

    Args:
        path: CSV file with one row per layer.

    Returns:
        Validated layers.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Layer schedule not found: {path}")
    layers = layers_from_frame(pd.read_csv(path))
    logger.info("Loaded %d layers from %s", len(layers), path)
    return layers
