"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from noncat_sim.config import Config, GridConfig, LoggingConfig, SimulationConfig
from noncat_sim.exposure import ExposureBand, Layer


@pytest.fixture
def example_band():
    """Single band with a 500K limit."""
    return ExposureBand(
        id="B500K",
        limit=500_000,
        attach=0,
        premium=3e7,
        gross_loss_ratio=0.65,
        mu=10,
        sigma=2,
    )


@pytest.fixture
def casualty_bands():
    """Two ground-up bands of one line with different limits."""
    return [
        ExposureBand(
            "B1M", limit=1_000_000, attach=0, premium=5e6, gross_loss_ratio=0.6, mu=10.5, sigma=1.8
        ),
        ExposureBand(
            "B2M", limit=2_000_000, attach=0, premium=1e7, gross_loss_ratio=0.65, mu=10, sigma=2
        ),
    ]


@pytest.fixture
def multi_line_bands(casualty_bands):
    """Bands of two lines of business."""
    return casualty_bands + [
        ExposureBand(
            "P1M",
            limit=1_000_000,
            attach=0,
            premium=4e6,
            gross_loss_ratio=0.55,
            mu=9.5,
            sigma=1.6,
            lob=2,
        ),
    ]


@pytest.fixture
def xol_layers():
    """Two stacked per-occurrence layers above the attritional threshold."""
    return [
        Layer("500xs500", limit=500_000, attach=500_000),
        Layer("1Mxs1M", limit=1_000_000, attach=1_000_000),
    ]


@pytest.fixture
def quiet_config():
    """Small seeded run with logging left to pytest."""
    return Config(
        simulation=SimulationConfig(trial_count=300, random_seed=7),
        grid=GridConfig(),
        logging=LoggingConfig(enabled=False),
    )


@pytest.fixture
def write_csv(tmp_path):
    """Write rows to a CSV file under tmp_path and return its path."""

    def _write(name, header, rows):
        path = Path(tmp_path) / name
        lines = [",".join(header)] + [",".join(str(v) for v in row) for row in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
