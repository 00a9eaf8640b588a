"""Command-line entry point: rate, simulate and write the event-loss table.

Usage::

    python -m noncat_sim --bands bands.csv --layers layers.csv \
        --config casualty.yaml --output outputs --trials 10000 --seed 2020
"""

import argparse
import logging
from pathlib import Path
import sys
from typing import List, Optional

from .config import Config, ConfigurationError
from .engine import ExposureSimulationEngine
from .exceptions import InvalidParameterError, SimulationError
from .export import write_results
from .schedules import read_band_schedule, read_layer_schedule

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="noncat_sim",
        description="Exposure-rate a band schedule, simulate non-catastrophe losses "
        "and write a year event-loss table",
    )
    parser.add_argument("--bands", type=Path, required=True, help="Band schedule CSV")
    parser.add_argument("--layers", type=Path, required=True, help="Layer schedule CSV")
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--output", type=Path, help="Output directory (overrides config)")
    parser.add_argument("--trials", type=int, help="Number of trials (overrides config)")
    parser.add_argument("--seed", type=int, help="Base random seed (overrides config)")
    parser.add_argument(
        "--workers", type=int, help="Run trials on this many worker processes"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when a layer fails reconciliation",
    )
    return parser


def load_config(args: argparse.Namespace) -> Config:
    """Load the configuration file and apply command-line overrides."""
    config = Config.from_yaml(args.config) if args.config else Config()

    overrides = {}
    if args.output is not None:
        overrides["output.output_directory"] = str(args.output)
    if args.trials is not None:
        overrides["simulation.trial_count"] = args.trials
    if args.seed is not None:
        overrides["simulation.random_seed"] = args.seed
    if args.workers is not None:
        overrides["simulation.parallel"] = True
        overrides["simulation.n_workers"] = args.workers
    return config.with_overrides(overrides) if overrides else config


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line interface.

    Returns:
        0 on success, 1 when ``--strict`` and a layer fails reconciliation,
        2 for invalid input or configuration.
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        config.setup_logging()
        logger.debug("Arguments: %s", vars(args))
        config.validate_paths()
        engine = ExposureSimulationEngine(
            config, read_band_schedule(args.bands), read_layer_schedule(args.layers)
        )
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        print(f"[FAILED] Invalid input: {e}", file=sys.stderr)
        return 2

    try:
        results = engine.run()
    except InvalidParameterError as e:
        print(f"[FAILED] Invalid input: {e}", file=sys.stderr)
        return 2
    except SimulationError as e:
        print(f"[FAILED] Simulation failed: {e}", file=sys.stderr)
        return 1

    written = write_results(results, config.output)
    print(results.summary())
    for name, path in written.items():
        print(f"[OK] {name}: {path}")

    if args.strict and not results.all_layers_valid:
        print("[FAILED] One or more layers are outside tolerance", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
