"""
Command-line entry points.

``tsumrisk-calc``
    TSum/frost/wet-harvest maps for one crop over a year range.
``tsumrisk-combine``
    Scenario composites from the ASCII grids of several runs.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from tsumrisk.core.combine import run_combine_config
from tsumrisk.core.config import (
    EngineConfig,
    ErrorPolicy,
    load_combine_configs,
    write_example_combine_configs,
)
from tsumrisk.core.crops import Crop
from tsumrisk.core.errors import TsumRiskError
from tsumrisk.core.runner import RunPaths, run_calculation

logger = logging.getLogger("tsumrisk")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_calc_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tsumrisk-calc",
        description="TSum, frost and wet-harvest maps per climate reference.",
    )
    p.add_argument("--crop", default="soybean.yml", help="crop file name")
    p.add_argument(
        "--create-crop",
        action="store_true",
        help="write the soybean_0 preset to --crop and exit",
    )
    p.add_argument("--sowing", default="", help="sowing dates file name")
    p.add_argument(
        "--sowing-default", type=int, default=150, help="default sowing DOY"
    )
    p.add_argument("--harvest", default="", help="harvest dates file name")
    p.add_argument(
        "--harvest-default", type=int, default=300, help="default harvest DOY"
    )
    p.add_argument("--start-year", type=int, default=1980)
    p.add_argument("--end-year", type=int, default=2010)
    p.add_argument(
        "--weather",
        default="weather/%s.csv",
        help="weather file template, '%%s' is replaced by the grid code",
    )
    p.add_argument(
        "--reference",
        default="stu_eu_layer_ref.csv",
        help="reference to weather grid code mapping",
    )
    p.add_argument(
        "--grid-to-ref",
        default="stu_eu_layer_grid.csv",
        help="grid to reference mapping file",
    )
    p.add_argument("--output", default="./output", help="output folder")
    p.add_argument(
        "--workers", type=int, default=1, help="parallel weather files"
    )
    p.add_argument(
        "--on-error",
        choices=[e.value for e in ErrorPolicy],
        default=ErrorPolicy.ABORT.value,
        help="malformed weather records abort the run or are skipped",
    )
    p.add_argument("--hdf5", default="", help="optional HDF5 snapshot path")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def calc_main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_calc_parser().parse_args(argv)
    _setup_logging(args.verbose)

    if args.create_crop:
        Crop.soybean().to_yaml(args.crop)
        logger.info("Wrote crop file %s.", args.crop)
        return 0

    try:
        config = EngineConfig(
            start_year=args.start_year,
            end_year=args.end_year,
            sowing_default_doy=args.sowing_default,
            harvest_default_doy=args.harvest_default,
            on_error=ErrorPolicy(args.on_error),
            max_workers=args.workers,
        )
        paths = RunPaths(
            crop_file=Path(args.crop),
            weather_template=args.weather,
            reference_file=Path(args.reference),
            grid_to_ref_file=Path(args.grid_to_ref),
            output_folder=Path(args.output),
            sowing_file=Path(args.sowing) if args.sowing else None,
            harvest_file=Path(args.harvest) if args.harvest else None,
            hdf5_file=Path(args.hdf5) if args.hdf5 else None,
        )
        run_calculation(paths, config)
    except (TsumRiskError, FileNotFoundError) as e:
        logger.error("%s", e)
        return 1
    return 0


def build_combine_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tsumrisk-combine",
        description="Combine scenario ASCII grids into composite maps.",
    )
    p.add_argument("--config", default="config.yml", help="path to config file")
    p.add_argument(
        "--write-config",
        action="store_true",
        help="write an example config to --config and exit",
    )
    p.add_argument("--crop", default="chickpea", help="crop name")
    p.add_argument("--crop-path", default="crop", help="crop path")
    p.add_argument(
        "--plot", action="store_true", help="also save PNG maps per config"
    )
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def combine_main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_combine_parser().parse_args(argv)
    _setup_logging(args.verbose)
    logger.info("Current working directory: %s", Path.cwd())

    if args.write_config:
        write_example_combine_configs(args.config)
        logger.info("Wrote example config %s.", args.config)
        return 0

    try:
        configs = load_combine_configs(args.config)
        for config in configs.values():
            run_combine_config(config, args.crop, args.crop_path, plot=args.plot)
    except (TsumRiskError, FileNotFoundError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(calc_main())
