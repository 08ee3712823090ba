"""
Run the TSum engine over all weather series and write the outputs.

References are grouped by weather grid code; each group streams its own
weather file through one :class:`~tsumrisk.core.phenology.PhenologyEngine`.
Groups share only the read-only crop and windows and write disjoint rows of
one preallocated :class:`~tsumrisk.core.data_containers.YearlyResults`, so
they run on a bounded thread pool without locking.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

from tsumrisk.core.aggregate import aggregate_years
from tsumrisk.core.config import EngineConfig
from tsumrisk.core.crops import Crop
from tsumrisk.core.data_containers import Summary, TimeWindows, YearlyResults
from tsumrisk.core.phenology import PhenologyEngine
from tsumrisk.library.io_hdf5 import save_results_hdf5
from tsumrisk.library.io_text import (
    ReferenceMapping,
    read_grid_lookup,
    read_reference_mapping,
    read_time_windows,
    read_weather,
    write_summary_grids,
    write_yearly_csv,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunPaths:
    """Input and output locations of a TSum run."""

    crop_file: Path
    weather_template: str
    reference_file: Path
    grid_to_ref_file: Path
    output_folder: Path
    sowing_file: Optional[Path] = None
    harvest_file: Optional[Path] = None
    hdf5_file: Optional[Path] = None


def weather_path(template: str, grid_code: str) -> Path:
    """Weather file of ``grid_code`` (``template % grid_code``)."""
    return Path(template % grid_code)


def run_weather_group(
    crop: Crop,
    windows: TimeWindows,
    results: YearlyResults,
    config: EngineConfig,
    grid_code: str,
    ref_ids: Sequence[int],
    path: Path,
    cancel: Optional[threading.Event] = None,
) -> int:
    """Stream one weather file through the engine; returns days processed."""
    engine = PhenologyEngine(
        crop, windows, ref_ids, results, config, cancel=cancel, name=grid_code
    )
    n_days = engine.run(read_weather(path, config.chunksize, config.on_error))
    logger.info(
        "Weather '%s': %d references, %d days.", grid_code, len(ref_ids), n_days
    )
    return n_days


def run_tsum(
    crop: Crop,
    windows: TimeWindows,
    mapping: ReferenceMapping,
    config: EngineConfig,
    weather_template: str,
    cancel: Optional[threading.Event] = None,
) -> YearlyResults:
    """
    Compute yearly TSum, frost days and wet-harvest flags for all references.

    Parameters
    ----------
    crop : Crop
        Crop definition.
    windows : TimeWindows
        Windows for ``mapping.n_refs`` references.
    mapping : ReferenceMapping
        Reference to weather grid code mapping.
    config : EngineConfig
        Year range, error policy and pool size.
    weather_template : str
        Weather file path template, formatted with the grid code.
    cancel : threading.Event, optional
        Cancellation token. Set internally when a group fails so the other
        groups stop at their next record.

    Returns
    -------
    YearlyResults
        Results for references ``1..mapping.n_refs``.

    Raises
    ------
    FileNotFoundError
        If a weather file is missing (checked before any processing).
    RunCancelledError
        If ``cancel`` is set by the caller.
    """
    paths: Dict[str, Path] = {
        code: weather_path(weather_template, code) for code in mapping.groups
    }
    missing = [str(p) for p in paths.values() if not p.exists()]
    if missing:
        raise FileNotFoundError(f"Missing weather files: {missing[:10]}")

    results = YearlyResults.allocate(
        mapping.n_refs, config.start_year, config.end_year
    )
    cancel = cancel if cancel is not None else threading.Event()

    def job(code: str) -> int:
        return run_weather_group(
            crop,
            windows,
            results,
            config,
            code,
            mapping.groups[code],
            paths[code],
            cancel,
        )

    if config.max_workers == 1:
        for code in mapping.groups:
            job(code)
        return results

    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        futures = [executor.submit(job, code) for code in mapping.groups]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        failed = [f for f in done if f.exception() is not None]
        if failed:
            cancel.set()
            for f in futures:
                f.cancel()
            raise failed[0].exception()
    return results


def run_calculation(paths: RunPaths, config: EngineConfig) -> Summary:
    """
    Full TSum run: read inputs, compute, aggregate and write all outputs.

    Writes ``cal_res_ref_{start}-{end}.csv.gz``, the four summary grids and,
    when ``paths.hdf5_file`` is set, an HDF5 snapshot.
    """
    for required in (paths.crop_file, paths.reference_file, paths.grid_to_ref_file):
        if not Path(required).exists():
            raise FileNotFoundError(f"Missing input file: {required}")
    for optional in (paths.sowing_file, paths.harvest_file):
        if optional and not Path(optional).exists():
            raise FileNotFoundError(f"Missing input file: {optional}")

    crop = Crop.from_yaml(paths.crop_file)
    mapping = read_reference_mapping(paths.reference_file)
    windows = read_time_windows(
        config, mapping.n_refs, paths.sowing_file, paths.harvest_file
    )
    logger.info(
        "Crop '%s', %d references, years %d-%d.",
        crop.name,
        mapping.n_refs,
        config.start_year,
        config.end_year,
    )

    results = run_tsum(crop, windows, mapping, config, paths.weather_template)
    summary = aggregate_years(results, crop.tsum_maturity)

    out = Path(paths.output_folder)
    span = f"{config.start_year}-{config.end_year}"
    write_yearly_csv(results, mapping.grid_codes, out / f"cal_res_ref_{span}.csv.gz")
    lookup = read_grid_lookup(paths.grid_to_ref_file)
    write_summary_grids(summary, lookup, config.start_year, config.end_year, out)
    if paths.hdf5_file:
        save_results_hdf5(
            results, summary, paths.hdf5_file, extra_meta={"crop": crop.name}
        )
    return summary
