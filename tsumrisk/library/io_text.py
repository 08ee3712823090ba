"""
Readers and writers for the tabular inputs and outputs of a TSum run.

Functions
---------
read_weather
    Stream a weather series as parsed chunks.
read_time_windows
    Default windows overridden by sowing/harvest DOY files.
read_reference_mapping
    ``ref_id -> weather grid code`` and its inverse.
read_grid_lookup
    Spatial ``(row, col) -> ref_id`` matrix.
write_yearly_csv
    Per-reference, per-year results as gzip CSV.
write_summary_grids
    The four summary rasters.

Notes
-----
All files are comma separated; names ending with ``.gz`` are read and
written gzip-compressed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import numpy as np
import pandas as pd

from tsumrisk.core.config import EngineConfig, ErrorPolicy
from tsumrisk.core.data_containers import Summary, TimeWindows, YearlyResults
from tsumrisk.core.errors import DataIntegrityError, RecordParseError
from tsumrisk.core.raster import Grid
from tsumrisk.library.io_ascii import open_text, write_ascii_grid

Array = np.ndarray

logger = logging.getLogger(__name__)

NODATA = -9999
LOOKUP_ABSENT = -1

WEATHER_HEADER_LINES = 2
WEATHER_COLUMN_NAMES = {
    "date": "date",
    "iso-date": "date",
    "tavg": "tavg",
    "tmin": "tmin",
    "precip": "precip",
}


# -------------------------
# Weather
# -------------------------


def _weather_column_positions(path: Path) -> Dict[str, int]:
    positions: Dict[str, int] = {}
    with open_text(path) as f:
        for _ in range(WEATHER_HEADER_LINES):
            for idx, name in enumerate(f.readline().rstrip("\r\n").split(",")):
                key = WEATHER_COLUMN_NAMES.get(name.strip())
                if key is not None:
                    positions[key] = idx
    missing = {"date", "tavg", "tmin", "precip"} - set(positions)
    if missing:
        raise RecordParseError(
            str(path), 1, f"missing weather columns {sorted(missing)}"
        )
    return positions


def read_weather(
    path: str | Path,
    chunksize: int = 4096,
    on_error: ErrorPolicy = ErrorPolicy.ABORT,
) -> Iterator[pd.DataFrame]:
    """
    Stream a weather series in parsed chunks.

    The first two lines are header lines; column names (``date`` or
    ``iso-date``, ``tavg``, ``tmin``, ``precip``) are looked up in both, and
    data start on the third line. Rows must be sorted by date.

    Parameters
    ----------
    path : str or pathlib.Path
        Weather file (``.gz`` allowed).
    chunksize : int, default=4096
        Rows per chunk.
    on_error : ErrorPolicy, default=ErrorPolicy.ABORT
        ``ABORT`` raises on the first malformed row; ``SKIP`` drops
        malformed rows and logs how many were dropped.

    Yields
    ------
    pandas.DataFrame
        Columns ``year``, ``doy`` (int), ``tavg``, ``tmin``, ``precip``
        (float).

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    RecordParseError
        If a required column is missing, or on a malformed row under
        ``ErrorPolicy.ABORT``.
    """
    path = Path(path)
    pos = _weather_column_positions(path)
    by_pos = {v: k for k, v in pos.items()}
    numeric = ["tavg", "tmin", "precip"]
    with pd.read_csv(
        path,
        header=None,
        skiprows=WEATHER_HEADER_LINES,
        usecols=sorted(by_pos),
        dtype=str,
        chunksize=chunksize,
        compression="infer",
    ) as reader:
        for chunk in reader:
            chunk = chunk.rename(columns=by_pos)
            dates = pd.to_datetime(
                chunk["date"].str.strip(), format="%Y-%m-%d", errors="coerce"
            )
            values = chunk[numeric].apply(pd.to_numeric, errors="coerce")
            bad = dates.isna() | values.isna().any(axis=1)
            if bad.any():
                first = bad.idxmax()
                if on_error is ErrorPolicy.ABORT:
                    raise RecordParseError(
                        str(path),
                        int(first) + WEATHER_HEADER_LINES + 1,
                        f"malformed record {chunk.loc[first].tolist()}",
                    )
                logger.warning(
                    "%s: skipping %d malformed records (first on line %d).",
                    path,
                    int(bad.sum()),
                    int(first) + WEATHER_HEADER_LINES + 1,
                )
                dates, values = dates[~bad], values[~bad]
            yield pd.DataFrame(
                {
                    "year": dates.dt.year.astype(np.int64),
                    "doy": dates.dt.dayofyear.astype(np.int64),
                    "tavg": values["tavg"].astype(float),
                    "tmin": values["tmin"].astype(float),
                    "precip": values["precip"].astype(float),
                }
            )


# -------------------------
# Windows and references
# -------------------------


def _read_doy_file(path: str | Path) -> pd.DataFrame:
    raw = pd.read_csv(
        path, header=None, usecols=[0, 1, 2], dtype=str, compression="infer"
    )
    raw = raw[~raw[0].str.strip().str.startswith("refId")]
    try:
        return pd.DataFrame(
            {
                "ref_id": raw[0].astype(np.int64),
                "doy": raw[1].astype(np.int64),
                "year": raw[2].str.strip().str[:4].astype(np.int64),
            }
        )
    except ValueError as e:
        raise RecordParseError(str(path), 0, str(e)) from e


def _apply_doy_file(
    path: str | Path, target: Array, start_year: int, end_year: int
) -> None:
    df = _read_doy_file(path)
    df = df[(df["year"] >= start_year) & (df["year"] <= end_year)]
    n_refs = target.shape[1]
    out_of_range = (df["ref_id"] < 1) | (df["ref_id"] > n_refs)
    if out_of_range.any():
        raise DataIntegrityError(
            f"{path}: reference ids outside 1..{n_refs}: "
            f"{df.loc[out_of_range, 'ref_id'].head(10).tolist()}"
        )
    target[
        df["year"].to_numpy() - start_year, df["ref_id"].to_numpy() - 1
    ] = df["doy"].to_numpy()
    logger.info("Applied %d window entries from %s.", len(df), path)


def read_time_windows(
    config: EngineConfig,
    n_refs: int,
    sowing_file: Optional[str | Path] = None,
    harvest_file: Optional[str | Path] = None,
) -> TimeWindows:
    """
    Build the sowing/harvest windows of a run.

    Every (year, reference) starts from the configured defaults; a sowing
    file overrides ``start_doy`` and a harvest file ``end_doy``. Rows are
    ``refId,DOY,date``; rows whose year is outside the run are ignored.

    Raises
    ------
    DataIntegrityError
        If a file holds a reference id outside ``1..n_refs``.
    """
    windows = TimeWindows.uniform(
        config.start_year,
        config.end_year,
        n_refs,
        config.sowing_default_doy,
        config.harvest_default_doy,
    )
    if sowing_file:
        _apply_doy_file(
            sowing_file, windows.start_doy, config.start_year, config.end_year
        )
    if harvest_file:
        _apply_doy_file(
            harvest_file, windows.end_doy, config.start_year, config.end_year
        )
    return windows


@dataclass
class ReferenceMapping:
    """
    Weather grid code of every reference.

    Attributes
    ----------
    grid_codes : list of str
        Grid code of reference ``ref_id`` at position ``ref_id - 1``.
    groups : dict of {str: list of int}
        Reference ids per grid code, in file order.
    """

    grid_codes: List[str]
    groups: Dict[str, List[int]]

    @property
    def n_refs(self) -> int:
        return len(self.grid_codes)

    @classmethod
    def from_pairs(cls, ref_ids, grid_codes) -> "ReferenceMapping":
        """
        Build from parallel sequences, checking ids are exactly ``1..N``.

        Raises
        ------
        DataIntegrityError
            If ids are duplicated or leave gaps.
        """
        ids = np.asarray(ref_ids, dtype=np.int64)
        codes = [str(c) for c in grid_codes]
        n = ids.size
        if n == 0:
            raise DataIntegrityError("Reference mapping is empty.")
        if not np.array_equal(np.sort(ids), np.arange(1, n + 1)):
            raise DataIntegrityError(
                f"Reference ids must be exactly 1..{n} without gaps or "
                "duplicates."
            )
        ordered = [""] * n
        groups: Dict[str, List[int]] = {}
        for ref_id, code in zip(ids.tolist(), codes):
            ordered[ref_id - 1] = code
            groups.setdefault(code, []).append(ref_id)
        return cls(grid_codes=ordered, groups=groups)


def read_reference_mapping(path: str | Path) -> ReferenceMapping:
    """Read ``refId,gridCode`` rows (one header line)."""
    df = pd.read_csv(path, usecols=[0, 1], dtype=str, compression="infer")
    try:
        ref_ids = df.iloc[:, 0].str.strip().astype(np.int64)
    except ValueError as e:
        raise RecordParseError(str(path), 0, str(e)) from e
    mapping = ReferenceMapping.from_pairs(ref_ids, df.iloc[:, 1].str.strip())
    logger.info(
        "Read %d references in %d weather groups from %s.",
        mapping.n_refs,
        len(mapping.groups),
        path,
    )
    return mapping


def read_grid_lookup(path: str | Path) -> Array:
    """
    Read the spatial lookup (``Column_``, ``Row``, ``soil_ref`` columns).

    Returns
    -------
    ndarray of int, shape (max_row, max_col)
        ``ref_id`` per cell (rows/columns are 1-based in the file),
        ``-1`` where no reference is mapped.
    """
    df = pd.read_csv(
        path, usecols=["Column_", "Row", "soil_ref"], compression="infer"
    ).astype(np.int64)
    lookup = np.full(
        (int(df["Row"].max()), int(df["Column_"].max())),
        LOOKUP_ABSENT,
        dtype=np.int64,
    )
    lookup[df["Row"].to_numpy() - 1, df["Column_"].to_numpy() - 1] = df[
        "soil_ref"
    ].to_numpy()
    return lookup


# -------------------------
# Outputs
# -------------------------


def write_yearly_csv(
    results: YearlyResults, grid_codes: List[str], path: str | Path
) -> Path:
    """Write ``refId,climate,year,Tsum,frost_days,Tsum_reached,Wet_Harvest``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    n, y = results.n_refs, results.n_years
    df = pd.DataFrame(
        {
            "refId": np.repeat(results.ref_ids, y),
            "climate": np.repeat(np.asarray(grid_codes, dtype=object), y),
            "year": np.tile(results.years, n),
            "Tsum": results.tsum.ravel(),
            "frost_days": results.frost_days.ravel().astype(float),
            "Tsum_reached": results.tsum_reached.ravel(),
            "Wet_Harvest": results.wet_harvest.ravel(),
        }
    )
    for col in ("Tsum_reached", "Wet_Harvest"):
        df[col] = df[col].map({True: "true", False: "false"})
    df.to_csv(path, index=False, float_format="%f", compression="infer")
    logger.info("Wrote %s.", path)
    return path


def summary_to_grid(values: Array, lookup: Array) -> Grid:
    """Spread per-reference ``values`` onto the lookup matrix."""
    n = values.shape[0]
    valid = (lookup >= 1) & (lookup <= n)
    data = np.full(lookup.shape, float(NODATA))
    data[valid] = values[lookup[valid] - 1]
    return Grid.from_array(data, nodata=NODATA)


def write_summary_grids(
    summary: Summary,
    lookup: Array,
    start_year: int,
    end_year: int,
    out_folder: str | Path,
) -> List[Path]:
    """
    Write ``TsumAvg``, ``TsumReached``, ``FrostOccurrence`` and
    ``WetHarvest`` grids as ``{name}_{start}-{end}.asc.gz``.
    """
    # half away from zero; averages are non-negative
    tsum_avg = np.floor(summary.tsum_avg + 0.5)
    layers = {
        "TsumAvg": tsum_avg,
        "TsumReached": summary.tsum_reached_count,
        "FrostOccurrence": summary.frost_occurrence_count,
        "WetHarvest": summary.wet_harvest_count,
    }
    out = []
    for name, values in layers.items():
        path = Path(out_folder) / f"{name}_{start_year}-{end_year}.asc.gz"
        grid = summary_to_grid(np.asarray(values, dtype=float), lookup)
        out.append(write_ascii_grid(path, grid, fmt="%d"))
    logger.info("Wrote %d summary grids to %s.", len(out), out_folder)
    return out
