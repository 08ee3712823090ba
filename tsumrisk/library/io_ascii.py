"""ESRI ASCII grid and ``.meta`` legend file I/O (gzip chosen by suffix)."""

from __future__ import annotations

import gzip
import logging
from pathlib import Path
from typing import IO, Dict

import numpy as np
import yaml

from tsumrisk.core.raster import Grid, GridMeta, value_range

logger = logging.getLogger(__name__)

HEADER_LINES = 6


def open_text(path: str | Path, mode: str = "r") -> IO[str]:
    """Open a plain or gzip-compressed text file."""
    path = Path(path)
    if path.suffix == ".gz":
        return gzip.open(path, mode + "t", encoding="utf-8")
    return open(path, mode, encoding="utf-8")


def read_ascii_grid(path: str | Path) -> Grid:
    """
    Read an ESRI ASCII grid.

    Parameters
    ----------
    path : str or pathlib.Path
        Grid file, gzip-compressed when the name ends with ``.gz``.

    Returns
    -------
    Grid
        Values as float with min/max over the non-NoData cells.

    Raises
    ------
    ValueError
        If a header entry is missing or the data do not match
        ``nrows x ncols``.
    """
    header: Dict[str, str] = {}
    with open_text(path) as f:
        for _ in range(HEADER_LINES):
            parts = f.readline().split(None, 1)
            if len(parts) == 2:
                header[parts[0].lower()] = parts[1].strip()
        data = np.loadtxt(f, dtype=float, ndmin=2)
    try:
        ncols = int(header["ncols"])
        nrows = int(header["nrows"])
        nodata = float(header["nodata_value"])
        meta_geo = dict(
            xllcorner=float(header["xllcorner"]),
            yllcorner=float(header["yllcorner"]),
            cellsize=float(header["cellsize"]),
        )
    except KeyError as e:
        raise ValueError(f"{path}: missing header entry {e.args[0]!r}.") from e
    if data.shape != (nrows, ncols):
        raise ValueError(
            f"{path}: data shape {data.shape} does not match header "
            f"({nrows}, {ncols})."
        )
    vmin, vmax = value_range(data, nodata)
    meta = GridMeta(
        ncols=ncols, nrows=nrows, nodata=nodata, min=vmin, max=vmax, **meta_geo
    )
    logger.debug("Read grid %s (%d x %d).", path, nrows, ncols)
    return Grid(data=data, meta=meta)


def write_ascii_grid(path: str | Path, grid: Grid, fmt: str = "%f") -> Path:
    """
    Write ``grid`` as an ESRI ASCII grid; gzip when ``path`` ends in ``.gz``.

    Parameters
    ----------
    path : str or pathlib.Path
        Output file. Parent folders are created.
    grid : Grid
        Grid to write.
    fmt : str, default="%f"
        printf-style format for cell values and the NoData value.

    Returns
    -------
    pathlib.Path
        The written path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    m = grid.meta
    header = "\n".join(
        [
            f"ncols {m.ncols}",
            f"nrows {m.nrows}",
            f"xllcorner     {m.xllcorner:f}",
            f"yllcorner     {m.yllcorner:f}",
            f"cellsize      {m.cellsize:f}",
            f"NODATA_value  {fmt % m.nodata}",
        ]
    )
    # np.savetxt compresses transparently for *.gz names
    np.savetxt(path, grid.data, fmt=fmt, delimiter=" ", header=header, comments="")
    logger.debug("Wrote grid %s.", path)
    return path


def write_meta_file(
    grid_path: str | Path,
    meta: GridMeta,
    title: str,
    labeltext: str = "year",
    colormap: str = "viridis",
    min_color: str = "lightgrey",
    factor: float = 1.0,
) -> Path:
    """
    Write the plotting legend next to a grid as ``<grid_path>.meta``.

    ``maxValue``/``minValue`` come from ``meta`` (usually a combined meta so
    companion maps share one scale) and are omitted when equal to NoData.
    """
    doc = {
        "title": title,
        "yTitle": 1.0,
        "xTitle": 0.0,
        "removeEmptyColumns": True,
        "labeltext": labeltext,
        "colormap": colormap,
        "factor": float(factor),
    }
    if meta.max != meta.nodata:
        doc["maxValue"] = round(float(meta.max), 2)
    if meta.min != meta.nodata:
        doc["minValue"] = round(float(meta.min), 2)
    doc.update(
        {
            "minColor": min_color,
            "yLabel": "Latitude",
            "YaxisMappingFile": "stacked_y_lat_buckets.csv",
            "YaxisMappingRefColumn": "Bucket",
            "YaxisMappingTarColumn": "Latitude",
            "YaxisMappingFormat": "{:2.0f}°",
            "yTicklist": [8, 21, 35, 49],
        }
    )
    meta_path = Path(str(grid_path) + ".meta")
    meta_path.parent.mkdir(parents=True, exist_ok=True)
    with open(meta_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, sort_keys=False, allow_unicode=True)
    return meta_path
