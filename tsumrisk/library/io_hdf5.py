"""Save/load yearly results and summaries to/from HDF5 files."""

from __future__ import annotations

import json
import logging
import platform
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import h5py

import numpy as np

from tsumrisk.core.data_containers import Summary, YearlyResults

logger = logging.getLogger(__name__)

# Datasets stored per group
YEARLY_ARRAY_FIELDS = ["tsum", "frost_days", "tsum_reached", "wet_harvest"]
SUMMARY_ARRAY_FIELDS = [
    "tsum_avg",
    "tsum_reached_count",
    "frost_occurrence_count",
    "wet_harvest_count",
]


def _git_commit_or_none() -> Optional[str]:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "HEAD"], text=True, stderr=subprocess.DEVNULL
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return None


def _suggest_chunks(shape: tuple[int, ...]) -> Optional[tuple[int, ...]]:
    """
    Choose chunk sizes for reference-major access.

    For 2D (N, Y): ``(min(N, 4096), Y)`` so one chunk holds all years of a
    block of references. For 1D (N,): ``(min(N, 65536),)``.

    Parameters
    ----------
    shape : tuple of int
        Dataset shape.

    Returns
    -------
    tuple of int or None
        Suggested chunk shape, or ``None`` for empty datasets.
    """
    if 0 in shape:
        return None
    if len(shape) == 2:
        N, Y = shape
        return (min(N, 4096), Y)
    if len(shape) == 1:
        return (min(shape[0], 65536),)
    return None


def _write_dataset(g: h5py.Group, name: str, arr: np.ndarray) -> None:
    arr = np.asarray(arr)
    dset = g.create_dataset(
        name,
        data=arr,
        compression="gzip",
        compression_opts=4,
        shuffle=True,
        chunks=_suggest_chunks(arr.shape),
    )
    # Helpful shape metadata (humans/tools)
    dset.attrs["shape"] = arr.shape
    dset.attrs["dtype"] = str(arr.dtype)


def save_results_hdf5(
    results: YearlyResults,
    summary: Optional[Summary],
    path: Path,
    extra_meta: Optional[Dict[str, Any]] = None,
) -> None:
    """Persist yearly results (and optionally the summary) with metadata."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    meta = {
        "schema_version": 1,
        "python": platform.python_version(),
        "numpy": np.__version__,
        "git_commit": _git_commit_or_none(),
        "start_year": int(results.start_year),
    }
    if extra_meta:
        meta.update(extra_meta)

    with h5py.File(path, "w") as f:
        for k, v in meta.items():
            f.attrs[k] = (
                json.dumps(v)
                if isinstance(v, (dict, list))
                else ("" if v is None else v)
            )

        g = f.create_group("yearly")
        for name in YEARLY_ARRAY_FIELDS:
            _write_dataset(g, name, getattr(results, name))

        if summary is not None:
            g = f.create_group("summary")
            for name in SUMMARY_ARRAY_FIELDS:
                _write_dataset(g, name, getattr(summary, name))

    logger.info("Wrote HDF5 snapshot: %s", path.resolve())


def load_vars_hdf5(
    path: Path, names: Iterable[str], group: str = "yearly"
) -> Dict[str, np.ndarray]:
    """
    Load only selected variables of one group.

    Returns
    -------
    dict
        Mapping of variable name to array.
    """
    out: Dict[str, np.ndarray] = {}
    with h5py.File(path, "r") as f:
        g = f[group]
        for name in names:
            if name not in g:
                raise KeyError(f"Variable '{name}' not found in HDF5 file.")
            out[name] = g[name][...]
    return out


def load_results_hdf5(path: Path) -> Tuple[YearlyResults, Optional[Summary]]:
    """
    Load yearly results and, when stored, the summary.

    Parameters
    ----------
    path : pathlib.Path
        HDF5 file path written by :func:`save_results_hdf5`.

    Returns
    -------
    tuple of (YearlyResults, Summary or None)
    """
    with h5py.File(path, "r") as f:
        start_year = int(f.attrs["start_year"])
        yearly = {n: f["yearly"][n][...] for n in YEARLY_ARRAY_FIELDS}
        summary = None
        if "summary" in f:
            summary = Summary(
                **{n: f["summary"][n][...] for n in SUMMARY_ARRAY_FIELDS}
            )
    return YearlyResults(start_year=start_year, **yearly), summary
