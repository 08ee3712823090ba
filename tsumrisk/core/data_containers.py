"""
Containers for time windows and per-reference engine outputs.

Per-reference data are stored column-wise: one row per reference cell, row
index ``ref_id - 1``. Reference ids are dense and 1-based, so the
``ref_id -> row`` mapping is explicit and checked by :func:`rows_for_refs`.

Classes
-------
TimeWindows
    Sowing/harvest DOY bounds per (year, reference).
YearResult
    One reference's outcome for one year (read-only view).
YearlyResults
    Preallocated ``(n_refs, n_years)`` arrays written by the engine.
SummaryResult
    One reference's multi-year summary (read-only view).
Summary
    Column-wise multi-year summary produced by the aggregator.

Functions
---------
rows_for_refs
    Validate reference ids and translate them to row indices.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from tsumrisk.core.errors import DataIntegrityError

Array = np.ndarray


def rows_for_refs(ref_ids: Iterable[int], n_refs: int) -> Array:
    """
    Translate 1-based reference ids into row indices.

    Parameters
    ----------
    ref_ids : iterable of int
        Reference ids, 1-based.
    n_refs : int
        Number of preallocated rows.

    Returns
    -------
    ndarray of int
        ``ref_ids - 1``.

    Raises
    ------
    DataIntegrityError
        If an id is outside ``1..n_refs`` or appears twice.
    """
    ids = np.asarray(list(ref_ids), dtype=np.int64)
    if ids.size and (ids.min() < 1 or ids.max() > n_refs):
        bad = ids[(ids < 1) | (ids > n_refs)]
        raise DataIntegrityError(
            f"Reference ids outside 1..{n_refs}: {bad[:10].tolist()}"
        )
    if np.unique(ids).size != ids.size:
        raise DataIntegrityError("Duplicate reference ids.")
    return ids - 1


# -------------------------
# Inputs
# -------------------------


@dataclass
class TimeWindows:
    """
    Inclusive DOY window per year and reference.

    Attributes
    ----------
    start_year : int
        Year of row 0.
    start_doy : ndarray, shape (n_years, n_refs), int
        Earliest sowing DOY.
    end_doy : ndarray, shape (n_years, n_refs), int
        Latest harvest DOY.
    """

    start_year: int
    start_doy: Array
    end_doy: Array

    def __post_init__(self):
        self.start_doy = np.asarray(self.start_doy, dtype=np.int64)
        self.end_doy = np.asarray(self.end_doy, dtype=np.int64)
        if self.start_doy.ndim != 2 or self.start_doy.shape != self.end_doy.shape:
            raise ValueError(
                "start_doy and end_doy must be 2-D with the same shape."
            )

    @classmethod
    def uniform(
        cls,
        start_year: int,
        end_year: int,
        n_refs: int,
        sowing_doy: int,
        harvest_doy: int,
    ) -> "TimeWindows":
        """Windows with the same DOY bounds for every year and reference."""
        shape = (end_year - start_year + 1, n_refs)
        return cls(
            start_year=start_year,
            start_doy=np.full(shape, sowing_doy, dtype=np.int64),
            end_doy=np.full(shape, harvest_doy, dtype=np.int64),
        )

    @property
    def n_years(self) -> int:
        return self.start_doy.shape[0]

    @property
    def n_refs(self) -> int:
        return self.start_doy.shape[1]

    def contains(self, year: int, rows: Array, doy: int) -> Array:
        """Boolean mask of ``rows`` whose window for ``year`` holds ``doy``."""
        y = year - self.start_year
        return (self.start_doy[y, rows] <= doy) & (doy <= self.end_doy[y, rows])


# -------------------------
# Outputs
# -------------------------


@dataclass(frozen=True)
class YearResult:
    """Outcome of one reference for one year."""

    ref_id: int
    year: int
    tsum: float
    frost_days: int
    tsum_reached: bool
    wet_harvest: bool


@dataclass
class YearlyResults:
    """
    Per-reference, per-year engine outputs (references × years).

    Rows are indexed by ``ref_id - 1``. Each weather-series worker writes
    only the rows of its own references, so concurrent writers never touch
    the same row.
    """

    start_year: int
    tsum: Array  # (N, Y) float
    frost_days: Array  # (N, Y) int
    tsum_reached: Array  # (N, Y) bool
    wet_harvest: Array  # (N, Y) bool

    @classmethod
    def allocate(
        cls, n_refs: int, start_year: int, end_year: int
    ) -> "YearlyResults":
        """Zero-initialized results for ``n_refs`` references."""
        shape = (n_refs, end_year - start_year + 1)
        return cls(
            start_year=start_year,
            tsum=np.zeros(shape, dtype=float),
            frost_days=np.zeros(shape, dtype=np.int64),
            tsum_reached=np.zeros(shape, dtype=bool),
            wet_harvest=np.zeros(shape, dtype=bool),
        )

    @property
    def n_refs(self) -> int:
        return self.tsum.shape[0]

    @property
    def n_years(self) -> int:
        return self.tsum.shape[1]

    @property
    def ref_ids(self) -> Array:
        return np.arange(1, self.n_refs + 1)

    @property
    def years(self) -> Array:
        return np.arange(self.start_year, self.start_year + self.n_years)

    def year_result(self, ref_id: int, year: int) -> YearResult:
        r = int(rows_for_refs([ref_id], self.n_refs)[0])
        y = year - self.start_year
        if not (0 <= y < self.n_years):
            raise IndexError(f"Year {year} outside the result range.")
        return YearResult(
            ref_id=ref_id,
            year=year,
            tsum=float(self.tsum[r, y]),
            frost_days=int(self.frost_days[r, y]),
            tsum_reached=bool(self.tsum_reached[r, y]),
            wet_harvest=bool(self.wet_harvest[r, y]),
        )


@dataclass(frozen=True)
class SummaryResult:
    """Multi-year summary of one reference."""

    ref_id: int
    tsum_avg: float
    tsum_reached_count: int
    frost_occurrence_count: int
    wet_harvest_count: int


@dataclass
class Summary:
    """Column-wise multi-year summaries, row ``ref_id - 1``."""

    tsum_avg: Array  # (N,) float
    tsum_reached_count: Array  # (N,) int
    frost_occurrence_count: Array  # (N,) int
    wet_harvest_count: Array  # (N,) int

    @property
    def n_refs(self) -> int:
        return self.tsum_avg.shape[0]

    @property
    def ref_ids(self) -> Array:
        return np.arange(1, self.n_refs + 1)

    def for_ref(self, ref_id: int) -> SummaryResult:
        r = int(rows_for_refs([ref_id], self.n_refs)[0])
        return SummaryResult(
            ref_id=ref_id,
            tsum_avg=float(self.tsum_avg[r]),
            tsum_reached_count=int(self.tsum_reached_count[r]),
            frost_occurrence_count=int(self.frost_occurrence_count[r]),
            wet_harvest_count=int(self.wet_harvest_count[r]),
        )
