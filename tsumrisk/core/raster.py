"""
NoData-aware combination of scenario grids.

Each combination policy is a pure function over a flat sequence of grids:

- :func:`average`: per-cell mean; NoData in any input invalidates the cell.
- :func:`average_with_threshold`: mean, then values below a threshold
  become 0.
- :func:`select_pairs`: per (base, indicator) pair, keep the base where the
  indicator is below a threshold, else a default value.
- :func:`paired_threshold`: ``average(select_pairs(...))``.

:func:`combine_grids` dispatches on :class:`CombineMode`, and
:func:`combine_meta` merges grid metadata so companion maps share one color
scale.

Notes
-----
- Output geometry and NoData value are those of the first input.
- All inputs must share ``(nrows, ncols, xllcorner, yllcorner, cellsize)``;
  this is checked before any computation.
- Division is by the number of grids, not by the number of valid values.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Sequence

import numpy as np

from tsumrisk.core.errors import ConfigurationError, DimensionMismatchError

Array = np.ndarray

logger = logging.getLogger(__name__)


class CombineMode(enum.IntEnum):
    """Combination policy. Values match the combination config file."""

    AVERAGE = 0
    AVERAGE_WITH_THRESHOLD = 1
    PAIRED_THRESHOLD = 2

    @classmethod
    def parse(cls, value) -> "CombineMode":
        """Accept an int, a member, or a (case-insensitive) member name."""
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_")
            aliases = {
                "AVG": cls.AVERAGE,
                "AVGTHRESHOLD": cls.AVERAGE_WITH_THRESHOLD,
                "PAIRSWITHTHRESHOLD": cls.PAIRED_THRESHOLD,
            }
            if key in cls.__members__:
                return cls[key]
            if key.replace("_", "") in aliases:
                return aliases[key.replace("_", "")]
            if key.isdigit():
                value = int(key)
        try:
            return cls(value)
        except ValueError as e:
            raise ConfigurationError(f"Unknown combine mode {value!r}.") from e


@dataclass(frozen=True)
class GridMeta:
    """Geometry, NoData value and value range of a grid."""

    ncols: int
    nrows: int
    xllcorner: float
    yllcorner: float
    cellsize: float
    nodata: float
    min: float
    max: float

    def same_geometry(self, other: "GridMeta") -> bool:
        return (
            self.ncols == other.ncols
            and self.nrows == other.nrows
            and self.xllcorner == other.xllcorner
            and self.yllcorner == other.yllcorner
            and self.cellsize == other.cellsize
        )


@dataclass(frozen=True)
class Grid:
    """A 2-D float raster with its metadata."""

    data: Array  # (nrows, ncols)
    meta: GridMeta

    @classmethod
    def from_array(
        cls,
        data: Array,
        nodata: float = -9999.0,
        xllcorner: float = 0.0,
        yllcorner: float = 0.0,
        cellsize: float = 1.0,
    ) -> "Grid":
        """Wrap an array, computing min/max over the valid cells."""
        data = np.asarray(data, dtype=float)
        if data.ndim != 2:
            raise ValueError("Grid data must be 2-D.")
        nrows, ncols = data.shape
        vmin, vmax = value_range(data, nodata)
        meta = GridMeta(
            ncols=ncols,
            nrows=nrows,
            xllcorner=float(xllcorner),
            yllcorner=float(yllcorner),
            cellsize=float(cellsize),
            nodata=float(nodata),
            min=vmin,
            max=vmax,
        )
        return cls(data=data, meta=meta)

    @property
    def valid(self) -> Array:
        return self.data != self.meta.nodata


def value_range(data: Array, nodata: float) -> tuple[float, float]:
    """Min and max over cells not equal to ``nodata`` (NoData if none)."""
    valid = data[data != nodata]
    if valid.size == 0:
        return float(nodata), float(nodata)
    return float(valid.min()), float(valid.max())


def _check_geometry(grids: Sequence[Grid]) -> None:
    if not grids:
        raise ConfigurationError("At least one grid is needed to combine.")
    first = grids[0].meta
    for i, g in enumerate(grids[1:], start=1):
        if not first.same_geometry(g.meta) or g.data.shape != grids[0].data.shape:
            raise DimensionMismatchError(
                f"Grid {i} has geometry {g.meta.nrows}x{g.meta.ncols} at "
                f"({g.meta.xllcorner}, {g.meta.yllcorner}) cellsize "
                f"{g.meta.cellsize}; expected {first.nrows}x{first.ncols} at "
                f"({first.xllcorner}, {first.yllcorner}) cellsize "
                f"{first.cellsize}."
            )


def _with_data(template: Grid, data: Array) -> Grid:
    vmin, vmax = value_range(data, template.meta.nodata)
    return Grid(data=data, meta=replace(template.meta, min=vmin, max=vmax))


# -------------------------
# Reductions
# -------------------------


def _mean(grids: Sequence[Grid]) -> tuple[Array, Array]:
    _check_geometry(grids)
    total = np.zeros_like(grids[0].data, dtype=float)
    invalid = np.zeros(total.shape, dtype=bool)
    for g in grids:
        invalid |= ~g.valid
        total += np.where(g.valid, g.data, 0.0)
    return total / len(grids), invalid


def average(grids: Sequence[Grid]) -> Grid:
    """
    Per-cell mean over all grids.

    A cell that is NoData in any input is NoData in the output; the sum of
    the other cells is divided by ``len(grids)``.
    """
    mean, invalid = _mean(grids)
    mean[invalid] = grids[0].meta.nodata
    return _with_data(grids[0], mean)


def average_with_threshold(grids: Sequence[Grid], threshold: float) -> Grid:
    """Like :func:`average`, then valid values below ``threshold`` become 0."""
    mean, invalid = _mean(grids)
    mean[~invalid & (mean < threshold)] = 0.0
    mean[invalid] = grids[0].meta.nodata
    return _with_data(grids[0], mean)


def select_pairs(
    grids: Sequence[Grid], threshold: float, default_min: float
) -> list[Grid]:
    """
    Reduce consecutive (base, indicator) pairs to one grid each.

    Parameters
    ----------
    grids : sequence of Grid
        Even-length sequence; even positions are base grids, odd positions
        their indicator grids.
    threshold : float
        Where the indicator is below ``threshold`` the base value is kept.
    default_min : float
        Value written where the indicator reaches ``threshold``.

    Returns
    -------
    list of Grid
        One grid per pair. Cells that are NoData in the base stay NoData;
        the indicator is compared as stored, so a NoData indicator below
        ``threshold`` keeps the base value.

    Raises
    ------
    ConfigurationError
        If the number of grids is odd or zero.
    DimensionMismatchError
        If the grids do not share the same geometry.
    """
    if len(grids) % 2 != 0:
        raise ConfigurationError(
            f"Paired combination needs an even number of grids, got {len(grids)}."
        )
    _check_geometry(grids)
    out = []
    for base, indicator in zip(grids[0::2], grids[1::2]):
        data = np.where(indicator.data < threshold, base.data, default_min)
        data[~base.valid] = base.meta.nodata
        out.append(_with_data(base, data.astype(float)))
    return out


def paired_threshold(
    grids: Sequence[Grid], threshold: float, default_min: float
) -> Grid:
    """Select within each pair, then average the pair results."""
    return average(select_pairs(grids, threshold, default_min))


def combine_grids(
    grids: Sequence[Grid],
    mode: CombineMode,
    threshold: float = -1.0,
    default_min: float = 0.0,
) -> Grid:
    """
    Combine grids under ``mode``.

    Parameters
    ----------
    grids : sequence of Grid
        Inputs with equal geometry.
    mode : CombineMode
        Combination policy.
    threshold : float, default=-1
        Used by the thresholded modes.
    default_min : float, default=0
        Used by :attr:`CombineMode.PAIRED_THRESHOLD`.

    Returns
    -------
    Grid
        Composite with geometry and NoData of ``grids[0]``.
    """
    mode = CombineMode.parse(mode)
    logger.debug("Combining %d grids with %s.", len(grids), mode.name)
    if mode is CombineMode.AVERAGE:
        return average(grids)
    if mode is CombineMode.AVERAGE_WITH_THRESHOLD:
        return average_with_threshold(grids, threshold)
    return paired_threshold(grids, threshold, default_min)


def combine_meta(historical: GridMeta, *scenarios: GridMeta) -> GridMeta:
    """
    Metadata spanning the value range of several composites.

    Geometry and NoData are taken from ``historical``; ``min``/``max`` are
    global over all inputs. Inputs without any valid cell (min and max
    equal to their NoData) do not contribute.
    """
    metas = (historical, *scenarios)
    ranged = [m for m in metas if not (m.min == m.nodata and m.max == m.nodata)]
    if not ranged:
        return historical
    return replace(
        historical,
        min=min(m.min for m in ranged),
        max=max(m.max for m in ranged),
    )
