"""
Fixed-capacity precipitation window and the wet-harvest rule.

The ring buffer keeps the last ``capacity`` daily values and returns them
oldest first. The rule itself is a pure function of that chronological
window, so it can be tested without any buffer state.
"""

from __future__ import annotations

import numpy as np

Array = np.ndarray


class RingBuffer:
    """
    Ring buffer of the most recent daily values.

    Parameters
    ----------
    capacity : int
        Number of days kept. Older values are overwritten in wrap-around
        order.
    """

    __slots__ = ("_data", "_next", "_size")

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be positive.")
        self._data = np.zeros(capacity, dtype=float)
        self._next = 0
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._data.shape[0]

    def __len__(self) -> int:
        return self._size

    def add_day(self, value: float) -> None:
        self._data[self._next] = value
        self._next = (self._next + 1) % self.capacity
        if self._size < self.capacity:
            self._size += 1

    def chronological(self) -> Array:
        """Stored values, oldest to newest (a copy)."""
        if self._size < self.capacity:
            return self._data[: self._size].copy()
        return np.roll(self._data, -self._next)

    def clear(self) -> None:
        self._next = 0
        self._size = 0


def wet_harvest_risk(
    window: Array, skip: int = 5, min_wet_days: int = 5
) -> tuple[bool, int]:
    """
    Evaluate the wet-harvest heuristic on a chronological rain window.

    Only entries after the first ``skip`` ones are considered (the most
    recent 10 of a full 15-day window). The harvest is wet when at least
    ``min_wet_days`` of them have rain and no two adjacent entries of that
    sub-window are both exactly zero.

    Parameters
    ----------
    window : ndarray
        Daily precipitation [mm], oldest first.
    skip : int, default=5
        Leading entries ignored.
    min_wet_days : int, default=5
        Required number of days with ``precip > 0``.

    Returns
    -------
    risk : bool
        Wet-harvest risk flag.
    wet_days : int
        Number of wet days in the evaluated sub-window.

    Notes
    -----
    Adjacency is checked inside the sub-window only: a dry last skipped day
    followed by a dry first evaluated day is not a dry pair.
    """
    recent = np.asarray(window, dtype=float)[skip:]
    wet_days = int(np.count_nonzero(recent > 0.0))
    dry = recent == 0.0
    two_dry_in_row = bool(np.any(dry[1:] & dry[:-1]))
    return (wet_days >= min_wet_days and not two_dry_in_row), wet_days
