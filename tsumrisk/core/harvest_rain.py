"""
Wet-harvest detection for the references of one weather series.

All references of a series share the same daily precipitation, so a single
:class:`~tsumrisk.library.rain_window.RingBuffer` serves the whole group;
harvest dates and the evaluated wet-day counts are kept per reference.
"""

from __future__ import annotations

import logging

import numpy as np

from tsumrisk.library.rain_window import RingBuffer, wet_harvest_risk

Array = np.ndarray

logger = logging.getLogger(__name__)

UNSET = -1


class HarvestRainDetector:
    """
    Rain window and harvest dates for ``n_refs`` references.

    Parameters
    ----------
    n_refs : int
        Number of references sharing the weather series.
    window_days : int, default=15
        Ring buffer capacity.
    offset_days : int, default=10
        The window is evaluated on ``harvest_doy + offset_days``.
    skip_days : int, default=5
        Oldest window entries ignored by the rule.
    min_wet_days : int, default=5
        Wet days needed for a wet harvest.

    Attributes
    ----------
    harvest_doy : ndarray of int, shape (n_refs,)
        Modeled harvest DOY of the current year, ``-1`` when unset.
    wet_day_count : ndarray of int, shape (n_refs,)
        Wet days counted at the last evaluation of the current year.
    """

    def __init__(
        self,
        n_refs: int,
        window_days: int = 15,
        offset_days: int = 10,
        skip_days: int = 5,
        min_wet_days: int = 5,
    ):
        self.rain = RingBuffer(window_days)
        self.offset_days = offset_days
        self.skip_days = skip_days
        self.min_wet_days = min_wet_days
        self.harvest_doy = np.full(n_refs, UNSET, dtype=np.int64)
        self.wet_day_count = np.zeros(n_refs, dtype=np.int64)

    def reset(self) -> None:
        """Forget harvest dates and buffered rain (new calendar year)."""
        self.harvest_doy[:] = UNSET
        self.wet_day_count[:] = 0
        self.rain.clear()

    def add_day(self, precip: float) -> None:
        self.rain.add_day(precip)

    def set_harvest(self, mask: Array, doy: int) -> None:
        """Set ``doy`` as harvest date where ``mask`` holds and none is set."""
        self.harvest_doy[mask & (self.harvest_doy <= 0)] = doy

    def evaluate(self, doy: int) -> tuple[Array, bool]:
        """
        Evaluate references whose harvest was ``offset_days`` ago.

        Parameters
        ----------
        doy : int
            Current day of year.

        Returns
        -------
        fired : ndarray of bool, shape (n_refs,)
            References evaluated today.
        risk : bool
            Wet-harvest flag for the evaluated references (meaningless when
            nothing fired).
        """
        fired = (self.harvest_doy > 0) & (doy == self.harvest_doy + self.offset_days)
        if not fired.any():
            return fired, False
        risk, wet_days = wet_harvest_risk(
            self.rain.chronological(), self.skip_days, self.min_wet_days
        )
        self.wet_day_count[fired] = wet_days
        logger.debug(
            "Rain window evaluated on DOY %d for %d refs: %d wet days, risk=%s",
            doy,
            int(fired.sum()),
            wet_days,
            risk,
        )
        return fired, risk
