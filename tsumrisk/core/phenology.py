"""
Daily TSum accumulation and stage advancement for one weather series.

The engine advances, for every reference cell fed by the same weather
series, a stage index and the TSum accumulated within that stage, adds the
in-window daily TSum to the yearly total, sets the modeled harvest date when
the yearly total reaches maturity, counts frost days between emergence and
maturity, and drives the wet-harvest detector.

State is held column-wise (one entry per reference of the series) so a day
is one set of vectorized numpy operations regardless of how many references
share the series.

Design Principles
-----------------
- **Explicit configuration**: year range and heuristic constants come from
  :class:`~tsumrisk.core.config.EngineConfig`; nothing is global.
- **Caller-owned outputs**: results are written into the rows of a
  preallocated :class:`~tsumrisk.core.data_containers.YearlyResults`
  belonging to this series' references only.
- **Streaming**: :meth:`PhenologyEngine.run` consumes weather in chunks.

See Also
--------
tsumrisk.core.harvest_rain : ``HarvestRainDetector``.
tsumrisk.core.aggregate : multi-year summaries of the engine output.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from tsumrisk.core.config import EngineConfig
from tsumrisk.core.crops import Crop
from tsumrisk.core.data_containers import TimeWindows, YearlyResults, rows_for_refs
from tsumrisk.core.errors import DataIntegrityError, RunCancelledError
from tsumrisk.core.harvest_rain import HarvestRainDetector

Array = np.ndarray

logger = logging.getLogger(__name__)

WEATHER_COLUMNS = ["year", "doy", "tavg", "tmin", "precip"]


@dataclass
class StageState:
    """Current stage index and TSum within that stage, per reference."""

    stage_index: Array  # (n,) int
    tsum_in_stage: Array  # (n,) float

    @classmethod
    def zeros(cls, n: int) -> "StageState":
        return cls(
            stage_index=np.zeros(n, dtype=np.int64),
            tsum_in_stage=np.zeros(n, dtype=float),
        )

    def reset(self) -> None:
        self.stage_index[:] = 0
        self.tsum_in_stage[:] = 0.0


def daily_tsum(state: StageState, crop: Crop, tavg: float) -> Array:
    """
    Daily TSum with the base temperature of each reference's current stage.

    Returns ``max(0, tavg - base_temp[stage_index])``.
    """
    return np.maximum(0.0, tavg - crop.base_temps[state.stage_index])


def advance_stage(
    state: StageState,
    crop: Crop,
    tsum: Array,
    active: Optional[Array] = None,
) -> None:
    """
    Accumulate ``tsum`` and move to the next stage when its TSum is reached.

    The last stage keeps accumulating but never advances. Updates ``state``
    in place.

    Parameters
    ----------
    state : StageState
        Per-reference stage state.
    crop : Crop
        Crop with the per-stage TSum thresholds.
    tsum : ndarray
        Daily TSum per reference.
    active : ndarray of bool, optional
        References updated today; all when omitted.
    """
    if active is None:
        active = np.ones(state.stage_index.shape, dtype=bool)
    state.tsum_in_stage[active] += np.broadcast_to(tsum, active.shape)[active]
    last = crop.n_stages - 1
    advance = (
        active
        & (state.stage_index < last)
        & (state.tsum_in_stage >= crop.stage_tsums[state.stage_index])
    )
    state.stage_index[advance] += 1
    state.tsum_in_stage[advance] = 0.0


class PhenologyEngine:
    """
    TSum/frost/harvest engine for the references of one weather series.

    Parameters
    ----------
    crop : Crop
        Crop definition (shared, read-only).
    windows : TimeWindows
        Sowing/harvest windows for all references of the run.
    ref_ids : sequence of int
        1-based ids of the references fed by this weather series.
    results : YearlyResults
        Preallocated results for all references of the run; only the rows
        of ``ref_ids`` are written.
    config : EngineConfig
        Year range and rain-window constants.
    cancel : threading.Event, optional
        Cooperative cancellation token checked between records.
    name : str, default=""
        Label used in log messages (usually the weather grid code).

    Raises
    ------
    DataIntegrityError
        If ``ref_ids`` are outside the result range or duplicated, or if
        windows and results disagree on the number of references or years.
    """

    def __init__(
        self,
        crop: Crop,
        windows: TimeWindows,
        ref_ids: Sequence[int],
        results: YearlyResults,
        config: EngineConfig,
        cancel: Optional[threading.Event] = None,
        name: str = "",
    ):
        if windows.n_refs != results.n_refs:
            raise DataIntegrityError(
                f"Windows cover {windows.n_refs} references, results "
                f"{results.n_refs}."
            )
        if (
            results.start_year != config.start_year
            or results.n_years != config.n_years
            or windows.start_year != config.start_year
            or windows.n_years != config.n_years
        ):
            raise DataIntegrityError(
                "Windows and results must span the configured years."
            )
        self.crop = crop
        self.windows = windows
        self.results = results
        self.config = config
        self.cancel = cancel
        self.name = name
        self.rows = rows_for_refs(ref_ids, results.n_refs)
        n = self.rows.size
        self.state = StageState.zeros(n)
        self.rain = HarvestRainDetector(
            n,
            window_days=config.rain_window_days,
            offset_days=config.harvest_offset_days,
            skip_days=config.rain_skip_days,
            min_wet_days=config.min_wet_days,
        )
        self.current_year: Optional[int] = None

    # ---------------------------
    # Public API
    # ---------------------------
    def run(self, chunks: Iterable[pd.DataFrame]) -> int:
        """
        Process a chronologically sorted weather series.

        Parameters
        ----------
        chunks : iterable of pandas.DataFrame
            Weather chunks with columns ``year``, ``doy``, ``tavg``,
            ``tmin`` and ``precip``.

        Returns
        -------
        int
            Number of days processed.

        Raises
        ------
        RunCancelledError
            If the cancellation token is set between two records.
        """
        cfg = self.config
        n_days = 0
        for chunk in chunks:
            for year, doy, tavg, tmin, precip in chunk[WEATHER_COLUMNS].itertuples(
                index=False, name=None
            ):
                if self.cancel is not None and self.cancel.is_set():
                    raise RunCancelledError(
                        f"Weather series '{self.name}' cancelled."
                    )
                if year < cfg.start_year:
                    continue
                if year > cfg.end_year:
                    logger.debug("'%s': reached %d, stopping.", self.name, year)
                    return n_days
                self.process_day(
                    int(year), int(doy), float(tavg), float(tmin), float(precip)
                )
                n_days += 1
        return n_days

    def process_day(
        self, year: int, doy: int, tavg: float, tmin: float, precip: float
    ) -> None:
        """Advance all references of the series by one day."""
        if not (self.config.start_year <= year <= self.config.end_year):
            raise ValueError(f"Year {year} outside the configured range.")
        if year != self.current_year:
            self._new_year(year)
        y = year - self.config.start_year
        res = self.results

        # Rain is tracked every day, harvest may lie past the window end
        self.rain.add_day(precip)
        fired, risk = self.rain.evaluate(doy)
        if risk:
            res.wet_harvest[self.rows[fired], y] = True

        in_window = self.windows.contains(year, self.rows, doy)
        if not in_window.any():
            return

        tsum = np.where(in_window, daily_tsum(self.state, self.crop, tavg), 0.0)
        advance_stage(self.state, self.crop, tsum, active=in_window)

        active_rows = self.rows[in_window]
        res.tsum[active_rows, y] += tsum[in_window]
        year_tsum = res.tsum[self.rows, y]

        mature = in_window & (year_tsum >= self.crop.tsum_maturity)
        self.rain.set_harvest(mature, doy)

        if tmin < self.crop.frost_threshold:
            frost = (
                in_window
                & (year_tsum > 0.0)
                & (year_tsum < self.crop.tsum_maturity)
            )
            res.frost_days[self.rows[frost], y] += 1

    # ---------------------------
    # Internals
    # ---------------------------
    def _new_year(self, year: int) -> None:
        logger.debug("'%s': starting year %d.", self.name, year)
        self.current_year = year
        self.state.reset()
        self.rain.reset()
