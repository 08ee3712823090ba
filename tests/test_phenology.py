from __future__ import annotations

import threading

import numpy as np
import numpy.testing as npt
import pandas as pd
import pytest

from tsumrisk.core.config import EngineConfig
from tsumrisk.core.crops import Crop, Stage
from tsumrisk.core.data_containers import TimeWindows, YearlyResults
from tsumrisk.core.errors import DataIntegrityError, RunCancelledError
from tsumrisk.core.phenology import (
    PhenologyEngine,
    StageState,
    advance_stage,
    daily_tsum,
)

YEAR = 2000


def _engine(crop, n_refs=1, start=YEAR, end=YEAR, sow=1, harvest=366):
    config = EngineConfig(
        start_year=start,
        end_year=end,
        sowing_default_doy=sow,
        harvest_default_doy=harvest,
    )
    windows = TimeWindows.uniform(start, end, n_refs, sow, harvest)
    results = YearlyResults.allocate(n_refs, start, end)
    engine = PhenologyEngine(
        crop, windows, list(range(1, n_refs + 1)), results, config
    )
    return engine, results


def _single_stage(maturity, base=5.0, frost=-50.0):
    return Crop("single", maturity, (Stage("all", 1e9, base),), frost)


def test_daily_tsum_is_never_negative(two_stage_crop):
    state = StageState.zeros(3)
    state.stage_index[:] = [0, 1, 1]
    npt.assert_array_equal(daily_tsum(state, two_stage_crop, 2.0), [0, 0, 0])
    npt.assert_array_equal(daily_tsum(state, two_stage_crop, 5.0), [0, 0, 0])
    npt.assert_array_equal(daily_tsum(state, two_stage_crop, 10.0), [5, 2, 2])


def test_stage_advances_when_threshold_reached(two_stage_crop):
    engine, results = _engine(two_stage_crop)
    for doy in range(1, 11):
        engine.process_day(YEAR, doy, tavg=15.0, tmin=10.0, precip=0.0)
        if doy < 10:
            assert engine.state.stage_index[0] == 0
    assert engine.state.stage_index[0] == 1
    assert engine.state.tsum_in_stage[0] == 0.0
    assert results.tsum[0, 0] == pytest.approx(100.0)

    # stage 2 uses its own base temperature
    engine.process_day(YEAR, 11, tavg=15.0, tmin=10.0, precip=0.0)
    assert results.tsum[0, 0] == pytest.approx(107.0)


def test_last_stage_accumulates_without_advancing(two_stage_crop):
    state = StageState.zeros(1)
    state.stage_index[:] = 1
    advance_stage(state, two_stage_crop, np.array([500.0]))
    assert state.stage_index[0] == 1
    assert state.tsum_in_stage[0] == 500.0


def test_inactive_references_do_not_advance():
    crop = Crop("c", 10.0, (Stage("a", 0.0, 0.0), Stage("b", 5.0, 0.0)), 0.0)
    state = StageState.zeros(2)
    advance_stage(state, crop, np.zeros(2), active=np.array([True, False]))
    npt.assert_array_equal(state.stage_index, [1, 0])


def test_days_outside_window_do_not_count(two_stage_crop):
    engine, results = _engine(two_stage_crop, sow=5, harvest=6)
    for doy in range(1, 11):
        engine.process_day(YEAR, doy, tavg=15.0, tmin=-20.0, precip=0.0)
    assert results.tsum[0, 0] == pytest.approx(20.0)
    # frost counts on the two in-window days only
    assert results.frost_days[0, 0] == 2


def test_frost_needs_emergence(two_stage_crop):
    engine, results = _engine(two_stage_crop)
    engine.process_day(YEAR, 1, tavg=5.0, tmin=3.0, precip=0.0)
    assert results.tsum[0, 0] == 0.0
    assert results.frost_days[0, 0] == 0
    engine.process_day(YEAR, 2, tavg=55.0, tmin=3.0, precip=0.0)
    assert results.tsum[0, 0] == pytest.approx(50.0)
    assert results.frost_days[0, 0] == 1


def test_frost_after_maturity_is_ignored():
    engine, results = _engine(_single_stage(20.0, frost=5.0))
    engine.process_day(YEAR, 1, tavg=15.0, tmin=0.0, precip=0.0)
    engine.process_day(YEAR, 2, tavg=15.0, tmin=0.0, precip=0.0)
    engine.process_day(YEAR, 3, tavg=15.0, tmin=0.0, precip=0.0)
    assert results.frost_days[0, 0] == 1


def test_harvest_date_is_set_once():
    engine, _ = _engine(_single_stage(20.0))
    engine.process_day(YEAR, 1, tavg=15.0, tmin=10.0, precip=0.0)
    assert engine.rain.harvest_doy[0] == -1
    engine.process_day(YEAR, 2, tavg=15.0, tmin=10.0, precip=0.0)
    assert engine.rain.harvest_doy[0] == 2
    engine.process_day(YEAR, 3, tavg=15.0, tmin=10.0, precip=0.0)
    assert engine.rain.harvest_doy[0] == 2


def test_year_rollover_resets_state():
    crop = Crop("c", 20.0, (Stage("a", 10.0, 5.0), Stage("b", 1e6, 5.0)), 0.0)
    engine, results = _engine(crop, end=YEAR + 1)
    for doy in (1, 2, 3):
        engine.process_day(YEAR, doy, tavg=15.0, tmin=10.0, precip=1.0)
    assert engine.state.stage_index[0] == 1
    assert engine.rain.harvest_doy[0] == 2
    assert len(engine.rain.rain) == 3
    engine.process_day(YEAR + 1, 1, tavg=5.0, tmin=10.0, precip=2.0)
    assert engine.state.stage_index[0] == 0
    assert engine.state.tsum_in_stage[0] == 0.0
    assert engine.rain.harvest_doy[0] == -1
    # only the new year's first day is left in the rain window
    npt.assert_array_equal(engine.rain.rain.chronological(), [2.0])
    npt.assert_allclose(results.tsum[0], [30.0, 0.0])


def test_wet_harvest_flag_is_written_ten_days_after_harvest():
    # maturity on DOY 5, evaluation on DOY 15 over a full 15-day window
    engine, results = _engine(_single_stage(50.0), n_refs=1)
    recent = [1, 0, 1, 0, 1, 0, 1, 0, 1, 0]
    precip = [3, 3, 3, 3, 3] + recent
    for doy, p in enumerate(precip, start=1):
        engine.process_day(YEAR, doy, tavg=15.0, tmin=10.0, precip=p)
        if doy < 15:
            assert not results.wet_harvest[0, 0]
    assert engine.rain.harvest_doy[0] == 5
    assert engine.rain.wet_day_count[0] == 5
    assert results.wet_harvest[0, 0]


def test_two_dry_days_prevent_wet_harvest():
    engine, results = _engine(_single_stage(50.0))
    precip = [0] * 5 + [1, 1, 1, 1, 1, 1, 0, 0, 1, 1]
    for doy, p in enumerate(precip, start=1):
        engine.process_day(YEAR, doy, tavg=15.0, tmin=10.0, precip=p)
    assert engine.rain.wet_day_count[0] == 8
    assert not results.wet_harvest[0, 0]


def test_references_follow_their_own_windows():
    config = EngineConfig(start_year=YEAR, end_year=YEAR)
    windows = TimeWindows.uniform(YEAR, YEAR, 3, 1, 366)
    windows.start_doy[0, 1] = 3
    windows.end_doy[0, 2] = 1
    results = YearlyResults.allocate(3, YEAR, YEAR)
    engine = PhenologyEngine(
        _single_stage(1000.0), windows, [1, 2, 3], results, config
    )
    for doy in range(1, 6):
        engine.process_day(YEAR, doy, tavg=15.0, tmin=10.0, precip=0.0)
    npt.assert_allclose(results.tsum[:, 0], [50.0, 30.0, 10.0])


def test_engine_writes_only_its_rows():
    config = EngineConfig(start_year=YEAR, end_year=YEAR)
    windows = TimeWindows.uniform(YEAR, YEAR, 4, 1, 366)
    results = YearlyResults.allocate(4, YEAR, YEAR)
    engine = PhenologyEngine(_single_stage(1000.0), windows, [2, 4], results, config)
    engine.process_day(YEAR, 1, tavg=15.0, tmin=10.0, precip=0.0)
    npt.assert_allclose(results.tsum[:, 0], [0.0, 10.0, 0.0, 10.0])


def test_run_skips_early_years_and_stops_after_end():
    engine, results = _engine(_single_stage(1000.0))
    chunk = pd.DataFrame(
        {
            "year": [YEAR - 1, YEAR, YEAR, YEAR + 1, YEAR],
            "doy": [365, 1, 2, 1, 3],
            "tavg": [15.0] * 5,
            "tmin": [10.0] * 5,
            "precip": [0.0] * 5,
        }
    )
    assert engine.run([chunk]) == 2
    assert results.tsum[0, 0] == pytest.approx(20.0)


def test_run_honours_cancellation():
    config = EngineConfig(start_year=YEAR, end_year=YEAR)
    windows = TimeWindows.uniform(YEAR, YEAR, 1, 1, 366)
    results = YearlyResults.allocate(1, YEAR, YEAR)
    cancel = threading.Event()
    cancel.set()
    engine = PhenologyEngine(
        _single_stage(10.0), windows, [1], results, config, cancel=cancel
    )
    chunk = pd.DataFrame(
        {"year": [YEAR], "doy": [1], "tavg": [15.0], "tmin": [1.0], "precip": [0.0]}
    )
    with pytest.raises(RunCancelledError):
        engine.run([chunk])


def test_rejects_references_outside_results():
    config = EngineConfig(start_year=YEAR, end_year=YEAR)
    windows = TimeWindows.uniform(YEAR, YEAR, 2, 1, 366)
    results = YearlyResults.allocate(2, YEAR, YEAR)
    with pytest.raises(DataIntegrityError):
        PhenologyEngine(_single_stage(10.0), windows, [1, 3], results, config)
    with pytest.raises(DataIntegrityError):
        PhenologyEngine(_single_stage(10.0), windows, [1, 1], results, config)
