from __future__ import annotations

import numpy as np
import numpy.testing as npt

from tsumrisk.core.harvest_rain import HarvestRainDetector
from tsumrisk.library.rain_window import RingBuffer, wet_harvest_risk


def test_ring_buffer_partial_then_wrapped():
    buf = RingBuffer(3)
    assert len(buf) == 0
    npt.assert_array_equal(buf.chronological(), [])
    buf.add_day(1.0)
    buf.add_day(2.0)
    npt.assert_array_equal(buf.chronological(), [1.0, 2.0])
    for v in (3.0, 4.0, 5.0):
        buf.add_day(v)
    assert len(buf) == 3
    npt.assert_array_equal(buf.chronological(), [3.0, 4.0, 5.0])
    buf.clear()
    assert len(buf) == 0


def test_rule_counts_only_the_recent_ten_days():
    window = np.array([5.0] * 5 + [1, 0, 1, 0, 1, 0, 1, 0, 1, 0])
    assert wet_harvest_risk(window) == (True, 5)
    window = np.array([5.0] * 5 + [0, 1, 0, 1, 0, 1, 0, 1, 0, 1])
    assert wet_harvest_risk(window) == (True, 5)


def test_rule_rejects_two_dry_days_in_a_row():
    window = np.array([1.0] * 5 + [1, 1, 1, 1, 0, 0, 1, 1, 1, 1])
    assert wet_harvest_risk(window) == (False, 8)


def test_rule_ignores_dry_pair_across_the_skipped_boundary():
    # index 4 and 5 are both dry but index 4 is not part of the window
    window = np.array([1.0, 1, 1, 1, 0] + [0, 1, 0, 1, 0, 1, 0, 1, 1, 1])
    assert wet_harvest_risk(window) == (True, 6)


def test_rule_on_a_short_window():
    assert wet_harvest_risk(np.array([1.0, 1, 1])) == (False, 0)


def test_detector_fires_once_per_harvest_date():
    det = HarvestRainDetector(2)
    det.set_harvest(np.array([True, False]), 3)
    det.set_harvest(np.array([True, True]), 4)
    npt.assert_array_equal(det.harvest_doy, [3, 4])
    for doy in range(1, 16):
        det.add_day(2.0)
        fired, risk = det.evaluate(doy)
        if doy == 13:
            npt.assert_array_equal(fired, [True, False])
            assert risk
        elif doy == 14:
            npt.assert_array_equal(fired, [False, True])
            assert risk
        else:
            assert not fired.any()
    det.reset()
    npt.assert_array_equal(det.harvest_doy, [-1, -1])
    assert len(det.rain) == 0
