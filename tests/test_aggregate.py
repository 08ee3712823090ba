from __future__ import annotations

import numpy as np
import numpy.testing as npt

from tsumrisk.core.aggregate import aggregate_years
from tsumrisk.core.data_containers import YearlyResults

MATURITY = 250.0


def _results() -> YearlyResults:
    res = YearlyResults.allocate(2, 2000, 2002)
    res.tsum[:] = [[100.0, 300.0, 200.0], [250.0, 260.0, 0.0]]
    res.frost_days[:] = [[0, 2, 1], [0, 0, 0]]
    res.wet_harvest[:] = [[True, False, True], [False, False, False]]
    return res


def test_counts_and_unconditional_mean():
    res = _results()
    summary = aggregate_years(res, MATURITY)
    npt.assert_array_equal(
        res.tsum_reached, [[False, True, False], [True, True, False]]
    )
    # mean over all years, mature or not
    npt.assert_allclose(summary.tsum_avg, [200.0, 170.0])
    npt.assert_array_equal(summary.tsum_reached_count, [1, 2])
    npt.assert_array_equal(summary.frost_occurrence_count, [2, 0])
    npt.assert_array_equal(summary.wet_harvest_count, [2, 0])


def test_views_by_reference_id():
    res = _results()
    summary = aggregate_years(res, MATURITY)
    view = summary.for_ref(2)
    assert view.ref_id == 2
    assert view.tsum_reached_count == 2
    year = res.year_result(1, 2001)
    assert year.tsum == 300.0
    assert year.frost_days == 2
    assert year.tsum_reached
    assert not year.wet_harvest
    npt.assert_array_equal(summary.ref_ids, np.array([1, 2]))
