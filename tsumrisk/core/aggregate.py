"""Collapse per-year engine results into per-reference summaries."""

from __future__ import annotations

import numpy as np

from tsumrisk.core.data_containers import Summary, YearlyResults


def aggregate_years(results: YearlyResults, tsum_maturity: float) -> Summary:
    """
    Summarize every reference over all years of the run.

    Marks ``results.tsum_reached`` in place (``tsum >= tsum_maturity``) and
    returns the summary.

    Parameters
    ----------
    results : YearlyResults
        Engine output for all references.
    tsum_maturity : float
        Crop TSum needed for maturity.

    Returns
    -------
    Summary
        ``tsum_avg`` is the plain mean over all years, including years in
        which maturity was not reached. The counts are numbers of years
        with maturity reached, with at least one frost day and with a wet
        harvest.
    """
    results.tsum_reached[:] = results.tsum >= tsum_maturity
    return Summary(
        tsum_avg=results.tsum.sum(axis=1) / results.n_years,
        tsum_reached_count=results.tsum_reached.sum(axis=1).astype(np.int64),
        frost_occurrence_count=(results.frost_days > 0)
        .sum(axis=1)
        .astype(np.int64),
        wet_harvest_count=results.wet_harvest.sum(axis=1).astype(np.int64),
    )
