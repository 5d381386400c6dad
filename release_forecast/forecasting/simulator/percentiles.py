from __future__ import annotations

import math
from datetime import date
from typing import Sequence

import numpy as np

from release_forecast.common.dates import finish_date_after
from release_forecast.forecasting.domain.models import (
    FIXED_PERCENTILES,
    PercentileResult,
    clamp_percentile,
)


def percentile_from_sorted(sorted_values: Sequence[float] | np.ndarray, percentile: float) -> float:
    """Linear interpolation between order statistics.

    ``index = p/100 * (n-1)``; ``p`` is clamped into [0, 100]. Returns 0.0 for
    an empty input.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    p = min(100.0, max(0.0, float(percentile)))
    index = (p / 100.0) * (n - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return float(sorted_values[lower])
    weight = index - lower
    return float(sorted_values[lower]) * (1.0 - weight) + float(sorted_values[upper]) * weight


def percentile_result(
    sorted_periods: Sequence[int] | np.ndarray,
    percentile: float,
    period_start_date: date,
    cadence_days: int,
) -> PercentileResult:
    raw = percentile_from_sorted(sorted_periods, percentile)
    periods = int(math.ceil(raw - 1e-9))
    return PercentileResult(
        percentile=float(percentile),
        periods_required=periods,
        finish_date=finish_date_after(period_start_date, periods, cadence_days),
        raw_periods=raw,
    )


def summarize(
    sorted_periods: Sequence[int] | np.ndarray,
    custom_percentile: float,
    period_start_date: date,
    cadence_days: int,
    percentiles: Sequence[int] = FIXED_PERCENTILES,
) -> tuple[tuple[PercentileResult, ...], PercentileResult]:
    """Fixed percentile results plus the (clamped) custom one."""
    fixed = tuple(
        percentile_result(sorted_periods, p, period_start_date, cadence_days) for p in percentiles
    )
    custom = percentile_result(
        sorted_periods, clamp_percentile(custom_percentile), period_start_date, cadence_days
    )
    return fixed, custom


def cumulative_probability(sorted_periods: Sequence[int] | np.ndarray, periods: int) -> float:
    """Percent of trials that finished within ``periods``."""
    arr = np.asarray(sorted_periods)
    if arr.size == 0:
        return 0.0
    return float(np.searchsorted(arr, periods, side="right")) / float(arr.size) * 100.0


def frequency_table(sorted_periods: Sequence[int] | np.ndarray) -> list[dict[str, float]]:
    """Histogram rows: periods, count, percent and cumulative percent."""
    arr = np.asarray(sorted_periods, dtype=int)
    if arr.size == 0:
        return []
    values, counts = np.unique(arr, return_counts=True)
    total = float(arr.size)
    rows: list[dict[str, float]] = []
    running = 0
    for v, c in zip(values, counts):
        running += int(c)
        rows.append(
            {
                "periods": int(v),
                "count": int(c),
                "percent": c / total * 100.0,
                "cumulative_percent": running / total * 100.0,
            }
        )
    return rows
