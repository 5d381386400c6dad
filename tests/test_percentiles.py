from __future__ import annotations

from datetime import date

import numpy as np
import pytest

from release_forecast.forecasting.simulator.percentiles import (
    cumulative_probability,
    frequency_table,
    percentile_from_sorted,
    percentile_result,
    summarize,
)


def test_linear_interpolation_between_order_statistics() -> None:
    assert percentile_from_sorted([10, 20, 30], 50) == 20.0
    assert percentile_from_sorted([10, 20], 25) == pytest.approx(12.5)
    assert percentile_from_sorted(np.array([4, 8, 15, 16, 23, 42]), 0) == 4.0


def test_percentile_is_clamped_and_empty_is_zero() -> None:
    assert percentile_from_sorted([10, 20, 30], 150) == 30.0
    assert percentile_from_sorted([10, 20, 30], -5) == 10.0
    assert percentile_from_sorted([], 50) == 0.0


def test_percentile_result_rounds_up_and_dates_by_cadence() -> None:
    r = percentile_result([1, 2, 3, 4], 50, date(2025, 1, 1), 14)
    assert r.raw_periods == pytest.approx(2.5)
    assert r.periods_required == 3
    assert r.finish_date == date(2025, 2, 12)

    exact = percentile_result([5, 5, 5], 90, date(2025, 1, 1), 7)
    assert exact.periods_required == 5


def test_summarize_clamps_the_custom_percentile() -> None:
    values = np.arange(1, 101)
    fixed, custom = summarize(values, 150, date(2025, 1, 6), 14)
    assert [r.percentile for r in fixed] == [50.0, 60.0, 70.0, 80.0, 90.0]
    assert custom.percentile == 99.0

    _, low = summarize(values, 0, date(2025, 1, 6), 14)
    assert low.percentile == 1.0


def test_cumulative_probability() -> None:
    values = [1, 2, 2, 3]
    assert cumulative_probability(values, 2) == pytest.approx(75.0)
    assert cumulative_probability(values, 0) == 0.0
    assert cumulative_probability(values, 3) == pytest.approx(100.0)
    assert cumulative_probability([], 3) == 0.0


def test_frequency_table() -> None:
    rows = frequency_table([1, 2, 2, 3])
    assert [(r["periods"], r["count"]) for r in rows] == [(1, 1), (2, 2), (3, 1)]
    assert [r["percent"] for r in rows] == pytest.approx([25.0, 50.0, 25.0])
    assert rows[-1]["cumulative_percent"] == pytest.approx(100.0)
    assert frequency_table([]) == []
