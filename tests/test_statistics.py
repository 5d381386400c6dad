from __future__ import annotations

import pytest

from release_forecast.forecasting.domain.models import PeriodRecord
from release_forecast.forecasting.statistics.descriptive import (
    historical_samples,
    scope_change_statistics,
    velocity_statistics,
    velocity_trend,
)


def _periods(throughputs, backlogs=None, excluded=()):
    backlogs = backlogs or [None] * len(throughputs)
    return [
        PeriodRecord(
            period_number=i + 1,
            throughput=t,
            included_in_baseline=(i + 1) not in excluded,
            backlog_remaining_at_end=b,
        )
        for i, (t, b) in enumerate(zip(throughputs, backlogs))
    ]


def test_velocity_statistics_use_baseline_only() -> None:
    stats = velocity_statistics(_periods([10, 20, 30, 100], excluded=(4,)))
    assert stats.count == 3
    assert stats.mean == pytest.approx(20.0)
    assert stats.std_dev == pytest.approx(10.0)
    assert historical_samples(_periods([10, 20, 30, 100], excluded=(4,))) == (10.0, 20.0, 30.0)


def test_velocity_statistics_degenerate_inputs() -> None:
    empty = velocity_statistics([])
    assert (empty.count, empty.mean, empty.std_dev) == (0, 0.0, 0.0)

    single = velocity_statistics(_periods([12]))
    assert (single.count, single.mean, single.std_dev) == (1, 12.0, 0.0)


def test_scope_change_statistics() -> None:
    stats = scope_change_statistics(_periods([10, 10, 10], [100, 110, 121]))
    assert stats is not None
    assert stats.periods_with_data == 3
    assert stats.average_change == pytest.approx(10.5)
    assert stats.average_percent_change == pytest.approx(10.0)
    assert stats.volatility == pytest.approx(0.70710678)
    assert stats.total_change == pytest.approx(21.0)
    assert stats.latest_scope == 121.0
    # Net change plus the work burned in the same period.
    assert stats.average_scope_injection == pytest.approx(20.5)
    assert stats.trend == "growing"
    assert [p.change for p in stats.data_points] == [0.0, 10.0, 11.0]


def test_scope_change_needs_two_points() -> None:
    assert scope_change_statistics(_periods([10, 10], [100, None])) is None
    assert scope_change_statistics([]) is None


def test_scope_change_trend_classification() -> None:
    stable = scope_change_statistics(_periods([5, 5], [100, 101]))
    assert stable is not None and stable.trend == "stable"

    shrinking = scope_change_statistics(_periods([5, 5], [100, 80]))
    assert shrinking is not None and shrinking.trend == "shrinking"

    from_zero = scope_change_statistics(_periods([5, 5], [0, 5]))
    assert from_zero is not None
    assert from_zero.data_points[-1].percent_change == 0.0


def test_scope_change_sorts_by_period_number() -> None:
    records = list(reversed(_periods([10, 10], [100, 90])))
    stats = scope_change_statistics(records)
    assert stats is not None
    assert stats.total_change == pytest.approx(-10.0)


def test_velocity_trend_directions() -> None:
    up = velocity_trend(_periods([10, 12, 14, 16]))
    assert up.direction == "improving"
    assert up.slope == pytest.approx(2.0)
    assert up.r_squared == pytest.approx(1.0)

    down = velocity_trend(_periods([16, 14, 12, 10]))
    assert down.direction == "declining"

    flat = velocity_trend(_periods([12, 12, 12]))
    assert flat.direction == "stable"

    noisy = velocity_trend(_periods([10, 30, 10, 30, 10, 30]))
    assert noisy.r_squared < 0.1
    assert noisy.direction == "stable"
