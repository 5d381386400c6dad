from __future__ import annotations

from datetime import date

from release_forecast.common.dates import (
    count_working_days,
    finish_date_after,
    iter_working_days,
    period_end_date,
    period_start_date,
)


def test_finish_date_counts_calendar_days_across_dst() -> None:
    # Spans the March daylight-saving switch in most time zones.
    assert finish_date_after(date(2025, 3, 1), 2, 14) == date(2025, 3, 29)
    assert finish_date_after(date(2025, 10, 20), 1, 14) == date(2025, 11, 3)


def test_period_boundaries() -> None:
    start = date(2025, 1, 6)
    assert period_start_date(start, 1, 14) == start
    assert period_start_date(start, 2, 14) == date(2025, 1, 20)
    assert period_end_date(start, 1, 14) == date(2025, 1, 19)


def test_working_day_count_matches_iteration() -> None:
    start = date(2025, 1, 1)
    for span in range(0, 40):
        end = date.fromordinal(start.toordinal() + span)
        assert count_working_days(start, end) == len(list(iter_working_days(start, end)))
    assert count_working_days(date(2025, 1, 10), date(2025, 1, 1)) == 0
