from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator

# 0=Mon ... 6=Sun
WORKING_WEEKDAYS = frozenset({0, 1, 2, 3, 4})


def add_days(start: date, days: int) -> date:
    # date arithmetic counts calendar days, so there is no DST drift.
    return start + timedelta(days=int(days))


def period_start_date(first_period_start: date, period_number: int, cadence_days: int) -> date:
    """Start date of 1-based ``period_number``."""
    return add_days(first_period_start, (period_number - 1) * cadence_days)


def period_end_date(first_period_start: date, period_number: int, cadence_days: int) -> date:
    """Inclusive last calendar day of 1-based ``period_number``."""
    return add_days(period_start_date(first_period_start, period_number, cadence_days), cadence_days - 1)


def finish_date_after(first_period_start: date, periods: int, cadence_days: int) -> date:
    return add_days(first_period_start, periods * cadence_days)


def is_working_day(day: date) -> bool:
    return day.weekday() in WORKING_WEEKDAYS


def iter_working_days(start: date, end: date) -> Iterator[date]:
    """Yield Mon-Fri days in the inclusive range [start, end]."""
    day = start
    while day <= end:
        if is_working_day(day):
            yield day
        day += timedelta(days=1)


def count_working_days(start: date, end: date) -> int:
    total = (end - start).days + 1
    if total <= 0:
        return 0
    full_weeks, rest = divmod(total, 7)
    count = full_weeks * 5
    weekday = start.weekday()
    for i in range(rest):
        if (weekday + i) % 7 in WORKING_WEEKDAYS:
            count += 1
    return count
