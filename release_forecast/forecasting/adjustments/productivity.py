from __future__ import annotations

import logging
from datetime import date
from typing import Sequence

from release_forecast.common.dates import (
    count_working_days,
    iter_working_days,
    period_end_date,
    period_start_date,
)
from release_forecast.forecasting.domain.models import (
    DEFAULT_SAFETY_CAP_PERIODS,
    ProductivityAdjustment,
)

logger = logging.getLogger(__name__)


def resolve_factor(
    period_start: date,
    period_end: date,
    adjustments: Sequence[ProductivityAdjustment],
) -> float:
    """Time-weighted productivity multiplier for one period.

    Each working day (Mon-Fri) takes the minimum factor of the enabled
    adjustments covering it, or 1.0 when none do; the period factor is the
    mean over its working days. A period with no working days returns 1.0.
    """
    if count_working_days(period_start, period_end) == 0:
        return 1.0

    relevant = [
        a
        for a in adjustments
        if a.enabled and a.end_date >= period_start and a.start_date <= period_end
    ]
    if not relevant:
        return 1.0

    total = 0.0
    n_days = 0
    for day in iter_working_days(period_start, period_end):
        factors = [a.factor for a in relevant if a.covers(day)]
        total += min(factors) if factors else 1.0
        n_days += 1
    return total / n_days


def precompute_period_factors(
    first_period_start: date,
    cadence_days: int,
    adjustments: Sequence[ProductivityAdjustment],
    max_periods: int = DEFAULT_SAFETY_CAP_PERIODS,
) -> list[float]:
    """Productivity factor per future period (index 0 = first simulated period).

    The list stops after the last period touched by an enabled adjustment;
    callers treat any index past the end as 1.0.
    """
    enabled = [a for a in adjustments if a.enabled]
    if not enabled:
        return []

    relevant = [a for a in enabled if a.end_date >= first_period_start]
    if not relevant:
        return []
    last_end = max(a.end_date for a in relevant)

    factors: list[float] = []
    for period in range(1, max_periods + 1):
        start = period_start_date(first_period_start, period, cadence_days)
        if start > last_end:
            break
        end = period_end_date(first_period_start, period, cadence_days)
        factors.append(resolve_factor(start, end, relevant))

    logger.debug("Precomputed %d productivity factors (%d adjustments)", len(factors), len(relevant))
    return factors


def has_active_adjustments(factors: Sequence[float]) -> bool:
    return any(f != 1.0 for f in factors)
