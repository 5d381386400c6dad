from __future__ import annotations

from typing import Final, Sequence

import numpy as np
import scipy.stats as st

from release_forecast.forecasting.domain.models import (
    PeriodRecord,
    ScopeChangePoint,
    ScopeChangeStatistics,
    TrendResult,
    VelocityStatistics,
)


# Below this average percent change per period the scope is reported as stable.
STABLE_SCOPE_PERCENT: Final[float] = 2.0
# Velocity trends with a weaker fit than this are too noisy to call a direction.
TREND_MIN_R_SQUARED: Final[float] = 0.1


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def sample_std_dev(values: Sequence[float]) -> float:
    """Sample standard deviation (Bessel-corrected); 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def baseline_periods(periods: Sequence[PeriodRecord]) -> list[PeriodRecord]:
    return [p for p in periods if p.included_in_baseline]


def historical_samples(periods: Sequence[PeriodRecord]) -> tuple[float, ...]:
    """Throughputs of the baseline periods, used for bootstrap resampling."""
    return tuple(float(p.throughput) for p in baseline_periods(periods))


def velocity_statistics(periods: Sequence[PeriodRecord]) -> VelocityStatistics:
    velocities = historical_samples(periods)
    return VelocityStatistics(
        count=len(velocities),
        mean=mean(velocities),
        std_dev=sample_std_dev(velocities),
    )


def scope_change_statistics(periods: Sequence[PeriodRecord]) -> ScopeChangeStatistics | None:
    """Summarise how the remaining backlog moved between periods.

    Only periods that recorded ``backlog_remaining_at_end`` are used. Returns
    None when fewer than two such periods exist.
    """
    with_data = sorted(
        (p for p in periods if p.backlog_remaining_at_end is not None),
        key=lambda p: p.period_number,
    )
    if len(with_data) < 2:
        return None

    points: list[ScopeChangePoint] = []
    changes: list[float] = []
    percents: list[float] = []
    injections: list[float] = []

    prev: PeriodRecord | None = None
    for p in with_data:
        scope = float(p.backlog_remaining_at_end)  # type: ignore[arg-type]
        if prev is None:
            points.append(ScopeChangePoint(p.period_number, scope, 0.0, 0.0))
            prev = p
            continue

        prev_scope = float(prev.backlog_remaining_at_end)  # type: ignore[arg-type]
        change = scope - prev_scope
        pct = (change / prev_scope) * 100.0 if prev_scope > 0 else 0.0
        changes.append(change)
        percents.append(pct)
        # Work added during the period: net backlog movement plus what was burned.
        injections.append(change + float(p.throughput))
        points.append(ScopeChangePoint(p.period_number, scope, change, pct))
        prev = p

    avg_pct = mean(percents)
    if abs(avg_pct) < STABLE_SCOPE_PERCENT:
        trend = "stable"
    elif avg_pct > 0:
        trend = "growing"
    else:
        trend = "shrinking"

    return ScopeChangeStatistics(
        periods_with_data=len(with_data),
        average_change=mean(changes),
        average_percent_change=avg_pct,
        volatility=sample_std_dev(changes),
        total_change=float(points[-1].scope - points[0].scope),
        latest_scope=float(points[-1].scope),
        average_scope_injection=mean(injections),
        trend=trend,
        data_points=tuple(points),
    )


def linear_trend(xs: Sequence[float], ys: Sequence[float]) -> TrendResult:
    n = len(xs)
    if n < 2:
        return TrendResult(slope=0.0, intercept=float(ys[0]) if n == 1 else 0.0, r_squared=0.0, direction="stable")

    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if np.all(x == x[0]):
        return TrendResult(slope=0.0, intercept=float(np.mean(y)), r_squared=0.0, direction="stable")
    if np.all(y == y[0]):
        return TrendResult(slope=0.0, intercept=float(y[0]), r_squared=0.0, direction="stable")

    fit = st.linregress(x, y)
    r_squared = float(fit.rvalue) ** 2
    if r_squared < TREND_MIN_R_SQUARED:
        direction = "stable"
    elif fit.slope > 0:
        direction = "improving"
    else:
        direction = "declining"
    return TrendResult(
        slope=float(fit.slope),
        intercept=float(fit.intercept),
        r_squared=r_squared,
        direction=direction,
    )


def velocity_trend(periods: Sequence[PeriodRecord]) -> TrendResult:
    """Least-squares trend of baseline throughput against period number."""
    base = sorted(baseline_periods(periods), key=lambda p: p.period_number)
    return linear_trend([p.period_number for p in base], [p.throughput for p in base])
