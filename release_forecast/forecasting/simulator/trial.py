from __future__ import annotations

from typing import Callable, Sequence

from release_forecast.forecasting.domain.models import TrialOutcome


def run_trial(
    sampler: Callable[[], float],
    starting_backlog: float,
    period_factors: Sequence[float] = (),
    scope_growth_per_period: float | None = None,
    milestone_thresholds: Sequence[float] | None = None,
    safety_cap_periods: int = 1000,
) -> TrialOutcome:
    """Simulate one release, period by period.

    Missing ``period_factors`` entries count as 1.0. Without milestones the
    trial ends once the remaining backlog reaches zero.
    With milestones it ends when the last (largest) threshold is crossed, and
    every intermediate threshold records the period it was first crossed in,
    so all milestones of a trial share the same draws.

    Scope growth is added at the start of every period, before velocity is
    burned. A threshold ``t`` counts as crossed once ``remaining`` drops to
    ``starting_backlog - t``, so scope growth delays milestones; with no growth
    this is the same as completed work reaching ``t``.

    Reaching ``safety_cap_periods`` ends the trial with ``capped=True`` and any
    unreached milestone recorded at the cap.
    """
    n_factors = len(period_factors)
    thresholds = tuple(milestone_thresholds) if milestone_thresholds else ()
    n_milestones = len(thresholds)
    reached: list[int] = []

    remaining = float(starting_backlog)
    period = 0

    while True:
        period += 1
        if period > safety_cap_periods:
            periods = safety_cap_periods
            milestones = None
            if n_milestones:
                milestones = tuple(reached) + (periods,) * (n_milestones - len(reached))
            return TrialOutcome(periods_required=periods, milestone_periods=milestones, capped=True)

        factor = period_factors[period - 1] if period <= n_factors else 1.0
        velocity = sampler() * factor

        # New scope lands before the period's burn, so the final period must cover it too.
        if scope_growth_per_period is not None:
            remaining += scope_growth_per_period
        remaining = max(0.0, remaining - velocity)

        if n_milestones:
            while len(reached) < n_milestones and (
                remaining <= starting_backlog - thresholds[len(reached)] or remaining <= 0.0
            ):
                reached.append(period)
            if len(reached) == n_milestones:
                return TrialOutcome(periods_required=period, milestone_periods=tuple(reached))
        elif remaining <= 0.0:
            return TrialOutcome(periods_required=period)
