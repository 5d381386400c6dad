from __future__ import annotations

from datetime import date

import pytest

from release_forecast.forecasting.adjustments.productivity import (
    has_active_adjustments,
    precompute_period_factors,
    resolve_factor,
)
from release_forecast.forecasting.domain.models import ProductivityAdjustment

MON = date(2025, 1, 6)
SUN = date(2025, 1, 12)


def test_no_adjustments_is_full_capacity() -> None:
    assert resolve_factor(MON, SUN, []) == 1.0


def test_overlapping_adjustments_use_the_most_restrictive() -> None:
    adjustments = [
        ProductivityAdjustment(MON, SUN, 0.5, name="conference"),
        ProductivityAdjustment(MON, SUN, 0.3, name="flu season"),
    ]
    assert resolve_factor(MON, SUN, adjustments) == pytest.approx(0.3)


def test_factor_is_weighted_by_working_days() -> None:
    # Mon and Tue off, Wed-Fri normal.
    holiday = ProductivityAdjustment(MON, date(2025, 1, 7), 0.0)
    assert resolve_factor(MON, SUN, [holiday]) == pytest.approx(0.6)


def test_weekend_days_do_not_count() -> None:
    weekend = ProductivityAdjustment(date(2025, 1, 11), SUN, 0.0)
    assert resolve_factor(MON, SUN, [weekend]) == 1.0
    assert resolve_factor(date(2025, 1, 11), SUN, [weekend]) == 1.0


def test_disabled_adjustments_are_ignored() -> None:
    off = ProductivityAdjustment(MON, SUN, 0.2, enabled=False)
    assert resolve_factor(MON, SUN, [off]) == 1.0


def test_precompute_stops_after_last_adjustment() -> None:
    second_week = ProductivityAdjustment(date(2025, 1, 13), date(2025, 1, 19), 0.5)
    factors = precompute_period_factors(MON, 7, [second_week])
    assert factors == [1.0, pytest.approx(0.5)]
    assert has_active_adjustments(factors)


def test_precompute_ignores_past_adjustments() -> None:
    past = ProductivityAdjustment(date(2024, 12, 23), date(2024, 12, 31), 0.1)
    assert precompute_period_factors(MON, 14, [past]) == []
    assert not has_active_adjustments([])


def test_adjustment_invariants() -> None:
    with pytest.raises(ValueError):
        ProductivityAdjustment(SUN, MON, 0.5)
    with pytest.raises(ValueError):
        ProductivityAdjustment(MON, SUN, 1.5)
