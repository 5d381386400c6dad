from __future__ import annotations

import logging
import math

from release_forecast.forecasting.domain.models import ScopeGrowthMode

logger = logging.getLogger(__name__)


def resolve_scope_growth(
    enabled: bool,
    mode: ScopeGrowthMode | str,
    custom_value: str | float | None = None,
    calculated_average: float | None = None,
) -> float | None:
    """Backlog added per period, or None when growth is not modelled.

    An unparseable custom value means "no growth" rather than an error.
    A calculated average may be negative (net shrinkage).
    """
    if not enabled:
        return None

    if ScopeGrowthMode(mode) is ScopeGrowthMode.CUSTOM:
        if custom_value is None:
            return None
        try:
            value = float(str(custom_value).strip())
        except ValueError:
            logger.warning("Ignoring custom scope growth %r: not a number", custom_value)
            return None
        if not math.isfinite(value):
            logger.warning("Ignoring custom scope growth %r: not finite", custom_value)
            return None
        return value

    return calculated_average
