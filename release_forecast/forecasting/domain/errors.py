from __future__ import annotations

from typing import Sequence


class ForecastError(Exception):
    """Base class for forecasting failures surfaced to callers."""


class InvalidConfigurationError(ForecastError, ValueError):
    """A simulation request that must be rejected before any trial runs."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid simulation configuration: " + "; ".join(self.problems))


class DistributionUnavailableError(ForecastError, ValueError):
    """A distribution whose preconditions are not met for this run."""
