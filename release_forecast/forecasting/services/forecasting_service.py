from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from release_forecast.config import ForecastSettings
from release_forecast.forecasting.adjustments.scope_growth import resolve_scope_growth
from release_forecast.forecasting.domain.errors import InvalidConfigurationError
from release_forecast.forecasting.domain.models import (
    ForecastMode,
    Milestone,
    PeriodRecord,
    ProductivityAdjustment,
    ScopeChangeStatistics,
    ScopeGrowthMode,
    SimulationConfig,
    SimulationResult,
    TrendResult,
    VelocityStatistics,
    cumulative_thresholds,
)
from release_forecast.forecasting.samplers.distributions import build_distribution_specs
from release_forecast.forecasting.simulator.monte_carlo import MonteCarloReleaseForecaster
from release_forecast.forecasting.statistics.descriptive import (
    historical_samples,
    scope_change_statistics,
    velocity_statistics,
    velocity_trend,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastRequest:
    """Everything one forecast needs, passed in explicitly by the caller.

    When ``milestones`` are given their sizes define the total backlog and
    ``remaining_backlog`` is ignored.
    """

    period_start_date: date
    periods: tuple[PeriodRecord, ...] = ()
    remaining_backlog: float | None = None
    cadence_days: int = 14
    mode: ForecastMode = ForecastMode.HISTORY
    velocity_estimate: float | None = None
    cv: float | None = None
    volatility_multiplier: float | None = None
    adjustments: tuple[ProductivityAdjustment, ...] = ()
    milestones: tuple[Milestone, ...] = ()
    scope_growth_enabled: bool = False
    scope_growth_mode: ScopeGrowthMode = ScopeGrowthMode.CALCULATED
    scope_growth_custom: str | float | None = None
    custom_percentile: float | None = None
    trial_count: int | None = None


@dataclass(frozen=True)
class ForecastStatistics:
    velocity: VelocityStatistics
    scope: ScopeChangeStatistics | None
    trend: TrendResult


@dataclass
class ForecastingService:
    """Turns a ForecastRequest into distribution specs and a simulation run."""

    settings: ForecastSettings = field(default_factory=ForecastSettings)
    forecaster: MonteCarloReleaseForecaster | None = None

    def __post_init__(self) -> None:
        if self.forecaster is None:
            self.forecaster = MonteCarloReleaseForecaster(
                n_workers=self.settings.simulation.n_workers,
                min_bootstrap_samples=self.settings.distributions.min_bootstrap_samples,
                chunk_size=self.settings.simulation.chunk_size,
            )

    def statistics(self, periods: Sequence[PeriodRecord]) -> ForecastStatistics:
        return ForecastStatistics(
            velocity=velocity_statistics(periods),
            scope=scope_change_statistics(periods),
            trend=velocity_trend(periods),
        )

    def velocity_inputs(self, request: ForecastRequest) -> tuple[float, float, tuple[float, ...]]:
        """(mean, stddev, bootstrap samples) for the request's forecast mode."""
        dist_cfg = self.settings.distributions

        if ForecastMode(request.mode) is ForecastMode.SUBJECTIVE:
            estimate = request.velocity_estimate
            if estimate is None or not estimate > 0:
                raise InvalidConfigurationError(["subjective mode needs a velocity estimate > 0"])
            cv = dist_cfg.default_cv if request.cv is None else float(request.cv)
            return float(estimate), float(estimate) * cv, ()

        stats = velocity_statistics(request.periods)
        if stats.count == 0:
            raise InvalidConfigurationError(["history mode needs at least one baseline period"])
        multiplier = (
            dist_cfg.volatility_multiplier
            if request.volatility_multiplier is None
            else float(request.volatility_multiplier)
        )
        return stats.mean, stats.std_dev * multiplier, historical_samples(request.periods)

    def build_config(self, request: ForecastRequest) -> SimulationConfig:
        sim_cfg = self.settings.simulation

        if request.milestones:
            thresholds: tuple[float, ...] | None = cumulative_thresholds(request.milestones)
            backlog = thresholds[-1]
        else:
            thresholds = None
            if request.remaining_backlog is None:
                raise InvalidConfigurationError(["remaining_backlog is required without milestones"])
            backlog = float(request.remaining_backlog)

        calculated = None
        if request.scope_growth_enabled:
            scope = scope_change_statistics(request.periods)
            calculated = scope.average_scope_injection if scope is not None else None
        growth = resolve_scope_growth(
            request.scope_growth_enabled,
            request.scope_growth_mode,
            custom_value=request.scope_growth_custom,
            calculated_average=calculated,
        )
        if request.scope_growth_enabled and growth is None:
            logger.info("Scope growth enabled but unresolved; forecasting without it")

        return SimulationConfig(
            remaining_backlog=backlog,
            period_start_date=request.period_start_date,
            trial_count=request.trial_count or sim_cfg.trial_count,
            period_cadence_days=request.cadence_days,
            scope_growth_per_period=growth,
            milestone_thresholds=thresholds,
            custom_percentile=(
                sim_cfg.custom_percentile if request.custom_percentile is None else request.custom_percentile
            ),
            safety_cap_periods=sim_cfg.safety_cap_periods,
            productivity_adjustments=tuple(request.adjustments),
        )

    def forecast(self, request: ForecastRequest) -> SimulationResult:
        mean, std_dev, samples = self.velocity_inputs(request)
        config = self.build_config(request)
        specs = build_distribution_specs(
            mean,
            std_dev,
            mode=request.mode,
            historical_samples=samples,
            min_bootstrap_samples=self.settings.distributions.min_bootstrap_samples,
        )
        logger.info(
            "Forecasting %.2f remaining with velocity %.2f +/- %.2f (%s mode, %d distributions)",
            config.remaining_backlog,
            mean,
            std_dev,
            ForecastMode(request.mode).value,
            len(specs),
        )

        assert self.forecaster is not None
        return self.forecaster.run_simulation(
            config,
            specs,
            rng_seed=self.settings.simulation.rng_seed,
            milestone_names=[m.name for m in request.milestones] or None,
        )
