from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, model_validator

from release_forecast.forecasting.domain.models import (
    ForecastMode,
    Milestone,
    PeriodRecord,
    ProductivityAdjustment,
    ScopeGrowthMode,
)
from release_forecast.forecasting.services.forecasting_service import ForecastRequest


logger = logging.getLogger(__name__)


class PeriodEntry(BaseModel):
    period_number: int = Field(ge=1)
    throughput: float = Field(ge=0.0)
    included_in_baseline: bool = True
    backlog_remaining_at_end: Optional[float] = Field(default=None, ge=0.0)

    def to_domain(self) -> PeriodRecord:
        return PeriodRecord(
            period_number=self.period_number,
            throughput=self.throughput,
            included_in_baseline=self.included_in_baseline,
            backlog_remaining_at_end=self.backlog_remaining_at_end,
        )


class AdjustmentEntry(BaseModel):
    name: str = ""
    start_date: date
    end_date: date
    factor: float = Field(ge=0.0, le=1.0)
    enabled: bool = True

    @model_validator(mode="after")
    def _ordered(self) -> "AdjustmentEntry":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self

    def to_domain(self) -> ProductivityAdjustment:
        return ProductivityAdjustment(
            start_date=self.start_date,
            end_date=self.end_date,
            factor=self.factor,
            enabled=self.enabled,
            name=self.name,
        )


class MilestoneEntry(BaseModel):
    name: str
    backlog_size: float = Field(gt=0.0, description="Incremental size, not cumulative.")

    def to_domain(self) -> Milestone:
        return Milestone(name=self.name, backlog_size=self.backlog_size)


class ForecastInputs(BaseModel):
    mode: ForecastMode = ForecastMode.HISTORY
    period_start_date: date
    remaining_backlog: Optional[float] = Field(default=None, gt=0.0)
    cadence_days: int = Field(default=14, gt=0)
    velocity_estimate: Optional[float] = Field(default=None, gt=0.0)
    cv: Optional[float] = Field(default=None, ge=0.0)
    volatility_multiplier: Optional[float] = Field(default=None, ge=0.0)
    scope_growth_enabled: bool = False
    scope_growth_mode: ScopeGrowthMode = ScopeGrowthMode.CALCULATED
    scope_growth_custom: Optional[Union[float, str]] = None
    custom_percentile: Optional[float] = None
    trial_count: Optional[int] = Field(default=None, gt=0)


class ProjectDocument(BaseModel):
    """A project as saved by the planning UI: history plus forecast inputs."""

    name: str = ""
    unit: str = Field(default="points", description="Unit of measure for backlog and throughput.")
    periods: list[PeriodEntry] = Field(default_factory=list)
    adjustments: list[AdjustmentEntry] = Field(default_factory=list)
    milestones: list[MilestoneEntry] = Field(default_factory=list)
    forecast: ForecastInputs

    def period_records(self) -> tuple[PeriodRecord, ...]:
        return tuple(p.to_domain() for p in sorted(self.periods, key=lambda p: p.period_number))

    def to_request(self) -> ForecastRequest:
        f = self.forecast
        return ForecastRequest(
            period_start_date=f.period_start_date,
            periods=self.period_records(),
            remaining_backlog=f.remaining_backlog,
            cadence_days=f.cadence_days,
            mode=f.mode,
            velocity_estimate=f.velocity_estimate,
            cv=f.cv,
            volatility_multiplier=f.volatility_multiplier,
            adjustments=tuple(a.to_domain() for a in self.adjustments),
            milestones=tuple(m.to_domain() for m in self.milestones),
            scope_growth_enabled=f.scope_growth_enabled,
            scope_growth_mode=f.scope_growth_mode,
            scope_growth_custom=f.scope_growth_custom,
            custom_percentile=f.custom_percentile,
            trial_count=f.trial_count,
        )


def load_project(path: Path) -> ProjectDocument:
    raw = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    doc = ProjectDocument.model_validate(raw)
    logger.debug(
        "Loaded project %r: %d periods, %d adjustments, %d milestones",
        doc.name,
        len(doc.periods),
        len(doc.adjustments),
        len(doc.milestones),
    )
    return doc
