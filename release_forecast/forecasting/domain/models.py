from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, ClassVar, Final, Iterator, Mapping, Sequence, Union

import numpy as np

from release_forecast.forecasting.domain.errors import (
    DistributionUnavailableError,
    InvalidConfigurationError,
)


FIXED_PERCENTILES: Final[tuple[int, ...]] = (50, 60, 70, 80, 90)
MIN_PERCENTILE: Final[int] = 1
MAX_PERCENTILE: Final[int] = 99
DEFAULT_CUSTOM_PERCENTILE: Final[int] = 85
DEFAULT_SAFETY_CAP_PERIODS: Final[int] = 1000
DEFAULT_MIN_BOOTSTRAP_SAMPLES: Final[int] = 5


def clamp_percentile(p: float) -> float:
    return float(min(MAX_PERCENTILE, max(MIN_PERCENTILE, p)))


class ForecastMode(str, Enum):
    HISTORY = "history"
    SUBJECTIVE = "subjective"


class ScopeGrowthMode(str, Enum):
    CALCULATED = "calculated"
    CUSTOM = "custom"


# --- Historical inputs -------------------------------------------------------


@dataclass(frozen=True)
class PeriodRecord:
    """One completed period (sprint) as supplied by the data store."""

    period_number: int
    throughput: float
    included_in_baseline: bool = True
    backlog_remaining_at_end: float | None = None

    def __post_init__(self) -> None:
        if self.period_number < 1:
            raise ValueError("period_number must be >= 1")
        if self.throughput < 0:
            raise ValueError("throughput must be >= 0")
        if self.backlog_remaining_at_end is not None and self.backlog_remaining_at_end < 0:
            raise ValueError("backlog_remaining_at_end must be >= 0")


@dataclass(frozen=True)
class VelocityStatistics:
    count: int
    mean: float
    std_dev: float


@dataclass(frozen=True)
class ScopeChangePoint:
    period_number: int
    scope: float
    change: float
    percent_change: float


@dataclass(frozen=True)
class ScopeChangeStatistics:
    periods_with_data: int
    average_change: float
    average_percent_change: float
    volatility: float
    total_change: float
    latest_scope: float
    average_scope_injection: float
    trend: str  # "growing" | "shrinking" | "stable"
    data_points: tuple[ScopeChangePoint, ...]


@dataclass(frozen=True)
class TrendResult:
    slope: float
    intercept: float
    r_squared: float
    direction: str  # "improving" | "declining" | "stable"


@dataclass(frozen=True)
class ProductivityAdjustment:
    """A date range with reduced (or restored) capacity, e.g. a holiday season."""

    start_date: date
    end_date: date  # inclusive
    factor: float
    enabled: bool = True
    name: str = ""

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        if not (0.0 <= self.factor <= 1.0):
            raise ValueError("factor must be within [0, 1]")

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class Milestone:
    """An intermediate delivery; ``backlog_size`` is incremental, not cumulative."""

    name: str
    backlog_size: float

    def __post_init__(self) -> None:
        if self.backlog_size <= 0:
            raise ValueError("milestone backlog_size must be > 0")


def cumulative_thresholds(milestones: Sequence[Milestone]) -> tuple[float, ...]:
    out: list[float] = []
    total = 0.0
    for m in milestones:
        total += float(m.backlog_size)
        out.append(total)
    return tuple(out)


# --- Distribution specs ------------------------------------------------------


class _LabelledSpec:
    kind: ClassVar[str]
    default_label: ClassVar[str]
    name: str | None

    @property
    def label(self) -> str:
        return self.name or self.default_label


@dataclass(frozen=True)
class TruncatedNormalSpec(_LabelledSpec):
    mean: float
    std_dev: float
    lower_bound: float = 0.0
    name: str | None = None

    kind: ClassVar[str] = "truncated_normal"
    default_label: ClassVar[str] = "T-Normal"


@dataclass(frozen=True)
class LognormalSpec(_LabelledSpec):
    mean: float
    std_dev: float
    name: str | None = None

    kind: ClassVar[str] = "lognormal"
    default_label: ClassVar[str] = "Lognorm"


@dataclass(frozen=True)
class GammaSpec(_LabelledSpec):
    mean: float
    std_dev: float
    name: str | None = None

    kind: ClassVar[str] = "gamma"
    default_label: ClassVar[str] = "Gamma"


@dataclass(frozen=True)
class BootstrapSpec(_LabelledSpec):
    """Empirical resampling; cannot be built without historical samples."""

    samples: tuple[float, ...]
    name: str | None = None

    kind: ClassVar[str] = "bootstrap"
    default_label: ClassVar[str] = "Bootstrap"

    def __post_init__(self) -> None:
        samples = tuple(float(s) for s in self.samples)
        if not samples:
            raise DistributionUnavailableError("Bootstrap requires historical samples")
        if any(s < 0 or math.isnan(s) for s in samples):
            raise DistributionUnavailableError("Bootstrap samples must be non-negative numbers")
        object.__setattr__(self, "samples", samples)


@dataclass(frozen=True)
class TriangularSpec(_LabelledSpec):
    low: float
    mode: float
    high: float
    name: str | None = None

    kind: ClassVar[str] = "triangular"
    default_label: ClassVar[str] = "Triangular"


@dataclass(frozen=True)
class UniformSpec(_LabelledSpec):
    low: float
    high: float
    name: str | None = None

    kind: ClassVar[str] = "uniform"
    default_label: ClassVar[str] = "Uniform"


DistributionSpec = Union[
    TruncatedNormalSpec,
    LognormalSpec,
    GammaSpec,
    BootstrapSpec,
    TriangularSpec,
    UniformSpec,
]


# --- Simulation inputs and outputs ------------------------------------------


@dataclass(frozen=True)
class SimulationConfig:
    remaining_backlog: float
    period_start_date: date
    trial_count: int
    period_cadence_days: int
    scope_growth_per_period: float | None = None
    milestone_thresholds: tuple[float, ...] | None = None
    custom_percentile: float = DEFAULT_CUSTOM_PERCENTILE
    safety_cap_periods: int = DEFAULT_SAFETY_CAP_PERIODS
    productivity_adjustments: tuple[ProductivityAdjustment, ...] = ()

    def __post_init__(self) -> None:
        if self.milestone_thresholds is not None:
            object.__setattr__(
                self,
                "milestone_thresholds",
                tuple(float(t) for t in self.milestone_thresholds),
            )
        object.__setattr__(self, "productivity_adjustments", tuple(self.productivity_adjustments))

    def validate(self) -> None:
        """Raise InvalidConfigurationError listing every problem found."""
        problems: list[str] = []
        if not (self.remaining_backlog > 0):
            problems.append("remaining_backlog must be > 0")
        if self.trial_count <= 0:
            problems.append("trial_count must be > 0")
        if self.period_cadence_days <= 0:
            problems.append("period_cadence_days must be > 0")
        if self.safety_cap_periods <= 0:
            problems.append("safety_cap_periods must be > 0")
        if self.scope_growth_per_period is not None and not math.isfinite(self.scope_growth_per_period):
            problems.append("scope_growth_per_period must be a finite number")

        thresholds = self.milestone_thresholds
        if thresholds is not None and len(thresholds) > 0:
            if thresholds[0] <= 0:
                problems.append("milestone thresholds must be > 0")
            if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
                problems.append("milestone thresholds must be strictly increasing")
            if not math.isclose(thresholds[-1], self.remaining_backlog, rel_tol=1e-9, abs_tol=1e-9):
                problems.append("last milestone threshold must equal remaining_backlog")

        if problems:
            raise InvalidConfigurationError(problems)

    @property
    def has_milestones(self) -> bool:
        return bool(self.milestone_thresholds)

    @property
    def effective_custom_percentile(self) -> float:
        return clamp_percentile(self.custom_percentile)


@dataclass(frozen=True)
class TrialOutcome:
    periods_required: int
    milestone_periods: tuple[int, ...] | None = None
    capped: bool = False


@dataclass(frozen=True)
class PercentileResult:
    percentile: float
    periods_required: int
    finish_date: date
    raw_periods: float


@dataclass(frozen=True)
class MilestoneForecast:
    index: int
    threshold: float
    periods_required: np.ndarray  # sorted ascending, one entry per trial
    percentiles: tuple[PercentileResult, ...]
    custom: PercentileResult
    name: str | None = None


@dataclass(frozen=True)
class DistributionForecast:
    label: str
    kind: str
    periods_required: np.ndarray  # sorted ascending, one entry per trial
    percentiles: tuple[PercentileResult, ...]
    custom: PercentileResult
    milestones: tuple[MilestoneForecast, ...] = ()
    capped_trials: int = 0
    warnings: tuple[str, ...] = ()

    @property
    def trial_count(self) -> int:
        return int(self.periods_required.shape[0])

    @property
    def capped_fraction(self) -> float:
        n = self.trial_count
        return float(self.capped_trials) / n if n else 0.0

    @property
    def converged(self) -> bool:
        return self.capped_trials == 0

    def percentile(self, p: float) -> PercentileResult:
        for r in self.percentiles:
            if r.percentile == p:
                return r
        if self.custom.percentile == p:
            return self.custom
        raise KeyError(f"Percentile {p} was not computed for {self.label}")


@dataclass(frozen=True)
class SimulationResult:
    config: SimulationConfig
    distributions: dict[str, DistributionForecast] = field(default_factory=dict)
    omitted: dict[str, str] = field(default_factory=dict)
    metadata: Mapping[str, Any] | None = None

    def percentile_rows(self, milestone_names: Sequence[str] | None = None) -> Iterator[dict[str, Any]]:
        """Flat rows for report/CSV writers: one per distribution, series and percentile."""
        for label, dist in self.distributions.items():
            for r in (*dist.percentiles, dist.custom):
                yield _row(label, None, None, r)
            for ms in dist.milestones:
                name = ms.name
                if name is None and milestone_names is not None and ms.index < len(milestone_names):
                    name = milestone_names[ms.index]
                for r in (*ms.percentiles, ms.custom):
                    yield _row(label, ms.index, name, r)


def _row(label: str, index: int | None, name: str | None, r: PercentileResult) -> dict[str, Any]:
    return {
        "distribution": label,
        "milestone_index": index,
        "milestone": name,
        "percentile": r.percentile,
        "periods": r.periods_required,
        "finish_date": r.finish_date.isoformat(),
    }
