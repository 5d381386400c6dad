from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from release_forecast.forecasting.domain.models import (
    DEFAULT_CUSTOM_PERCENTILE,
    DEFAULT_MIN_BOOTSTRAP_SAMPLES,
    DEFAULT_SAFETY_CAP_PERIODS,
    MAX_PERCENTILE,
    MIN_PERCENTILE,
)


DEFAULT_TRIAL_COUNT = 50_000


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path)).resolve()


def _read_toml(path: Path) -> dict[str, Any]:
    """Read TOML into a dict, supporting Python 3.10+.

    Uses tomllib when available, falls back to tomli.
    """
    data = path.read_bytes()
    try:
        import tomllib  # type: ignore[attr-defined]

        return tomllib.loads(data.decode("utf-8"))
    except ModuleNotFoundError:
        import tomli  # type: ignore[import-not-found]

        return tomli.loads(data.decode("utf-8"))


class SimulationSettings(BaseModel):
    trial_count: int = Field(default=DEFAULT_TRIAL_COUNT, gt=0, description="Trials per distribution.")
    safety_cap_periods: int = Field(
        default=DEFAULT_SAFETY_CAP_PERIODS,
        gt=0,
        description="Longest a single trial may run before it is recorded as capped.",
    )
    rng_seed: Optional[int] = Field(default=None, description="Fix for reproducible runs.")
    n_workers: int = Field(default=1, ge=1, description="Worker processes for the trial loop.")
    chunk_size: int = Field(default=5000, gt=0)
    custom_percentile: float = Field(
        default=DEFAULT_CUSTOM_PERCENTILE,
        ge=MIN_PERCENTILE,
        le=MAX_PERCENTILE,
    )


class DistributionSettings(BaseModel):
    min_bootstrap_samples: int = Field(default=DEFAULT_MIN_BOOTSTRAP_SAMPLES, ge=1)
    default_cv: float = Field(
        default=0.25,
        ge=0.0,
        description="Coefficient of variation applied to a subjective velocity estimate.",
    )
    volatility_multiplier: float = Field(
        default=1.0,
        ge=0.0,
        description="Scales the historical stddev before building distributions.",
    )


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO")
    log_dir: Optional[str] = Field(default=None, description="Also write forecast.log here.")

    def resolved_log_dir(self) -> Path | None:
        return _expand(self.log_dir) if self.log_dir else None


class ForecastSettings(BaseModel):
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)
    distributions: DistributionSettings = Field(default_factory=DistributionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, path: Path) -> "ForecastSettings":
        raw = _read_toml(path)
        return cls.model_validate(raw)


EXAMPLE_CONFIG = """\
# release-forecast settings. Every key is optional.

[simulation]
trial_count = 50000
safety_cap_periods = 1000
# rng_seed = 42
n_workers = 1
chunk_size = 5000
custom_percentile = 85

[distributions]
min_bootstrap_samples = 5
default_cv = 0.25
volatility_multiplier = 1.0

[logging]
level = "INFO"
# log_dir = "~/.release-forecast/logs"
"""
