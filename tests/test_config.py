from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from release_forecast.config import EXAMPLE_CONFIG, ForecastSettings


def test_defaults() -> None:
    s = ForecastSettings()
    assert s.simulation.trial_count == 50_000
    assert s.simulation.safety_cap_periods == 1000
    assert s.simulation.rng_seed is None
    assert s.simulation.n_workers == 1
    assert s.simulation.custom_percentile == 85
    assert s.distributions.min_bootstrap_samples == 5
    assert s.logging.level == "INFO"


def test_load_partial_toml(tmp_path: Path) -> None:
    path = tmp_path / "forecast_config.toml"
    path.write_text("[simulation]\ntrial_count = 2000\nrng_seed = 42\n\n[logging]\nlog_dir = \"~/logs\"\n")
    s = ForecastSettings.load(path)
    assert s.simulation.trial_count == 2000
    assert s.simulation.rng_seed == 42
    assert s.distributions.default_cv == 0.25
    assert s.logging.resolved_log_dir() == Path("~/logs").expanduser().resolve()


def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.toml"
    path.write_text("[simulation]\ntrial_count = 0\ncustom_percentile = 150\n")
    with pytest.raises(ValidationError):
        ForecastSettings.load(path)


def test_shipped_example_matches_defaults(tmp_path: Path) -> None:
    shipped = Path(__file__).resolve().parents[1] / "forecast_config.example.toml"
    assert shipped.read_text(encoding="utf-8") == EXAMPLE_CONFIG

    path = tmp_path / "example.toml"
    path.write_text(EXAMPLE_CONFIG)
    assert ForecastSettings.load(path) == ForecastSettings()
