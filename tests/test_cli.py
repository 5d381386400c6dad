from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from release_forecast.cli import app

runner = CliRunner()


def _project(tmp_path: Path, **forecast) -> Path:
    doc = {
        "name": "Apollo",
        "unit": "points",
        "periods": [
            {"period_number": i + 1, "throughput": t, "backlog_remaining_at_end": b}
            for i, (t, b) in enumerate(zip([20, 25, 30, 22, 28, 25], [200, 185, 165, 150, 130, 115]))
        ],
        "adjustments": [
            {"name": "Holidays", "start_date": "2025-12-22", "end_date": "2026-01-02", "factor": 0.2}
        ],
        "milestones": [],
        "forecast": {"period_start_date": "2025-12-15", "remaining_backlog": 115, **forecast},
    }
    path = tmp_path / "project.json"
    path.write_text(json.dumps(doc))
    return path


def test_forecast_prints_tables_and_writes_json(tmp_path: Path) -> None:
    project = _project(tmp_path)
    out = tmp_path / "out" / "result.json"
    res = runner.invoke(
        app,
        [
            "forecast",
            str(project),
            "--trials",
            "500",
            "--seed",
            "3",
            "--no-progress",
            "--target-periods",
            "6",
            "--histogram",
            "--json-out",
            str(out),
        ],
    )
    assert res.exit_code == 0, res.output
    assert "T-Normal" in res.output
    assert "chance of finishing within 6" in res.output

    payload = json.loads(out.read_text())
    assert payload["project"] == "Apollo"
    assert payload["trial_count"] == 500
    assert "Bootstrap" in payload["distributions"]
    assert {row["distribution"] for row in payload["percentiles"]} == set(payload["distributions"])


def test_trials_option_overrides_the_project_trial_count(tmp_path: Path) -> None:
    project = _project(tmp_path, trial_count=300)
    out = tmp_path / "result.json"
    res = runner.invoke(
        app,
        ["forecast", str(project), "--trials", "50", "--seed", "1", "--no-progress", "--json-out", str(out)],
    )
    assert res.exit_code == 0, res.output
    assert json.loads(out.read_text())["trial_count"] == 50

    plain = runner.invoke(app, ["forecast", str(project), "--seed", "1", "--no-progress", "--json-out", str(out)])
    assert plain.exit_code == 0, plain.output
    assert json.loads(out.read_text())["trial_count"] == 300


def test_forecast_rejects_invalid_project(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"name": "no inputs"}))
    res = runner.invoke(app, ["forecast", str(path), "--no-progress"])
    assert res.exit_code == 2


def test_forecast_reports_domain_errors(tmp_path: Path) -> None:
    project = _project(tmp_path, mode="subjective")
    res = runner.invoke(app, ["forecast", str(project), "--trials", "100", "--no-progress"])
    assert res.exit_code == 1


def test_stats_command(tmp_path: Path) -> None:
    res = runner.invoke(app, ["stats", str(_project(tmp_path))])
    assert res.exit_code == 0, res.output
    assert "Velocity" in res.output
    assert "Scope change" in res.output


def test_init_config_refuses_to_overwrite(tmp_path: Path) -> None:
    target = tmp_path / "forecast_config.toml"
    first = runner.invoke(app, ["init-config", str(target)])
    assert first.exit_code == 0, first.output
    assert target.exists()

    second = runner.invoke(app, ["init-config", str(target)])
    assert second.exit_code != 0
