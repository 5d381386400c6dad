from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from release_forecast.adapters.project_file import ProjectDocument, load_project
from release_forecast.common.logging_config import configure_logging
from release_forecast.common.progress_ui import progress_ui
from release_forecast.config import EXAMPLE_CONFIG, ForecastSettings
from release_forecast.forecasting.domain.errors import ForecastError
from release_forecast.forecasting.domain.models import (
    DistributionForecast,
    PercentileResult,
    SimulationResult,
)
from release_forecast.forecasting.services.forecasting_service import ForecastingService
from release_forecast.forecasting.simulator.percentiles import cumulative_probability, frequency_table

app = typer.Typer(add_completion=False, help="Monte Carlo release forecasting.")


def _load_settings(config: Optional[str]) -> ForecastSettings:
    if config is None:
        return ForecastSettings()
    path = Path(config).expanduser()
    if not path.exists():
        raise typer.BadParameter(f"Config file not found: {path}")
    return ForecastSettings.load(path)


def _load_document(project: str) -> ProjectDocument:
    path = Path(project).expanduser()
    if not path.exists():
        raise typer.BadParameter(f"Project file not found: {path}")
    try:
        return load_project(path)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}") from exc


def _percentile_table(title: str, rows: list[PercentileResult]) -> Table:
    table = Table(title=title)
    table.add_column("Percentile", justify="right")
    table.add_column("Periods", justify="right")
    table.add_column("Finish date")
    for r in rows:
        table.add_row(f"P{r.percentile:g}", str(r.periods_required), r.finish_date.isoformat())
    return table


def _print_distribution(
    console: Console,
    dist: DistributionForecast,
    target_periods: int | None = None,
    histogram: bool = False,
) -> None:
    console.print(_percentile_table(dist.label, [*dist.percentiles, dist.custom]))
    for ms in dist.milestones:
        name = ms.name or f"Milestone {ms.index + 1}"
        console.print(_percentile_table(f"{dist.label}: {name}", [*ms.percentiles, ms.custom]))
    if not dist.converged:
        console.print(
            f"[yellow]{dist.label}: {dist.capped_trials} trial(s) hit the safety cap "
            f"({dist.capped_fraction:.1%})[/yellow]"
        )
    for w in dist.warnings:
        console.print(f"[yellow]{w}[/yellow]")
    if target_periods is not None:
        chance = cumulative_probability(dist.periods_required, target_periods)
        console.print(f"{dist.label}: {chance:.1f}% chance of finishing within {target_periods} period(s)")
    if histogram:
        table = Table(title=f"{dist.label}: periods required")
        for col in ("Periods", "Trials", "%", "Cumulative %"):
            table.add_column(col, justify="right")
        for row in frequency_table(dist.periods_required):
            table.add_row(
                str(row["periods"]),
                str(row["count"]),
                f"{row['percent']:.1f}",
                f"{row['cumulative_percent']:.1f}",
            )
        console.print(table)


def _result_payload(doc: ProjectDocument, result: SimulationResult) -> dict[str, Any]:
    return {
        "project": doc.name,
        "unit": doc.unit,
        "remaining_backlog": result.config.remaining_backlog,
        "trial_count": result.config.trial_count,
        "distributions": {
            label: {
                "kind": dist.kind,
                "capped_trials": dist.capped_trials,
                "warnings": list(dist.warnings),
            }
            for label, dist in result.distributions.items()
        },
        "omitted": dict(result.omitted),
        "percentiles": list(result.percentile_rows()),
        "metadata": dict(result.metadata or {}),
    }


@app.command()
def forecast(
    project: str = typer.Argument(..., help="Project JSON file (periods, adjustments, milestones, inputs)"),
    config: Optional[str] = typer.Option(None, help="Path to forecast_config.toml"),
    trials: Optional[int] = typer.Option(None, min=1, help="Override trials per distribution"),
    seed: Optional[int] = typer.Option(None, help="Override the random seed"),
    workers: Optional[int] = typer.Option(None, min=1, help="Override worker processes"),
    json_out: Optional[str] = typer.Option(None, "--json-out", help="Also write results as JSON"),
    target_periods: Optional[int] = typer.Option(
        None, min=1, help="Also report the chance of finishing within this many periods"
    ),
    histogram: bool = typer.Option(False, help="Print the periods-required frequency table"),
    progress: bool = typer.Option(True, help="Show a progress bar"),
) -> None:
    """Run the Monte Carlo forecast for a project file and print percentile tables."""
    try:
        settings = _load_settings(config)
        log_dir = settings.logging.resolved_log_dir()
        configure_logging(settings.logging.level, str(log_dir) if log_dir else None)

        if trials is not None:
            settings.simulation.trial_count = trials
        if seed is not None:
            settings.simulation.rng_seed = seed
        if workers is not None:
            settings.simulation.n_workers = workers

        doc = _load_document(project)
        service = ForecastingService(settings=settings)
        request = doc.to_request()
        if trials is not None:
            request = replace(request, trial_count=trials)

        if progress:
            with progress_ui() as ui:
                assert service.forecaster is not None
                service.forecaster.progress = ui.on_trials
                result = service.forecast(request)
        else:
            result = service.forecast(request)
    except ValidationError as exc:
        typer.echo(f"Invalid input:\n{exc}", err=True)
        raise typer.Exit(code=2)
    except ForecastError as exc:
        typer.echo(f"Forecast failed: {exc}", err=True)
        raise typer.Exit(code=1)

    console = Console()
    console.print(
        f"[bold]{doc.name or project}[/bold]: {result.config.remaining_backlog:g} {doc.unit} remaining, "
        f"{result.config.trial_count} trials per distribution"
    )
    for dist in result.distributions.values():
        _print_distribution(console, dist, target_periods, histogram)
    for label, reason in result.omitted.items():
        console.print(f"[dim]{label} omitted: {reason}[/dim]")

    if json_out:
        out = Path(json_out).expanduser()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(_result_payload(doc, result), indent=2, default=str), encoding="utf-8")
        typer.echo(f"Wrote {out}")


@app.command()
def stats(
    project: str = typer.Argument(..., help="Project JSON file"),
) -> None:
    """Show velocity, velocity trend and scope-change statistics for a project."""
    try:
        doc = _load_document(project)
    except ValidationError as exc:
        typer.echo(f"Invalid input:\n{exc}", err=True)
        raise typer.Exit(code=2)

    s = ForecastingService().statistics(doc.period_records())
    console = Console()

    table = Table(title="Velocity")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Baseline periods", str(s.velocity.count))
    table.add_row("Mean", f"{s.velocity.mean:.2f}")
    table.add_row("Std dev", f"{s.velocity.std_dev:.2f}")
    table.add_row("Trend", s.trend.direction)
    table.add_row("Slope / period", f"{s.trend.slope:.3f}")
    table.add_row("R squared", f"{s.trend.r_squared:.3f}")
    console.print(table)

    if s.scope is None:
        console.print("[dim]Not enough backlog history for scope-change statistics.[/dim]")
        return

    scope = Table(title="Scope change")
    scope.add_column("Metric")
    scope.add_column("Value", justify="right")
    scope.add_row("Periods with data", str(s.scope.periods_with_data))
    scope.add_row("Average change", f"{s.scope.average_change:.2f}")
    scope.add_row("Average % change", f"{s.scope.average_percent_change:.2f}%")
    scope.add_row("Volatility", f"{s.scope.volatility:.2f}")
    scope.add_row("Total change", f"{s.scope.total_change:.2f}")
    scope.add_row("Latest scope", f"{s.scope.latest_scope:.2f}")
    scope.add_row("Average injection", f"{s.scope.average_scope_injection:.2f}")
    scope.add_row("Trend", s.scope.trend)
    console.print(scope)


@app.command()
def init_config(
    path: str = typer.Argument(
        "forecast_config.toml",
        help="Where to write the forecast configuration TOML",
    ),
) -> None:
    """Write an example forecast_config.toml."""
    out = Path(path).expanduser()
    if out.exists():
        raise typer.BadParameter(f"Refusing to overwrite existing file: {out}")

    out.write_text(EXAMPLE_CONFIG, encoding="utf-8")
    typer.echo(f"Wrote {out} (edit it, then run: release-forecast forecast PROJECT --config {out})")


if __name__ == "__main__":
    app()
