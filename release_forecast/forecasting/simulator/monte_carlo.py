from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

import numpy as np

from release_forecast.common.seeding import keyed_seed, make_rng
from release_forecast.forecasting.adjustments.productivity import (
    has_active_adjustments,
    precompute_period_factors,
)
from release_forecast.forecasting.domain.errors import (
    DistributionUnavailableError,
    InvalidConfigurationError,
)
from release_forecast.forecasting.domain.models import (
    DEFAULT_MIN_BOOTSTRAP_SAMPLES,
    BootstrapSpec,
    DistributionForecast,
    DistributionSpec,
    MilestoneForecast,
    SimulationConfig,
    SimulationResult,
)
from release_forecast.forecasting.samplers.distributions import make_sampler
from release_forecast.forecasting.simulator.percentiles import summarize
from release_forecast.forecasting.simulator.trial import run_trial


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

DEFAULT_CHUNK_SIZE = 5000


def _simulate_chunk(
    spec: DistributionSpec,
    seed: np.random.SeedSequence,
    n_trials: int,
    starting_backlog: float,
    period_factors: tuple[float, ...],
    scope_growth_per_period: float | None,
    milestone_thresholds: tuple[float, ...] | None,
    safety_cap_periods: int,
) -> tuple[np.ndarray, np.ndarray | None, int]:
    """Run ``n_trials`` trials with a fresh sampler; module-level so it pickles."""
    sampler = make_sampler(spec, make_rng(seed))

    periods = np.empty(n_trials, dtype=np.int64)
    milestones: np.ndarray | None = None
    if milestone_thresholds:
        milestones = np.empty((n_trials, len(milestone_thresholds)), dtype=np.int64)
    capped = 0

    for i in range(n_trials):
        outcome = run_trial(
            sampler,
            starting_backlog,
            period_factors=period_factors,
            scope_growth_per_period=scope_growth_per_period,
            milestone_thresholds=milestone_thresholds,
            safety_cap_periods=safety_cap_periods,
        )
        periods[i] = outcome.periods_required
        if milestones is not None:
            milestones[i] = outcome.milestone_periods
        if outcome.capped:
            capped += 1

    return periods, milestones, capped


def _chunk_sizes(total: int, chunk_size: int) -> list[int]:
    full, rest = divmod(total, chunk_size)
    sizes = [chunk_size] * full
    if rest:
        sizes.append(rest)
    return sizes


@dataclass
class MonteCarloReleaseForecaster:
    """Runs every candidate distribution through the trial engine.

    Trials are split into fixed-size chunks, each seeded from the
    distribution's own child seed, so a seeded run gives the same numbers
    whether chunks run in-process (``n_workers=1``) or in a process pool.
    """

    n_workers: int = 1
    min_bootstrap_samples: int = DEFAULT_MIN_BOOTSTRAP_SAMPLES
    chunk_size: int = DEFAULT_CHUNK_SIZE
    progress: ProgressCallback | None = None

    def run_simulation(
        self,
        config: SimulationConfig,
        specs: Sequence[DistributionSpec],
        rng_seed: int | None = None,
        milestone_names: Sequence[str] | None = None,
    ) -> SimulationResult:
        config.validate()
        labels = [s.label for s in specs]
        dupes = sorted({label for label in labels if labels.count(label) > 1})
        if dupes:
            raise InvalidConfigurationError([f"duplicate distribution label: {d!r}" for d in dupes])
        if self.chunk_size <= 0:
            raise InvalidConfigurationError(["chunk_size must be > 0"])

        factors = tuple(
            precompute_period_factors(
                config.period_start_date,
                config.period_cadence_days,
                config.productivity_adjustments,
                max_periods=config.safety_cap_periods,
            )
        )
        if has_active_adjustments(factors):
            logger.info("Productivity adjustments affect %d period(s)", sum(1 for f in factors if f != 1.0))

        root = np.random.SeedSequence(rng_seed)
        distributions: dict[str, DistributionForecast] = {}
        omitted: dict[str, str] = {}

        started = time.perf_counter()
        pool: Executor | None = ProcessPoolExecutor(max_workers=self.n_workers) if self.n_workers > 1 else None
        try:
            for spec in specs:
                reason = self._unavailable_reason(spec)
                if reason is not None:
                    logger.warning("Omitting %s: %s", spec.label, reason)
                    omitted[spec.label] = reason
                    continue

                t0 = time.perf_counter()
                distributions[spec.label] = self._run_distribution(
                    spec, config, factors, keyed_seed(root, spec.label), pool, milestone_names
                )
                logger.debug("%s: %d trials in %.2fs", spec.label, config.trial_count, time.perf_counter() - t0)
        finally:
            if pool is not None:
                pool.shutdown()

        elapsed = time.perf_counter() - started
        logger.info(
            "Simulated %d distribution(s) x %d trials in %.2fs (%d omitted)",
            len(distributions),
            config.trial_count,
            elapsed,
            len(omitted),
        )
        return SimulationResult(
            config=config,
            distributions=distributions,
            omitted=omitted,
            metadata={
                "rng_seed": rng_seed,
                "entropy": root.entropy,
                "trial_count": config.trial_count,
                "n_workers": self.n_workers,
                "chunk_size": self.chunk_size,
                "productivity_periods": len(factors),
                "elapsed_seconds": elapsed,
            },
        )

    def _unavailable_reason(self, spec: DistributionSpec) -> str | None:
        if isinstance(spec, BootstrapSpec) and len(spec.samples) < self.min_bootstrap_samples:
            return (
                f"needs at least {self.min_bootstrap_samples} historical samples, "
                f"got {len(spec.samples)}"
            )
        try:
            # Construction only; no draws are taken from this generator.
            make_sampler(spec, make_rng(0))
        except DistributionUnavailableError as exc:
            return str(exc)
        return None

    def _run_distribution(
        self,
        spec: DistributionSpec,
        config: SimulationConfig,
        factors: tuple[float, ...],
        seed: np.random.SeedSequence,
        pool: Executor | None,
        milestone_names: Sequence[str] | None,
    ) -> DistributionForecast:
        warnings = make_sampler(spec, make_rng(0)).warnings
        for w in warnings:
            logger.warning("Degraded precision: %s", w)

        sizes = _chunk_sizes(config.trial_count, self.chunk_size)
        seeds = seed.spawn(len(sizes))
        args = [
            (
                spec,
                s,
                n,
                float(config.remaining_backlog),
                factors,
                config.scope_growth_per_period,
                config.milestone_thresholds,
                config.safety_cap_periods,
            )
            for s, n in zip(seeds, sizes)
        ]

        if pool is None:
            results: Iterator[tuple[np.ndarray, np.ndarray | None, int]] = (
                _simulate_chunk(*a) for a in args
            )
        else:
            futures = [pool.submit(_simulate_chunk, *a) for a in args]
            results = (f.result() for f in futures)

        chunks = []
        done = 0
        for a, chunk in zip(args, results):
            chunks.append(chunk)
            done += a[2]
            self._report(spec.label, done, config.trial_count)

        periods = np.sort(np.concatenate([c[0] for c in chunks]))
        capped = sum(c[2] for c in chunks)
        if capped:
            logger.warning(
                "%s did not converge: %d of %d trials hit the %d-period safety cap",
                spec.label,
                capped,
                config.trial_count,
                config.safety_cap_periods,
            )

        fixed, custom = summarize(
            periods,
            config.custom_percentile,
            config.period_start_date,
            config.period_cadence_days,
        )

        milestones: list[MilestoneForecast] = []
        if config.milestone_thresholds:
            matrix = np.concatenate([c[1] for c in chunks], axis=0)
            for idx, threshold in enumerate(config.milestone_thresholds):
                column = np.sort(matrix[:, idx])
                ms_fixed, ms_custom = summarize(
                    column,
                    config.custom_percentile,
                    config.period_start_date,
                    config.period_cadence_days,
                )
                name = None
                if milestone_names is not None and idx < len(milestone_names):
                    name = milestone_names[idx]
                milestones.append(
                    MilestoneForecast(
                        index=idx,
                        threshold=threshold,
                        periods_required=column,
                        percentiles=ms_fixed,
                        custom=ms_custom,
                        name=name,
                    )
                )

        return DistributionForecast(
            label=spec.label,
            kind=spec.kind,
            periods_required=periods,
            percentiles=fixed,
            custom=custom,
            milestones=tuple(milestones),
            capped_trials=int(capped),
            warnings=tuple(warnings),
        )

    def _report(self, label: str, completed: int, total: int) -> None:
        if self.progress is not None:
            self.progress(label, completed, total)


def run_simulation(
    config: SimulationConfig,
    specs: Sequence[DistributionSpec],
    rng_seed: int | None = None,
    milestone_names: Sequence[str] | None = None,
    n_workers: int = 1,
) -> SimulationResult:
    """Convenience wrapper around a default-configured forecaster."""
    return MonteCarloReleaseForecaster(n_workers=n_workers).run_simulation(
        config, specs, rng_seed=rng_seed, milestone_names=milestone_names
    )
