from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Final, Sequence

import numpy as np
import scipy.stats as st

from release_forecast.forecasting.domain.errors import DistributionUnavailableError
from release_forecast.forecasting.domain.models import (
    BootstrapSpec,
    DistributionSpec,
    ForecastMode,
    GammaSpec,
    LognormalSpec,
    TriangularSpec,
    TruncatedNormalSpec,
    UniformSpec,
    DEFAULT_MIN_BOOTSTRAP_SAMPLES,
)

logger = logging.getLogger(__name__)

MAX_REJECTION_ATTEMPTS: Final[int] = 1000
TRUNCATION_FALLBACK_OFFSET: Final[float] = 0.1
# Warn when 1000 straight rejections are more likely than this.
EXHAUSTION_WARN_PROBABILITY: Final[float] = 1e-6


@dataclass(frozen=True)
class VelocitySampler:
    """A ready-to-draw velocity sampler bound to one generator.

    Calling it returns a single non-negative draw. ``warnings`` lists any
    degraded-precision conditions detected while building it.
    """

    label: str
    kind: str
    draw: Callable[[], float]
    warnings: tuple[str, ...] = ()

    def __call__(self) -> float:
        return self.draw()


# --- Parameter conversions ----------------------------------------------------


def lognormal_params(mean: float, std_dev: float) -> tuple[float, float]:
    """Underlying normal (mu_ln, sigma_ln) matching a target mean/stddev."""
    if mean <= 0:
        return math.log(0.1), 0.1
    cv = max(0.0, std_dev) / mean
    sigma_ln_sq = math.log1p(cv * cv)
    return math.log(mean) - sigma_ln_sq / 2.0, math.sqrt(sigma_ln_sq)


def gamma_params(mean: float, std_dev: float) -> tuple[float, float]:
    """(shape, scale) matching a target mean/stddev."""
    if mean <= 0:
        return 1.0, 0.1
    if std_dev <= 0:
        # Near point mass at the mean.
        return 100.0, mean / 100.0
    return (mean / std_dev) ** 2, std_dev**2 / mean


def truncation_exhaustion_probability(mean: float, std_dev: float, lower_bound: float) -> float:
    """Probability that every one of the rejection attempts falls below the bound."""
    if std_dev <= 0:
        return 0.0 if mean >= lower_bound else 1.0
    accept = float(st.norm.sf(lower_bound, loc=mean, scale=std_dev))
    if accept <= 0.0:
        return 1.0
    return float(math.exp(MAX_REJECTION_ATTEMPTS * math.log1p(-accept))) if accept < 1.0 else 0.0


# --- Raw draws ------------------------------------------------------------------


def draw_truncated_normal(rng: np.random.Generator, mean: float, std_dev: float, lower_bound: float = 0.0) -> float:
    for _ in range(MAX_REJECTION_ATTEMPTS):
        x = mean + std_dev * rng.standard_normal()
        if x >= lower_bound:
            return float(x)
    return lower_bound + TRUNCATION_FALLBACK_OFFSET


def draw_gamma(rng: np.random.Generator, shape: float, scale: float) -> float:
    """Marsaglia-Tsang; shapes below 1 are boosted via Gamma(k+1) * U**(1/k)."""
    if shape < 1.0:
        u = rng.random()
        return draw_gamma(rng, shape + 1.0, scale) * u ** (1.0 / shape)

    d = shape - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)
    while True:
        v = 0.0
        x = 0.0
        while v <= 0.0:
            x = rng.standard_normal()
            v = 1.0 + c * x
        v = v * v * v
        u = rng.random()
        x2 = x * x
        if u < 1.0 - 0.0331 * x2 * x2:
            return float(d * v * scale)
        if math.log(u) < 0.5 * x2 + d * (1.0 - v + math.log(v)):
            return float(d * v * scale)


def triangular_inverse_cdf(u: float, low: float, mode: float, high: float) -> float:
    span = high - low
    fc = (mode - low) / span
    if u < fc:
        return low + math.sqrt(u * span * (mode - low))
    return high - math.sqrt((1.0 - u) * span * (high - mode))


# --- Factory ----------------------------------------------------------------------


def make_sampler(spec: DistributionSpec, rng: np.random.Generator) -> VelocitySampler:
    """Bind a distribution spec to a generator.

    Variant dispatch happens here, once; the returned callable does no
    branching on the distribution kind.
    """
    warnings: list[str] = []

    if isinstance(spec, TruncatedNormalSpec):
        mean, sd, lb = float(spec.mean), float(spec.std_dev), float(spec.lower_bound)
        p_exhaust = truncation_exhaustion_probability(mean, sd, lb)
        if p_exhaust > EXHAUSTION_WARN_PROBABILITY:
            warnings.append(
                f"{spec.label}: mean {mean:g} is too close to the lower bound {lb:g} for "
                f"stddev {sd:g}; some draws fall back to {lb + TRUNCATION_FALLBACK_OFFSET:g}"
            )
        if sd <= 0:
            value = mean if mean >= lb else lb + TRUNCATION_FALLBACK_OFFSET

            def draw() -> float:
                return value

        else:

            def draw() -> float:
                return draw_truncated_normal(rng, mean, sd, lb)

    elif isinstance(spec, LognormalSpec):
        if spec.mean <= 0:
            warnings.append(f"{spec.label}: mean must be positive; using fallback parameters")
        mu_ln, sigma_ln = lognormal_params(float(spec.mean), float(spec.std_dev))

        def draw() -> float:
            return float(math.exp(mu_ln + sigma_ln * rng.standard_normal()))

    elif isinstance(spec, GammaSpec):
        if spec.mean <= 0:
            warnings.append(f"{spec.label}: mean must be positive; using fallback parameters")
        shape, scale = gamma_params(float(spec.mean), float(spec.std_dev))

        def draw() -> float:
            return draw_gamma(rng, shape, scale)

    elif isinstance(spec, BootstrapSpec):
        samples = np.asarray(spec.samples, dtype=float)
        n = int(samples.shape[0])
        if n == 0:
            raise DistributionUnavailableError("Bootstrap requires historical samples")

        def draw() -> float:
            return float(samples[int(rng.integers(0, n))])

    elif isinstance(spec, TriangularSpec):
        low = max(0.0, float(spec.low))
        high = float(spec.high)
        # Mode is kept inside [low, high] so the floored support stays valid.
        mode = min(max(float(spec.mode), low), high)
        if high <= low:
            value = max(0.0, float(spec.mode))

            def draw() -> float:
                return value

        else:

            def draw() -> float:
                return triangular_inverse_cdf(float(rng.random()), low, mode, high)

    elif isinstance(spec, UniformSpec):
        low = max(0.0, float(spec.low))
        high = float(spec.high)
        if high <= low:

            def draw() -> float:
                return low

        else:
            width = high - low

            def draw() -> float:
                return low + float(rng.random()) * width

    else:
        raise TypeError(f"Unsupported distribution spec: {type(spec).__name__}")

    return VelocitySampler(label=spec.label, kind=spec.kind, draw=draw, warnings=tuple(warnings))


# --- Spec construction from velocity inputs --------------------------------------


def build_distribution_specs(
    mean: float,
    std_dev: float,
    mode: ForecastMode | str = ForecastMode.HISTORY,
    historical_samples: Sequence[float] | None = None,
    min_bootstrap_samples: int = DEFAULT_MIN_BOOTSTRAP_SAMPLES,
) -> list[DistributionSpec]:
    """Candidate distributions for a velocity estimate.

    Triangular and uniform are centred on the mean with a spread that keeps
    the target variance (half-widths sqrt(6) and sqrt(3) stddevs).
    """
    mode = ForecastMode(mode)
    mean = float(mean)
    sd = max(0.0, float(std_dev))

    tri_half = math.sqrt(6.0) * sd
    specs: list[DistributionSpec] = [
        TruncatedNormalSpec(mean=mean, std_dev=sd),
        LognormalSpec(mean=mean, std_dev=sd),
        GammaSpec(mean=mean, std_dev=sd),
        TriangularSpec(low=mean - tri_half, mode=mean, high=mean + tri_half),
    ]

    if mode is ForecastMode.SUBJECTIVE:
        uni_half = math.sqrt(3.0) * sd
        specs.append(UniformSpec(low=mean - uni_half, high=mean + uni_half))
        return specs

    samples = tuple(historical_samples or ())
    if len(samples) >= min_bootstrap_samples:
        specs.append(BootstrapSpec(samples=samples))
    else:
        logger.info(
            "Bootstrap skipped: %d historical samples (need %d)",
            len(samples),
            min_bootstrap_samples,
        )
    return specs
