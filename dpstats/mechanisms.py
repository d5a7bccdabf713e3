"""Laplace noise and the mechanism that adds it to numerical results."""

from __future__ import annotations

import math
import random
import sys
from dataclasses import dataclass, replace

from dpstats.values import ConfidenceInterval

# A clamping factor of 2^39 adds at most about 0.1% to the privacy budget
# when combined with rounding to a power of two (Mironov 2012).
CLAMP_FACTOR = 2.0**39

# The largest allowed probability that the noise overflows.
MAX_OVERFLOW_PROBABILITY = 2.0**-64

_DOUBLE_MAX = sys.float_info.max
_DOUBLE_LOWEST = -sys.float_info.max


class InvalidArgumentError(ValueError):
    """Raised when an algorithm or mechanism is given invalid parameters."""


def _divide(numerator: float, denominator: float) -> float:
    """Divide following IEEE rules for a zero denominator."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)
    return numerator / denominator


def _next_power_of_two(n: float) -> float:
    if not n > 0:
        return 0.0
    if math.isinf(n):
        return math.inf
    try:
        return math.ldexp(1.0, math.ceil(math.log2(n)))
    except OverflowError:
        return math.inf


def _clamp(lower: float, upper: float, value: float) -> float:
    return max(lower, min(upper, value))


def clamp_double(lower: float, upper: float, value: float) -> float:
    """Clamp value into [lower, upper]; NaN passes through unchanged."""
    if value > upper:
        return upper
    if value < lower:
        return lower
    return value


class LaplaceDistribution:
    """Laplace distribution centred on zero with diversity b."""

    def __init__(self, b: float) -> None:
        self.b = b
        self._rng = random.SystemRandom()

    def uniform(self) -> float:
        """Draw a uniform double from [0, 1)."""
        return self._rng.random()

    def sample(self, scale: float = 1.0) -> float:
        """Draw from the distribution with its diversity multiplied by scale."""
        while True:
            offset = self.uniform() - 0.5
            if abs(offset) < 0.5:
                break
        if offset == 0 or self.b == 0:
            return 0.0
        magnitude = -self.b * scale * math.log(1.0 - 2.0 * abs(offset))
        return math.copysign(magnitude, offset)

    @staticmethod
    def cdf(b: float, x: float) -> float:
        """Cumulative probability of x under a Laplace distribution of diversity b."""
        ratio = _divide(x, b)
        if math.isnan(ratio):
            return 0.5
        if x > 0:
            return 1.0 - 0.5 * math.exp(-ratio)
        return 0.5 * math.exp(ratio)


class LaplaceMechanism:
    """Adds Laplace noise, with snapping, to numerical results."""

    def __init__(
        self,
        epsilon: float,
        sensitivity: float = 1.0,
        distribution: LaplaceDistribution | None = None,
    ) -> None:
        self.epsilon = epsilon
        self.sensitivity = sensitivity
        self.diversity = _divide(sensitivity, epsilon)
        self._distribution = (
            distribution if distribution is not None else LaplaceDistribution(self.diversity)
        )

    def add_noise(self, result: float, privacy_budget: float = 1.0) -> float:
        """Return result plus noise scaled for the given share of epsilon."""
        if not privacy_budget > 0:
            raise ValueError("privacy budget must be greater than zero")
        noise = self._distribution.sample(1.0 / privacy_budget)
        noised = _clamp(-CLAMP_FACTOR, CLAMP_FACTOR, result) + noise
        nearest_power = _next_power_of_two(self.diversity / privacy_budget)
        remainder = 0.0 if nearest_power == 0.0 else math.fmod(noised, nearest_power)
        return clamp_double(-CLAMP_FACTOR, CLAMP_FACTOR, noised - remainder)

    def noise_confidence_interval(
        self, confidence_level: float, privacy_budget: float = 1.0
    ) -> ConfidenceInterval:
        """Interval that holds the added noise with the given confidence."""
        if not self.epsilon > 0:
            raise ValueError("epsilon must be greater than zero")
        if not privacy_budget > 0:
            raise ValueError("privacy budget must be greater than zero")
        bound = self.diversity * math.log(1 - confidence_level) / privacy_budget
        return ConfidenceInterval(
            lower_bound=bound, upper_bound=-bound, confidence_level=confidence_level
        )

    def memory_used(self) -> int:
        """Approximate number of bytes held by the mechanism."""
        memory = sys.getsizeof(self)
        if self._distribution is not None:
            memory += sys.getsizeof(self._distribution)
        return memory


@dataclass
class LaplaceMechanismBuilder:
    """Collects epsilon and sensitivity and builds a LaplaceMechanism."""

    epsilon: float = 0.0
    sensitivity: float = 1.0

    def build(self) -> LaplaceMechanism:
        """Build the mechanism, refusing one whose noise is likely to overflow."""
        diversity = _divide(self.sensitivity, self.epsilon)
        overflow_probability = (
            1 - LaplaceDistribution.cdf(diversity, _DOUBLE_MAX)
        ) + LaplaceDistribution.cdf(diversity, _DOUBLE_LOWEST)
        if not overflow_probability < MAX_OVERFLOW_PROBABILITY:
            raise InvalidArgumentError("Sensitivity is too high.")
        return LaplaceMechanism(self.epsilon, self.sensitivity)

    def clone(self) -> LaplaceMechanismBuilder:
        """Return an independent copy of this builder."""
        return replace(self)