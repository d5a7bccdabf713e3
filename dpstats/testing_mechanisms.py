"""Deterministic mechanisms for tests. They are not differentially private."""

from __future__ import annotations

import random
import sys
from dataclasses import dataclass

from dpstats.mechanisms import (
    LaplaceDistribution,
    LaplaceMechanism,
    LaplaceMechanismBuilder,
    _divide,
)
from dpstats.values import ConfidenceInterval

_DEFAULT_SEED = 123


class ZeroNoiseMechanism(LaplaceMechanism):
    """Returns its input unchanged: no noise and no snapping."""

    def add_noise(self, result: float, privacy_budget: float = 1.0) -> float:
        return result

    def noise_confidence_interval(
        self, confidence_level: float, privacy_budget: float = 1.0
    ) -> ConfidenceInterval:
        return ConfidenceInterval(
            lower_bound=0.0, upper_bound=0.0, confidence_level=confidence_level
        )

    def memory_used(self) -> int:
        return sys.getsizeof(self)


@dataclass
class ZeroNoiseMechanismBuilder(LaplaceMechanismBuilder):
    """Builds ZeroNoiseMechanism instances."""

    def build(self) -> ZeroNoiseMechanism:
        return ZeroNoiseMechanism(self.epsilon, self.sensitivity)

    def clone(self) -> ZeroNoiseMechanismBuilder:
        return ZeroNoiseMechanismBuilder(epsilon=self.epsilon, sensitivity=self.sensitivity)


class SeededLaplaceDistribution(LaplaceDistribution):
    """Laplace distribution drawing from a seeded generator."""

    def __init__(self, b: float, rng: random.Random | None = None) -> None:
        super().__init__(b)
        self._seeded_rng = rng if rng is not None else random.Random(_DEFAULT_SEED)

    def uniform(self) -> float:
        return self._seeded_rng.random()


class SeededLaplaceMechanism(LaplaceMechanism):
    """Laplace mechanism with reproducible noise."""

    def __init__(
        self,
        epsilon: float,
        sensitivity: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(
            epsilon,
            sensitivity,
            SeededLaplaceDistribution(_divide(sensitivity, epsilon), rng),
        )


@dataclass
class SeededLaplaceMechanismBuilder(LaplaceMechanismBuilder):
    """Builds SeededLaplaceMechanism instances sharing an optional generator."""

    rng: random.Random | None = None

    def build(self) -> SeededLaplaceMechanism:
        return SeededLaplaceMechanism(self.epsilon, self.sensitivity, self.rng)

    def clone(self) -> SeededLaplaceMechanismBuilder:
        return SeededLaplaceMechanismBuilder(
            epsilon=self.epsilon, sensitivity=self.sensitivity, rng=self.rng
        )