import math
import sys

import pytest

from dpstats.mechanisms import (
    InvalidArgumentError,
    LaplaceDistribution,
    LaplaceMechanism,
    LaplaceMechanismBuilder,
    clamp_double,
)


class FixedDistribution(LaplaceDistribution):
    def __init__(self, *values):
        super().__init__(1.0)
        self._values = list(values)
        self.scales = []

    def sample(self, scale=1.0):
        self.scales.append(scale)
        if len(self._values) > 1:
            return self._values.pop(0)
        return self._values[0]


def test_laplace_builder():
    mechanism = LaplaceMechanismBuilder(epsilon=1, sensitivity=3).build()
    assert mechanism.epsilon == pytest.approx(1)
    assert mechanism.sensitivity == pytest.approx(3)


def test_laplace_builder_sensitivity_too_high():
    builder = LaplaceMechanismBuilder(epsilon=1, sensitivity=sys.float_info.max)
    with pytest.raises(InvalidArgumentError, match="Sensitivity is too high."):
        builder.build()


def test_laplace_builder_zero_epsilon_rejected():
    with pytest.raises(InvalidArgumentError):
        LaplaceMechanismBuilder().build()


def test_laplace_adds_noise():
    mechanism = LaplaceMechanism(1.0, 1.0, FixedDistribution(10.0))
    assert mechanism.add_noise(0.0) == pytest.approx(10.0, abs=5.0)


def test_laplace_adds_no_noise_when_sensitivity_is_zero():
    mechanism = LaplaceMechanism(1.0, 0.0)
    assert mechanism.add_noise(12.3) == pytest.approx(12.3)


def test_laplace_diversity_correct():
    assert LaplaceMechanism(1.0, 1.0).diversity == 1.0
    assert LaplaceMechanism(2.0, 1.0).diversity == 0.5
    assert LaplaceMechanism(2.0, 3.0).diversity == 1.5


def test_laplace_budget_correct():
    distribution = FixedDistribution(0.0)
    mechanism = LaplaceMechanism(1.0, 1.0, distribution)
    mechanism.add_noise(0.0, 1.0)
    mechanism.add_noise(0.0, 0.5)
    mechanism.add_noise(0.0, 0.25)
    assert distribution.scales == [1.0, 2.0, 4.0]


def test_laplace_snaps():
    mechanism = LaplaceMechanism(1.0, 1.0, FixedDistribution(10.0, 10.001))
    first = mechanism.add_noise(0.0)
    second = mechanism.add_noise(0.0)
    assert first == pytest.approx(second, abs=0.0001)


def test_laplace_works_for_integers():
    mechanism = LaplaceMechanism(1.0, 1.0, FixedDistribution(10.0))
    assert int(mechanism.add_noise(0)) == 10


def test_laplace_confidence_interval():
    epsilon, level, budget = 0.5, 0.95, 0.5
    mechanism = LaplaceMechanism(epsilon, 1.0)
    interval = mechanism.noise_confidence_interval(level, budget)
    assert interval.lower_bound == math.log(1 - level) / epsilon / budget
    assert interval.upper_bound == -math.log(1 - level) / epsilon / budget
    assert interval.confidence_level == level


def test_laplace_builder_clone():
    builder = LaplaceMechanismBuilder(epsilon=1, sensitivity=3)
    clone = builder.clone()
    builder.sensitivity = 7
    mechanism = clone.build()
    assert mechanism.epsilon == pytest.approx(1)
    assert mechanism.sensitivity == pytest.approx(3)


def test_add_noise_rejects_nonpositive_budget():
    mechanism = LaplaceMechanism(1.0, 1.0)
    with pytest.raises(ValueError):
        mechanism.add_noise(1.0, 0.0)


def test_output_is_clamped():
    mechanism = LaplaceMechanism(1.0, 0.0)
    assert mechanism.add_noise(1e300) == 2.0**39
    assert mechanism.add_noise(-1e300) == -(2.0**39)


def test_clamp_double():
    assert clamp_double(0.0, 5.0, 7.0) == 5.0
    assert clamp_double(0.0, 5.0, -1.0) == 0.0
    assert clamp_double(0.0, 5.0, 2.5) == 2.5


def test_cdf_values():
    assert LaplaceDistribution.cdf(1.0, 0.0) == 0.5
    assert LaplaceDistribution.cdf(1.0, sys.float_info.max) == 1.0
    assert LaplaceDistribution.cdf(1.0, -sys.float_info.max) == 0.0


def test_memory_used_positive():
    assert LaplaceMechanism(1.0, 1.0).memory_used() > 0