"""Differentially private count of the entries added to it."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from typing import Any, Iterable

from dpstats.mechanisms import (
    InvalidArgumentError,
    LaplaceMechanism,
    LaplaceMechanismBuilder,
)
from dpstats.values import ConfidenceInterval, Output, Summary, add_to_output

DEFAULT_EPSILON = math.log(3)
DEFAULT_CONFIDENCE_LEVEL = 0.95


def _round_half_away(value: float) -> int:
    if value >= 0:
        return math.floor(value + 0.5)
    return -math.floor(-value + 0.5)


@dataclass
class CountSummary:
    """Serialized state of a Count."""

    count: int = 0


class Count:
    """Counts entries and reports the count with Laplace noise added."""

    def __init__(self, epsilon: float, mechanism: LaplaceMechanism) -> None:
        self.epsilon = epsilon
        self.count = 0
        self._mechanism = mechanism
        self._privacy_budget = 1.0

    def add_entry(self, value: Any) -> None:
        """Count one entry; its value is ignored."""
        self.count += 1

    def add_entries(self, values: Iterable[Any]) -> None:
        """Count every entry of an iterable."""
        for value in values:
            self.add_entry(value)

    def partial_result(self, privacy_budget: float = 1.0) -> Output:
        """Return the noisy count, spending part of the remaining privacy budget."""
        if not privacy_budget > 0:
            raise InvalidArgumentError("Privacy budget must be greater than zero.")
        if privacy_budget > self._privacy_budget:
            raise InvalidArgumentError(
                "Requested privacy budget exceeds the remaining budget."
            )
        self._privacy_budget -= privacy_budget
        return self._generate_result(privacy_budget)

    def result(self, values: Iterable[Any]) -> Output:
        """Reset, count the given values and return the result with the full budget."""
        self.reset()
        self.add_entries(values)
        return self.partial_result()

    def reset(self) -> None:
        """Forget all entries and restore the full privacy budget."""
        self._privacy_budget = 1.0
        self.count = 0

    def noise_confidence_interval(
        self, confidence_level: float, privacy_budget: float = 1.0
    ) -> ConfidenceInterval:
        """Interval holding the added noise with the given confidence."""
        return self._mechanism.noise_confidence_interval(confidence_level, privacy_budget)

    def serialize(self) -> Summary:
        """Return a summary holding the current count."""
        return Summary(data=CountSummary(count=self.count))

    def merge(self, summary: Summary) -> None:
        """Add the count held by a summary to this one."""
        if summary.data is None:
            raise InvalidArgumentError("Cannot merge summary with no count data.")
        if not isinstance(summary.data, CountSummary):
            raise InvalidArgumentError("Count summary unable to be unpacked.")
        self.count += summary.data.count

    def memory_used(self) -> int:
        """Approximate number of bytes held by the algorithm."""
        memory = sys.getsizeof(self)
        if self._mechanism is not None:
            memory += self._mechanism.memory_used()
        return memory

    def _generate_result(self, privacy_budget: float) -> Output:
        output = Output()
        noisy = self._mechanism.add_noise(self.count, privacy_budget)
        add_to_output(output, max(_round_half_away(noisy), 0))
        output.error_report.noise_confidence_interval = self.noise_confidence_interval(
            DEFAULT_CONFIDENCE_LEVEL, privacy_budget
        )
        return output


@dataclass
class CountBuilder:
    """Collects the parameters of a Count and builds it."""

    epsilon: float = DEFAULT_EPSILON
    laplace_mechanism: LaplaceMechanismBuilder = field(
        default_factory=LaplaceMechanismBuilder
    )

    def build(self) -> Count:
        """Build the count; raises InvalidArgumentError for bad parameters."""
        if not (self.epsilon > 0 and math.isfinite(self.epsilon)):
            raise InvalidArgumentError("Epsilon must be finite and positive.")
        mechanism_builder = self.laplace_mechanism.clone()
        mechanism_builder.epsilon = self.epsilon
        mechanism_builder.sensitivity = 1
        return Count(self.epsilon, mechanism_builder.build())