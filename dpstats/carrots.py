"""Private statistics about the carrots eaten by a zoo's animals."""

from __future__ import annotations

import os
from pathlib import Path

from dpstats.bounded_sum import BoundedSumBuilder
from dpstats.count import CountBuilder
from dpstats.mechanisms import InvalidArgumentError, LaplaceMechanismBuilder
from dpstats.values import Output

_SUM_LOWER = 0
_SUM_UPPER = 150


class CarrotReporter:
    """Reports true and differentially private statistics on carrot consumption.

    The data file holds one ``animal,count`` pair per line. Epsilon is shared
    by every private query; the fraction of it still unspent is tracked in
    ``privacy_budget``, which starts at 1.
    """

    def __init__(
        self,
        data_filename: str | os.PathLike[str],
        epsilon: float,
        laplace_mechanism: LaplaceMechanismBuilder | None = None,
    ) -> None:
        self.epsilon = epsilon
        self.privacy_budget = 1.0
        self._laplace_mechanism = (
            laplace_mechanism if laplace_mechanism is not None else LaplaceMechanismBuilder()
        )
        self._carrots_per_animal: dict[str, int] = {}
        with Path(data_filename).open(encoding="utf-8") as data:
            for line_number, line in enumerate(data, start=1):
                fields = line.rstrip("\r\n").split(",")
                if len(fields) != 2:
                    raise ValueError(
                        f"line {line_number}: expected 'animal,count', got {line!r}"
                    )
                animal, count = fields
                try:
                    self._carrots_per_animal[animal] = int(count)
                except ValueError as error:
                    raise ValueError(
                        f"line {line_number}: carrot count {count!r} is not an integer"
                    ) from error
        self._carrots_per_animal = dict(sorted(self._carrots_per_animal.items()))

    def sum(self) -> int:
        """True total of carrots eaten."""
        return sum(self._carrots_per_animal.values())

    def mean(self) -> float:
        """True mean of carrots eaten per animal."""
        return self.sum() / len(self._carrots_per_animal)

    def count_above(self, limit: int) -> int:
        """True number of animals that ate more than limit carrots."""
        return sum(1 for count in self._carrots_per_animal.values() if count > limit)

    def max(self) -> int:
        """True largest number of carrots eaten by one animal."""
        return max(self._carrots_per_animal.values(), default=0)

    def _spend(self, privacy_budget: float) -> None:
        if self.privacy_budget < privacy_budget:
            raise InvalidArgumentError("Not enough privacy budget.")
        self.privacy_budget -= privacy_budget

    def private_sum(self, privacy_budget: float) -> Output:
        """Differentially private total of carrots eaten."""
        self._spend(privacy_budget)
        algorithm = BoundedSumBuilder(
            epsilon=self.epsilon,
            lower=_SUM_LOWER,
            upper=_SUM_UPPER,
            laplace_mechanism=self._laplace_mechanism.clone(),
            integral=True,
        ).build()
        algorithm.add_entries(self._carrots_per_animal.values())
        return algorithm.partial_result(privacy_budget)

    def private_count_above(self, privacy_budget: float, limit: int) -> Output:
        """Differentially private number of animals that ate more than limit carrots."""
        self._spend(privacy_budget)
        algorithm = CountBuilder(
            epsilon=self.epsilon, laplace_mechanism=self._laplace_mechanism.clone()
        ).build()
        algorithm.add_entries(
            animal for animal, count in self._carrots_per_animal.items() if count > limit
        )
        return algorithm.partial_result(privacy_budget)