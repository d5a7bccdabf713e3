"""Differentially private sum of values clamped to bounds."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol

from dpstats.count import DEFAULT_CONFIDENCE_LEVEL, DEFAULT_EPSILON
from dpstats.mechanisms import (
    InvalidArgumentError,
    LaplaceMechanism,
    LaplaceMechanismBuilder,
)
from dpstats.values import (
    BoundingReport,
    ConfidenceInterval,
    Output,
    Summary,
    add_to_output,
    get_value,
)

_INT64_MAX = 2**63 - 1
_DOUBLE_MAX = sys.float_info.max


class _ApproxBounds(Protocol):
    """What a bounded sum needs from an algorithm that finds bounds privately."""

    def num_positive_bins(self) -> int: ...

    def add_entry(self, value: float) -> None: ...

    def add_to_partial_sums(self, partials: list, value: float) -> None: ...

    def generate_result(self, privacy_budget: float) -> Output: ...

    def compute_from_partials(
        self,
        pos_sum: list,
        neg_sum: list,
        transform: Callable[[float], float],
        lower: float,
        upper: float,
        count: int,
    ) -> float: ...

    def bounding_report(self, lower: float, upper: float) -> BoundingReport: ...

    def reset(self) -> None: ...

    def serialize(self) -> Summary: ...

    def merge(self, summary: Summary) -> None: ...

    def memory_used(self) -> int: ...


def _round_half_away(value: float) -> int:
    if value >= 0:
        return math.floor(value + 0.5)
    return -math.floor(-value + 0.5)


def check_lower_bound(lower: float, integral: bool = False) -> None:
    """Raise if the magnitude of lower exceeds the largest value of its type."""
    limit = _INT64_MAX if integral else _DOUBLE_MAX
    if lower < -limit:
        raise InvalidArgumentError(
            "Lower bound cannot be higher in magnitude than the max numeric limit. "
            "If manually bounding, please increase it by at least 1."
        )


@dataclass
class BoundedSumSummary:
    """Serialized partial sums of a BoundedSum."""

    pos_sum: list = field(default_factory=list)
    neg_sum: list = field(default_factory=list)
    bounds_summary: Any = None


class BoundedSum:
    """Sum of entries clamped to [lower, upper], reported with Laplace noise.

    The bounds are either given, or found when the result is generated by an
    approximate bounds algorithm, in which case partial sums are kept per bin.
    """

    def __init__(
        self,
        epsilon: float,
        lower: float,
        upper: float,
        mechanism_builder: LaplaceMechanismBuilder,
        mechanism: LaplaceMechanism | None = None,
        approx_bounds: _ApproxBounds | None = None,
        integral: bool = False,
    ) -> None:
        self.epsilon = epsilon
        self.integral = integral
        self._lower = lower
        self._upper = upper
        self._mechanism_builder = mechanism_builder
        self._mechanism = mechanism
        self._approx_bounds = approx_bounds
        self._privacy_budget = 1.0
        if approx_bounds is not None:
            bins = approx_bounds.num_positive_bins()
            self._pos_sum = [self._zero] * bins
            self._neg_sum = [self._zero] * bins
        else:
            self._pos_sum = [self._zero]
            self._neg_sum = []

    @property
    def lower(self) -> float:
        return self._lower

    @property
    def upper(self) -> float:
        return self._upper

    @property
    def _zero(self) -> float:
        return 0 if self.integral else 0.0

    def _convert(self, value: float) -> float:
        return int(value) if self.integral else float(value)

    def add_entry(self, value: float) -> None:
        """Add one value; NaN is dropped."""
        if math.isnan(value):
            return
        if self._approx_bounds is None:
            clamped = max(self._lower, min(self._upper, value))
            self._pos_sum[0] += self._convert(clamped)
            return
        self._approx_bounds.add_entry(value)
        partials = self._pos_sum if value >= 0 else self._neg_sum
        self._approx_bounds.add_to_partial_sums(partials, value)

    def add_entries(self, values: Iterable[float]) -> None:
        """Add every value of an iterable."""
        for value in values:
            self.add_entry(value)

    def partial_result(self, privacy_budget: float = 1.0) -> Output:
        """Return the noisy sum, spending part of the remaining privacy budget."""
        if not privacy_budget > 0:
            raise InvalidArgumentError("Privacy budget must be greater than zero.")
        if privacy_budget > self._privacy_budget:
            raise InvalidArgumentError(
                "Requested privacy budget exceeds the remaining budget."
            )
        self._privacy_budget -= privacy_budget
        return self._generate_result(privacy_budget)

    def result(self, values: Iterable[float]) -> Output:
        """Reset, add the given values and return the result with the full budget."""
        self.reset()
        self.add_entries(values)
        return self.partial_result()

    def reset(self) -> None:
        """Forget all entries and restore the full privacy budget."""
        self._privacy_budget = 1.0
        self._pos_sum = [self._zero] * len(self._pos_sum)
        self._neg_sum = [self._zero] * len(self._neg_sum)
        if self._approx_bounds is not None:
            self._approx_bounds.reset()
            self._mechanism = None

    def noise_confidence_interval(
        self, confidence_level: float, privacy_budget: float = 1.0
    ) -> ConfidenceInterval:
        """Noise interval; only available when the bounds were set manually."""
        if self._approx_bounds is not None:
            raise InvalidArgumentError(
                "NoiseConfidenceInterval changes per result generation for "
                "automatically-determined sensitivity."
            )
        return self._noise_confidence_interval(confidence_level, privacy_budget)

    def serialize(self) -> Summary:
        """Return a summary of the partial sums and of the bounds algorithm."""
        bounds_summary = None
        if self._approx_bounds is not None:
            bounds_summary = self._approx_bounds.serialize().data
        return Summary(
            data=BoundedSumSummary(
                pos_sum=list(self._pos_sum),
                neg_sum=list(self._neg_sum),
                bounds_summary=bounds_summary,
            )
        )

    def merge(self, summary: Summary) -> None:
        """Add the partial sums held by a summary to this one."""
        if summary.data is None:
            raise InvalidArgumentError("Cannot merge summary with no bounded sum data.")
        data = summary.data
        if not isinstance(data, BoundedSumSummary):
            raise InvalidArgumentError("Bounded sum summary unable to be unpacked.")
        if len(self._pos_sum) != len(data.pos_sum) or len(self._neg_sum) != len(
            data.neg_sum
        ):
            raise InvalidArgumentError(
                "Merged BoundedSum must have the same amount of partial sum "
                "values as this BoundedSum."
            )
        self._pos_sum = [a + self._convert(b) for a, b in zip(self._pos_sum, data.pos_sum)]
        self._neg_sum = [a + self._convert(b) for a, b in zip(self._neg_sum, data.neg_sum)]
        if self._approx_bounds is not None:
            self._approx_bounds.merge(Summary(data=data.bounds_summary))

    def memory_used(self) -> int:
        """Approximate number of bytes held by the algorithm."""
        memory = sys.getsizeof(self) + 8 * (len(self._pos_sum) + len(self._neg_sum))
        if self._approx_bounds is not None:
            memory += self._approx_bounds.memory_used()
        if self._mechanism is not None:
            memory += self._mechanism.memory_used()
        if self._mechanism_builder is not None:
            memory += sys.getsizeof(self._mechanism_builder)
        return memory

    def _generate_result(self, privacy_budget: float) -> Output:
        output = Output()
        remaining_budget = privacy_budget
        if self._approx_bounds is not None:
            bounds_budget = privacy_budget / 2
            remaining_budget -= bounds_budget
            bounds = self._approx_bounds.generate_result(bounds_budget)
            lower = get_value(bounds.elements[0].value)
            upper = get_value(bounds.elements[1].value)
            check_lower_bound(lower, self.integral)
            # Sensitivity depends only on the larger magnitude, so widen the
            # smaller one to its negative to clamp as little as possible.
            self._lower = min(lower, -upper)
            self._upper = max(upper, -lower)
            total = self._approx_bounds.compute_from_partials(
                self._pos_sum, self._neg_sum, lambda x: x, self._lower, self._upper, 0
            )
            output.error_report.bounding_report = self._approx_bounds.bounding_report(
                self._lower, self._upper
            )
            self._mechanism = None
        else:
            total = self._pos_sum[0]

        self._build_mechanism()
        output.error_report.noise_confidence_interval = self._noise_confidence_interval(
            DEFAULT_CONFIDENCE_LEVEL, remaining_budget
        )
        noisy = self._mechanism.add_noise(total, remaining_budget)
        add_to_output(output, _round_half_away(noisy) if self.integral else float(noisy))
        return output

    def _build_mechanism(self) -> None:
        if self._mechanism is None:
            builder = self._mechanism_builder.clone()
            builder.epsilon = self.epsilon
            builder.sensitivity = max(abs(self._lower), abs(self._upper))
            self._mechanism = builder.build()

    def _noise_confidence_interval(
        self, confidence_level: float, privacy_budget: float
    ) -> ConfidenceInterval:
        if self._mechanism is None:
            raise InvalidArgumentError(
                "Mechanism not yet constructed. Try getting noise confidence "
                "interval after generating result."
            )
        return self._mechanism.noise_confidence_interval(confidence_level, privacy_budget)


@dataclass
class BoundedSumBuilder:
    """Collects the parameters of a BoundedSum and builds it.

    Either both bounds are set, or an approximate bounds algorithm is given;
    that algorithm is handed over to the built sum and cleared from the builder.
    """

    epsilon: float = DEFAULT_EPSILON
    lower: float | None = None
    upper: float | None = None
    laplace_mechanism: LaplaceMechanismBuilder = field(
        default_factory=LaplaceMechanismBuilder
    )
    approx_bounds: _ApproxBounds | None = None
    integral: bool = False

    def build(self) -> BoundedSum:
        """Build the sum; raises InvalidArgumentError for bad parameters."""
        if not (self.epsilon > 0 and math.isfinite(self.epsilon)):
            raise InvalidArgumentError("Epsilon must be finite and positive.")
        convert = int if self.integral else float
        mechanism = None
        approx_bounds = None
        if self.lower is not None and self.upper is not None:
            lower, upper = convert(self.lower), convert(self.upper)
            check_lower_bound(lower, self.integral)
            mechanism_builder = self.laplace_mechanism.clone()
            mechanism_builder.epsilon = self.epsilon
            mechanism_builder.sensitivity = max(abs(lower), abs(upper))
            mechanism = mechanism_builder.build()
        elif self.approx_bounds is not None:
            lower = upper = convert(0)
            approx_bounds = self.approx_bounds
            self.approx_bounds = None
        else:
            raise InvalidArgumentError(
                "Either both bounds must be set or an approximate bounds "
                "algorithm must be given."
            )
        return BoundedSum(
            self.epsilon,
            lower,
            upper,
            self.laplace_mechanism.clone(),
            mechanism,
            approx_bounds,
            self.integral,
        )