"""Differentially private variance of values clamped to bounds."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol

from dpstats.count import DEFAULT_EPSILON
from dpstats.mechanisms import (
    InvalidArgumentError,
    LaplaceMechanism,
    LaplaceMechanismBuilder,
)
from dpstats.values import BoundingReport, Output, Summary, add_to_output, get_value

_INT64_MAX = 2**63 - 1
_INT64_MIN = -(2**63)
_SQRT_INT64_MAX = math.sqrt(_INT64_MAX)


class _ApproxBounds(Protocol):
    """What a bounded variance needs from an algorithm that finds bounds privately."""

    def num_positive_bins(self) -> int: ...

    def add_entry(self, value: float) -> None: ...

    def add_to_partial_sums(self, partials: list, value: float) -> None: ...

    def add_to_partials(
        self, partials: list, value: float, difference: Callable[[float, float], float]
    ) -> None: ...

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


def _in_int64(value: int) -> bool:
    return _INT64_MIN <= value <= _INT64_MAX


def _half(value: float, integral: bool) -> float:
    """Halve a value, truncating towards zero for integral types."""
    if integral:
        quotient = abs(value) // 2
        return quotient if value >= 0 else -quotient
    return value / 2


def check_bounds(lower: float, upper: float, integral: bool = False) -> None:
    """Raise if the bounds are inverted or, for integers, would overflow."""
    if lower > upper:
        raise InvalidArgumentError("Lower cannot be greater than upper.")
    if not integral:
        return
    difference = upper - lower
    if not _in_int64(difference) or not _in_int64(difference * difference):
        raise InvalidArgumentError("Sensitivity calculation caused integer overflow.")
    if upper > _SQRT_INT64_MAX or lower < -_SQRT_INT64_MAX:
        raise InvalidArgumentError("Squaring the bounds caused overflow.")


def _difference_of_squares(first: float, second: float) -> float:
    # Factored to lessen the chance of overflowing to infinity.
    return (float(first) + second) * (float(first) - second)


def _range_of_squares(lower: float, upper: float) -> float:
    """Width of the range of x^2 over [lower, upper]."""
    if lower < 0 < upper:
        return max(lower * lower, upper * upper)
    return abs(upper * upper - lower * lower)


def _midpoint_of_squares(lower: float, upper: float, integral: bool) -> float:
    """Midpoint of the range of x^2 over [lower, upper]."""
    if lower < 0 < upper:
        return _half(max(lower * lower, upper * upper), integral)
    return lower * lower + _half(upper * upper - lower * lower, integral)


@dataclass
class BoundedVarianceSummary:
    """Serialized count and partial values of a BoundedVariance."""

    count: int = 0
    pos_sum: list = field(default_factory=list)
    neg_sum: list = field(default_factory=list)
    pos_sum_of_squares: list = field(default_factory=list)
    neg_sum_of_squares: list = field(default_factory=list)
    bounds_summary: Any = None


class BoundedVariance:
    """Variance of entries clamped to [lower, upper], reported with Laplace noise.

    The result is clamped to [0, (upper - lower)^2 / 4], so its square root is
    always defined. Bounds are either given or found by an approximate bounds
    algorithm when the result is generated.
    """

    def __init__(
        self,
        epsilon: float,
        lower: float,
        upper: float,
        mechanism_builder: LaplaceMechanismBuilder,
        sum_mechanism: LaplaceMechanism | None,
        sos_mechanism: LaplaceMechanism | None,
        count_mechanism: LaplaceMechanism,
        approx_bounds: _ApproxBounds | None = None,
        integral: bool = False,
    ) -> None:
        self.epsilon = epsilon
        self.integral = integral
        self.raw_count = 0
        self._lower = lower
        self._upper = upper
        self._mechanism_builder = mechanism_builder
        self._sum_mechanism = sum_mechanism
        self._sos_mechanism = sos_mechanism
        self._count_mechanism = count_mechanism
        self._approx_bounds = approx_bounds
        self._privacy_budget = 1.0
        if approx_bounds is not None:
            bins = approx_bounds.num_positive_bins()
            self._pos_sum = [self._zero] * bins
            self._neg_sum = [self._zero] * bins
            self._pos_sos = [0.0] * bins
            self._neg_sos = [0.0] * bins
        else:
            self._pos_sum = [self._zero]
            self._neg_sum = []
            self._pos_sos = [0.0]
            self._neg_sos = []

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
        self.raw_count += 1
        if self._approx_bounds is None:
            clamped = max(float(self._lower), min(float(self._upper), float(value)))
            self._pos_sum[0] += self._convert(clamped)
            self._pos_sos[0] += clamped * clamped
            return
        self._approx_bounds.add_entry(value)
        if value >= 0:
            sums, squares = self._pos_sum, self._pos_sos
        else:
            sums, squares = self._neg_sum, self._neg_sos
        self._approx_bounds.add_to_partial_sums(sums, value)
        self._approx_bounds.add_to_partials(squares, value, _difference_of_squares)

    def add_entries(self, values: Iterable[float]) -> None:
        """Add every value of an iterable."""
        for value in values:
            self.add_entry(value)

    def partial_result(self, privacy_budget: float = 1.0) -> Output:
        """Return the noisy variance, spending part of the remaining privacy budget."""
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
        self._pos_sos = [0.0] * len(self._pos_sos)
        self._neg_sos = [0.0] * len(self._neg_sos)
        self.raw_count = 0
        if self._approx_bounds is not None:
            self._approx_bounds.reset()
            self._sum_mechanism = None
            self._sos_mechanism = None

    def serialize(self) -> Summary:
        """Return a summary of the count, partial values and bounds algorithm."""
        bounds_summary = None
        if self._approx_bounds is not None:
            bounds_summary = self._approx_bounds.serialize().data
        return Summary(
            data=BoundedVarianceSummary(
                count=self.raw_count,
                pos_sum=list(self._pos_sum),
                neg_sum=list(self._neg_sum),
                pos_sum_of_squares=list(self._pos_sos),
                neg_sum_of_squares=list(self._neg_sos),
                bounds_summary=bounds_summary,
            )
        )

    def merge(self, summary: Summary) -> None:
        """Add the count and partial values held by a summary to this one."""
        if summary.data is None:
            raise InvalidArgumentError(
                "Cannot merge summary with no bounded variance data."
            )
        data = summary.data
        if not isinstance(data, BoundedVarianceSummary):
            raise InvalidArgumentError("Bounded variance summary unable to be unpacked.")
        if (self._approx_bounds is not None) != (data.bounds_summary is not None):
            raise InvalidArgumentError(
                "Merged BoundedVariance must have the same bounding strategy."
            )
        if (
            len(self._pos_sum) != len(data.pos_sum)
            or len(self._neg_sum) != len(data.neg_sum)
            or len(self._pos_sos) != len(data.pos_sum_of_squares)
            or len(self._neg_sos) != len(data.neg_sum_of_squares)
        ):
            raise InvalidArgumentError(
                "Merged BoundedVariance must have the same amount of partial "
                "sum or sum of squares values as this BoundedVariance."
            )
        self.raw_count += data.count
        self._pos_sum = [a + self._convert(b) for a, b in zip(self._pos_sum, data.pos_sum)]
        self._neg_sum = [a + self._convert(b) for a, b in zip(self._neg_sum, data.neg_sum)]
        self._pos_sos = [a + b for a, b in zip(self._pos_sos, data.pos_sum_of_squares)]
        self._neg_sos = [a + b for a, b in zip(self._neg_sos, data.neg_sum_of_squares)]
        if self._approx_bounds is not None:
            self._approx_bounds.merge(Summary(data=data.bounds_summary))

    def memory_used(self) -> int:
        """Approximate number of bytes held by the algorithm."""
        memory = sys.getsizeof(self) + 8 * (
            len(self._pos_sum) + len(self._neg_sum) + len(self._pos_sos) + len(self._neg_sos)
        )
        if self._approx_bounds is not None:
            memory += self._approx_bounds.memory_used()
        if self._sum_mechanism is not None:
            memory += self._sum_mechanism.memory_used()
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
            self._lower = self._convert(get_value(bounds.elements[0].value))
            self._upper = self._convert(get_value(bounds.elements[1].value))
            check_bounds(self._lower, self._upper, self.integral)
            total = self._approx_bounds.compute_from_partials(
                self._pos_sum,
                self._neg_sum,
                lambda x: x,
                self._lower,
                self._upper,
                self.raw_count,
            )
            sos = self._approx_bounds.compute_from_partials(
                self._pos_sos,
                self._neg_sos,
                lambda x: x * x,
                self._lower,
                self._upper,
                self.raw_count,
            )
            output.error_report.bounding_report = self._approx_bounds.bounding_report(
                self._lower, self._upper
            )
            self._sum_mechanism = None
            self._sos_mechanism = None
        else:
            total = self._pos_sum[0]
            sos = self._pos_sos[0]

        self._build_mechanisms()

        lower, upper = self._lower, self._upper
        sum_midpoint = lower + _half(upper - lower, self.integral)
        sos_midpoint = _midpoint_of_squares(lower, upper, self.integral)

        count_budget = remaining_budget / 4
        remaining_budget -= count_budget
        noised_sum_count = self._count_mechanism.add_noise(self.raw_count, count_budget)
        remaining_budget -= count_budget
        noised_sos_count = self._count_mechanism.add_noise(self.raw_count, count_budget)

        sum_budget = remaining_budget / 2
        remaining_budget -= sum_budget
        normalized_sum = self._sum_mechanism.add_noise(
            total - float(self.raw_count) * sum_midpoint, sum_budget
        )
        normalized_sos = self._sos_mechanism.add_noise(
            sos - float(self.raw_count) * sos_midpoint, remaining_budget
        )

        if noised_sum_count <= 1:
            mean = float(sum_midpoint)
        else:
            mean = normalized_sum / noised_sum_count + sum_midpoint
        if noised_sos_count <= 1:
            mean_of_square = float(sos_midpoint)
        else:
            mean_of_square = normalized_sos / noised_sos_count + sos_midpoint

        noised_variance = mean_of_square - mean**2
        interval_length_squared = float(upper - lower) ** 2
        add_to_output(
            output,
            float(max(0.0, min(interval_length_squared / 4, noised_variance))),
        )
        return output

    def _build_mechanisms(self) -> None:
        if self._sum_mechanism is None:
            builder = self._mechanism_builder.clone()
            builder.epsilon = self.epsilon
            builder.sensitivity = _half(self._upper - self._lower, self.integral)
            self._sum_mechanism = builder.build()
        if self._sos_mechanism is None:
            builder = self._mechanism_builder.clone()
            builder.epsilon = self.epsilon
            builder.sensitivity = _range_of_squares(self._lower, self._upper) / 2
            self._sos_mechanism = builder.build()


@dataclass
class BoundedVarianceBuilder:
    """Collects the parameters of a BoundedVariance and builds it.

    Either both bounds are set, or an approximate bounds algorithm is given;
    that algorithm is handed over to the built variance and cleared from the builder.
    """

    epsilon: float = DEFAULT_EPSILON
    lower: float | None = None
    upper: float | None = None
    laplace_mechanism: LaplaceMechanismBuilder = field(
        default_factory=LaplaceMechanismBuilder
    )
    approx_bounds: _ApproxBounds | None = None
    integral: bool = False

    def _mechanism(self, sensitivity: float) -> LaplaceMechanism:
        builder = self.laplace_mechanism.clone()
        builder.epsilon = self.epsilon
        builder.sensitivity = sensitivity
        return builder.build()

    def build(self) -> BoundedVariance:
        """Build the variance; raises InvalidArgumentError for bad parameters."""
        if not (self.epsilon > 0 and math.isfinite(self.epsilon)):
            raise InvalidArgumentError("Epsilon must be finite and positive.")
        convert = int if self.integral else float
        sum_mechanism = None
        sos_mechanism = None
        approx_bounds = None
        if self.lower is not None and self.upper is not None:
            lower, upper = convert(self.lower), convert(self.upper)
            check_bounds(lower, upper, self.integral)
            sum_mechanism = self._mechanism(float(upper - lower) / 2)
            sos_mechanism = self._mechanism(_range_of_squares(lower, upper) / 2)
        elif self.approx_bounds is not None:
            lower = upper = convert(0)
            approx_bounds = self.approx_bounds
        else:
            raise InvalidArgumentError(
                "Either both bounds must be set or an approximate bounds "
                "algorithm must be given."
            )
        count_mechanism = self._mechanism(1)
        if approx_bounds is not None:
            self.approx_bounds = None
        return BoundedVariance(
            self.epsilon,
            lower,
            upper,
            self.laplace_mechanism.clone(),
            sum_mechanism,
            sos_mechanism,
            count_mechanism,
            approx_bounds,
            self.integral,
        )