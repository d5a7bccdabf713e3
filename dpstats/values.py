"""Result, report and summary containers shared by the aggregation algorithms."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

Scalar = Union[int, float, str]


@dataclass
class ValueType:
    """A single typed value: exactly one of integer, float or string."""

    int_value: int | None = None
    float_value: float | None = None
    string_value: str | None = None

    def value(self) -> Scalar:
        """Return whichever of the three values is set."""
        for candidate in (self.int_value, self.float_value, self.string_value):
            if candidate is not None:
                return candidate
        raise ValueError("value type holds no value")


@dataclass
class ConfidenceInterval:
    """Interval in which the added noise lies with the given confidence."""

    lower_bound: float = 0.0
    upper_bound: float = 0.0
    confidence_level: float = 0.0


@dataclass
class BoundingReport:
    """Bounds found automatically and how many inputs fell outside them."""

    lower_bound: ValueType | None = None
    upper_bound: ValueType | None = None
    num_inputs: float = 0.0
    num_outside: float = 0.0


@dataclass
class ErrorReport:
    """Accuracy information attached to an output."""

    bounding_report: BoundingReport | None = None
    noise_confidence_interval: ConfidenceInterval | None = None


@dataclass
class Element:
    """One element of an output."""

    value: ValueType


@dataclass
class Output:
    """The result of an algorithm: its elements and an error report."""

    elements: list[Element] = field(default_factory=list)
    error_report: ErrorReport = field(default_factory=ErrorReport)


@dataclass
class Summary:
    """Serialized state of an algorithm, to be merged into another one."""

    data: Any = None


def make_value_type(value: Scalar) -> ValueType:
    """Wrap a Python scalar in a ValueType of the matching kind."""
    if isinstance(value, str):
        return ValueType(string_value=value)
    if isinstance(value, int):
        return ValueType(int_value=int(value))
    if isinstance(value, float):
        return ValueType(float_value=value)
    raise TypeError(f"unsupported value type: {type(value).__name__}")


def get_value(value_type: ValueType) -> Scalar:
    """Return the scalar held by a ValueType."""
    return value_type.value()


def add_to_output(output: Output, value: Scalar) -> None:
    """Append a value to the elements of an output."""
    output.elements.append(Element(make_value_type(value)))


def make_output(value: Scalar) -> Output:
    """Create an output holding a single value."""
    output = Output()
    add_to_output(output, value)
    return output


def output_value(output: Output) -> Scalar:
    """Return the value of the first element of an output."""
    if not output.elements:
        raise ValueError("output has no elements")
    return get_value(output.elements[0].value)