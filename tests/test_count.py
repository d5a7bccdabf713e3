import math

import pytest

from dpstats.count import Count, CountBuilder, CountSummary
from dpstats.mechanisms import InvalidArgumentError
from dpstats.testing_mechanisms import ZeroNoiseMechanismBuilder
from dpstats.values import Summary, output_value


def _zero_noise_count():
    return CountBuilder(laplace_mechanism=ZeroNoiseMechanismBuilder()).build()


@pytest.mark.parametrize("values", [[1, 2, 3, 4, 2, 3], [1.0, 2.0, 3.0, 4.0, 2.0, 3.0]])
def test_basic(values):
    count = _zero_noise_count()
    assert output_value(count.result(values)) == 6


def test_repeated_result():
    count = _zero_noise_count()
    count.add_entries([1, 2, 3, 4, 2, 3])
    first = output_value(count.partial_result(0.5))
    second = output_value(count.partial_result(0.5))
    assert first == second == 6


def test_confidence_interval():
    epsilon = 0.5
    level = 0.95
    count = CountBuilder(epsilon=epsilon).build()
    interval = count.noise_confidence_interval(level)
    assert interval.lower_bound == pytest.approx(math.log(1 - level) / epsilon)
    assert interval.upper_bound == pytest.approx(-math.log(1 - level) / epsilon)
    assert interval.confidence_level == level
    reported = count.partial_result().error_report.noise_confidence_interval
    assert reported == interval


def test_serialize():
    count = CountBuilder(epsilon=0.5).build()
    count.add_entry(1)
    count.add_entry(2)
    summary = count.serialize()
    assert isinstance(summary.data, CountSummary)
    assert summary.data.count == 2


def test_merge():
    summary = Summary(data=CountSummary(count=2))
    count = _zero_noise_count()
    count.add_entry(0)
    count.merge(summary)
    assert output_value(count.partial_result()) == 3


def test_merge_without_data():
    count = _zero_noise_count()
    with pytest.raises(InvalidArgumentError, match="no count data"):
        count.merge(Summary())


def test_merge_wrong_summary():
    count = _zero_noise_count()
    with pytest.raises(InvalidArgumentError, match="unable to be unpacked"):
        count.merge(Summary(data=[1, 2]))


def test_memory_used():
    count = CountBuilder().build()
    assert count.memory_used() > 0


def test_budget_exhausted():
    count = _zero_noise_count()
    count.partial_result(0.6)
    with pytest.raises(InvalidArgumentError):
        count.partial_result(0.6)


def test_result_resets_previous_entries():
    count = _zero_noise_count()
    count.add_entries(range(10))
    assert output_value(count.result([1, 2])) == 2


def test_invalid_epsilon():
    with pytest.raises(InvalidArgumentError):
        CountBuilder(epsilon=0).build()


def test_count_is_not_negative():
    count = CountBuilder(epsilon=0.01).build()
    for _ in range(20):
        count.reset()
        assert output_value(count.partial_result()) >= 0


def test_direct_construction():
    mechanism = ZeroNoiseMechanismBuilder(epsilon=1.0).build()
    count = Count(1.0, mechanism)
    count.add_entries("abc")
    assert output_value(count.partial_result()) == 3