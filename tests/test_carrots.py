import pytest

from dpstats.carrots import CarrotReporter
from dpstats.mechanisms import InvalidArgumentError
from dpstats.testing_mechanisms import ZeroNoiseMechanismBuilder
from dpstats.values import output_value

ROWS = [
    ("Aardvark", 1),
    ("Badger", 40),
    ("Camel", 100),
    ("Dolphin", 55),
    ("Emu", 0),
    ("Ferret", 91),
    ("Gazelle", 23),
]


@pytest.fixture
def datafile(tmp_path):
    path = tmp_path / "animals_and_carrots.csv"
    path.write_text("".join(f"{name},{count}\n" for name, count in ROWS))
    return path


def test_true_statistics(datafile):
    reporter = CarrotReporter(datafile, 1)
    assert reporter.mean() == reporter.sum() / reporter.count_above(-1)
    assert reporter.max() == 100


def test_true_sum_and_count(datafile):
    reporter = CarrotReporter(datafile, 1)
    assert reporter.sum() == 310
    assert reporter.count_above(90) == 2
    assert reporter.count_above(-1) == 7


def test_too_little_budget(datafile):
    reporter = CarrotReporter(datafile, 1)
    with pytest.raises(InvalidArgumentError):
        reporter.private_count_above(2, 50)
    with pytest.raises(InvalidArgumentError):
        reporter.private_sum(2)
    assert reporter.privacy_budget == 1.0


def test_privacy_budget(datafile):
    reporter = CarrotReporter(datafile, 1)
    assert reporter.privacy_budget == 1.0
    reporter.private_sum(0.2)
    assert reporter.privacy_budget == 0.8
    reporter.private_sum(0.8)
    assert reporter.privacy_budget == 0.0
    with pytest.raises(InvalidArgumentError, match="Not enough privacy budget."):
        reporter.private_count_above(0.25, 0)


def test_private_sum_without_noise(datafile):
    reporter = CarrotReporter(datafile, 1, ZeroNoiseMechanismBuilder())
    assert output_value(reporter.private_sum(0.25)) == 310


def test_private_count_above_without_noise(datafile):
    reporter = CarrotReporter(datafile, 1, ZeroNoiseMechanismBuilder())
    output = reporter.private_count_above(0.25, 90)
    assert output_value(output) == 2
    assert output.error_report.noise_confidence_interval.confidence_level == 0.95


def test_private_count_is_nonnegative(datafile):
    reporter = CarrotReporter(datafile, 1)
    assert output_value(reporter.private_count_above(0.5, 1000)) >= 0


def test_malformed_line_rejected(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("Aardvark,1,2\n")
    with pytest.raises(ValueError):
        CarrotReporter(path, 1)


def test_non_integer_count_rejected(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("Aardvark,many\n")
    with pytest.raises(ValueError):
        CarrotReporter(path, 1)