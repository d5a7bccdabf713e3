# dpstats

Differentially private aggregate statistics for Python. Each algorithm
collects raw entries. When you ask it for a result, it returns that result
with calibrated Laplace noise added.

## Modules

- `dpstats.mechanisms`
  - `LaplaceMechanism` and `LaplaceMechanismBuilder`. Noise is snapped to a
    power of two, and values are clamped to ±2^39.
  - `LaplaceMechanismBuilder.build()` refuses a sensitivity whose noise
    could overflow.
  - `noise_confidence_interval()` gives the interval that holds the noise
    at a chosen confidence level.
  - `LaplaceDistribution`, and the helper `clamp_double`.
- `dpstats.count`: `Count` and `CountBuilder`. This is a noisy count of
  entries. The result is rounded and is never below zero.
- `dpstats.bounded_sum`: `BoundedSum` and `BoundedSumBuilder`. This is a
  noisy sum of values clamped to `[lower, upper]`. The sensitivity is
  `max(|lower|, |upper|)`.
- `dpstats.bounded_variance`: `BoundedVariance` and
  `BoundedVarianceBuilder`. This is a noisy variance of clamped values. The
  result always lies in `[0, (upper - lower)^2 / 4]`.
- `dpstats.values`
  - Result containers: `Output`, `Element`, `ValueType`,
    `ConfidenceInterval`, `BoundingReport`, `ErrorReport` and `Summary`.
  - Helpers: `get_value`, `make_value_type`, `make_output`,
    `add_to_output` and `output_value`.
- `dpstats.testing_mechanisms`: mechanisms for tests only. They are not
  private.
  - `ZeroNoiseMechanismBuilder` builds a mechanism that returns its input
    unchanged.
  - `SeededLaplaceMechanismBuilder` draws noise from a seeded
    `random.Random`, so the noise can be reproduced.
- `dpstats.carrots`: `CarrotReporter`, a small worked example. It reads a
  CSV file with one `animal,count` row per line.
  - True statistics: `sum()`, `mean()`, `count_above(limit)` and `max()`.
  - Private statistics: `private_sum(budget)` and
    `private_count_above(budget, limit)`.
  - Both private queries draw on a shared `privacy_budget` that starts
    at 1.

## Usage

```python
from dpstats.bounded_sum import BoundedSumBuilder
from dpstats.values import output_value

bounded_sum = BoundedSumBuilder(epsilon=1.0, lower=0, upper=10).build()
output = bounded_sum.result([1, 2, 3, 4])
print(output_value(output))
print(output.error_report.noise_confidence_interval)
```

### Builder defaults and value types

The builders default to `epsilon = ln 3`. By default values are floats. Set
`integral=True` on `BoundedSumBuilder` or `BoundedVarianceBuilder` to get
integer behaviour: integer sums, and truncating division for the midpoints.
With that setting, bounds are checked against 64-bit integer limits.

### Privacy budget

- `result(values)` resets the algorithm, adds the values, and spends the
  whole privacy budget.
- `add_entry()` or `add_entries()` followed by `partial_result(budget)`
  spends only part of the budget.
- Asking for more than the budget that remains raises an error.
- `reset()` clears the entries and restores the budget.
- `NaN` entries are dropped by the sum and the variance.

### Splitting work

Algorithms can be split across workers. Call `serialize()` on one to get a
`Summary`, then pass it to `merge()` on another algorithm that was built
with the same settings.

### Errors

Invalid parameters raise `dpstats.mechanisms.InvalidArgumentError`, a
subclass of `ValueError`. Examples:

- inverted bounds
- epsilon that is not positive and finite
- a sensitivity so large that the noise could overflow
- a summary of the wrong kind

## What the package does not do

### Automatic bounds

No algorithm for finding bounds automatically is included.

- `BoundedSumBuilder` and `BoundedVarianceBuilder` accept an
  `approx_bounds` object. You must supply it yourself, and it must provide
  the methods they call: `num_positive_bins`, `add_entry`,
  `add_to_partial_sums`, `generate_result`, `compute_from_partials`,
  `bounding_report`, `reset`, `serialize` and `merge`. `BoundedVariance`
  also calls `add_to_partials`.
- Without such an object, both bounds must be given. Otherwise `build()`
  raises `InvalidArgumentError`.

### Other statistics

There is no private mean, minimum, maximum or percentile algorithm.
`CarrotReporter` offers only the private sum and the private count.

### Command-line program

There is no command-line program. Use the package as a library.

## Tests

```
pip install -e .[test]
pytest
```