from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Callable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")

WindowReducer = Callable[[Sequence[float], int, int], T]


def _check_window(values: Sequence[float], start: int, count: int) -> None:
    if count < 1:
        raise ValueError(f"Window must contain at least one value (count={count})")
    if start < 0 or start + count > len(values):
        raise ValueError(
            f"Window [{start}, {start + count}) is out of range for {len(values)} values"
        )


def div_no_nan(a: float, b: float) -> float:
    """Divide, returning 0 instead of NaN/inf when the denominator vanishes."""

    return a / b if b != 0 else 0.0


def in_range_inclusive(value: float, low: float, high: float) -> bool:
    if high < low:
        raise ValueError(f"Empty range [{low}, {high}]")
    return low <= value <= high


def transform_value_in_range(
    min1: float, max1: float, min2: float, max2: float, value: float
) -> float:
    """Map `value` from [min1, max1] linearly onto [min2, max2]."""

    pct_in_range = (value - min1) / (max1 - min1)
    return min2 + pct_in_range * (max2 - min2)


# -----------------------------------------------------------------------------
# Windowed statistics over values[start:start + count]
# -----------------------------------------------------------------------------


def sum_(values: Sequence[float], start: int, count: int) -> float:
    _check_window(values, start, count)
    total = 0.0
    for i in range(start, start + count):
        total += values[i]
    return total


def min_(values: Sequence[float], start: int, count: int) -> float:
    _check_window(values, start, count)
    return min(values[start : start + count])


def max_(values: Sequence[float], start: int, count: int) -> float:
    _check_window(values, start, count)
    return max(values[start : start + count])


def mean_slice(values: Sequence[float], start: int, count: int) -> float:
    return sum_(values, start, count) / count


def mean(values: Sequence[float]) -> float:
    return mean_slice(values, 0, len(values))


def _squared_deviation_sum(values: Sequence[float], start: int, count: int) -> float:
    avg = mean_slice(values, start, count)
    total = 0.0
    for i in range(start, start + count):
        diff = values[i] - avg
        total += diff * diff
    return total


def population_variance(values: Sequence[float], start: int, count: int) -> float:
    return _squared_deviation_sum(values, start, count) / count


def sample_variance(values: Sequence[float], start: int, count: int) -> float:
    if count < 2:
        raise ValueError("Sample variance needs at least two values")
    return _squared_deviation_sum(values, start, count) / (count - 1)


def population_standard_deviation(
    values: Sequence[float], start: int, count: int
) -> float:
    return sqrt(population_variance(values, start, count))


def sample_standard_deviation(values: Sequence[float], start: int, count: int) -> float:
    return sqrt(sample_variance(values, start, count))


# -----------------------------------------------------------------------------
# Finite differences
# -----------------------------------------------------------------------------


def moving_derivative(values: Sequence[float], h: float) -> List[float]:
    """First derivative: central differences, one-sided at both ends."""

    if h <= 0:
        raise ValueError("Step h must be > 0")
    n = len(values)
    if n < 2:
        return [0.0] * n

    out: List[float] = []
    last = n - 1
    for i in range(n):
        if i == 0:
            out.append((values[1] - values[0]) / h)
        elif i == last:
            out.append((values[i] - values[i - 1]) / h)
        else:
            out.append((values[i + 1] - values[i - 1]) / (2 * h))
    return out


def moving_second_derivative(values: Sequence[float], h: float) -> List[float]:
    if h <= 0:
        raise ValueError("Step h must be > 0")
    n = len(values)
    if n < 3:
        return [0.0] * n

    h_squared = h * h
    out: List[float] = []
    last = n - 1
    for i in range(n):
        if i == 0:
            out.append((values[2] - 2 * values[1] + values[0]) / h_squared)
        elif i == last:
            out.append((values[i] - 2 * values[i - 1] + values[i - 2]) / h_squared)
        else:
            out.append((values[i + 1] - 2 * values[i] + values[i - 1]) / h_squared)
    return out


# -----------------------------------------------------------------------------
# Regression
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LinearLeastSquaresResult:
    m: float
    b: float
    r2: float


def linear_least_squares(
    points: Sequence[Tuple[float, float]],
) -> LinearLeastSquaresResult:
    """Closed-form ordinary least squares fit y = m*x + b.

    Raises ZeroDivisionError when every x is identical.
    """

    n = len(points)
    if n < 2:
        raise ValueError("Linear regression needs at least two points")

    sx = sy = sxy = sxx = syy = 0.0
    for x, y in points:
        sx += x
        sy += y
        sxy += x * y
        sxx += x * x
        syy += y * y

    denominator = n * sxx - sx * sx
    if denominator == 0:
        raise ZeroDivisionError("Degenerate regression input: all x values equal")

    m = (n * sxy - sx * sy) / denominator
    b = (sy * sxx - sx * sxy) / denominator

    # Flat y has no defined correlation; report it as no fit.
    y_spread = n * syy - sy * sy
    if y_spread <= 0:
        r2 = 0.0
    else:
        r = (n * sxy - sx * sy) / (sqrt(denominator) * sqrt(y_spread))
        r2 = r * r

    return LinearLeastSquaresResult(m=m, b=b, r2=r2)


def lagging_linear_regression_slopes(
    values: Sequence[float], lookback: int
) -> List[float]:
    """OLS slope of each trailing `lookback` window, 0 while it is incomplete."""

    if lookback < 2:
        raise ValueError("Regression lookback must be >= 2")

    def _slope(vals: Sequence[float], start: int, count: int) -> float:
        if count < lookback:
            return 0.0
        points = [(float(j), float(vals[start + j])) for j in range(count)]
        return linear_least_squares(points).m

    return lagging_reduce(values, lookback, _slope)


# -----------------------------------------------------------------------------
# Lagging reductions
# -----------------------------------------------------------------------------


def lagging_reduce(
    values: Sequence[float],
    lookback: int,
    reduce_fn: WindowReducer[T],
) -> List[T]:
    """Apply `reduce_fn` over the trailing window ending at every index.

    The window is [max(0, i - lookback + 1), i], so it grows from one value up
    to `lookback` values near the start of the series.
    """

    if lookback < 1:
        raise ValueError("lookback must be >= 1")

    out: List[T] = []
    for i in range(len(values)):
        first = max(i - (lookback - 1), 0)
        out.append(reduce_fn(values, first, i - first + 1))
    return out


def lagging_simple_moving_average(
    values: Sequence[float], lookback: int
) -> List[float]:
    return lagging_reduce(values, lookback, mean_slice)


def lagging_exponential_moving_average(
    values: Sequence[float], lookback: int
) -> List[float]:
    if lookback < 1:
        raise ValueError("lookback must be >= 1")
    if not values:
        return []

    alpha = 2.0 / (lookback + 1)
    ema = [float(values[0])]
    for v in values[1:]:
        ema.append((1.0 - alpha) * ema[-1] + alpha * v)
    return ema


def _stochastic(values: Sequence[float], start: int, count: int) -> float:
    cur = values[start + count - 1]
    low = min_(values, start, count)
    high = max_(values, start, count)
    value_range = high - low
    return (cur - low) / value_range if value_range > 0 else 0.0


def lagging_stochastic_oscillator(
    values: Sequence[float], lookback: int
) -> List[float]:
    """Position of each value inside its trailing min/max range, in [0, 1]."""

    return lagging_reduce(values, lookback, _stochastic)


def combine_series(
    a: Sequence[float],
    b: Sequence[float],
    fn: Callable[[float, float], float],
) -> List[float]:
    if len(a) != len(b):
        raise ValueError(f"Series lengths differ ({len(a)} vs {len(b)})")
    return [fn(x, y) for x, y in zip(a, b, strict=True)]


__all__ = [
    "LinearLeastSquaresResult",
    "combine_series",
    "div_no_nan",
    "in_range_inclusive",
    "lagging_exponential_moving_average",
    "lagging_linear_regression_slopes",
    "lagging_reduce",
    "lagging_simple_moving_average",
    "lagging_stochastic_oscillator",
    "linear_least_squares",
    "max_",
    "mean",
    "mean_slice",
    "min_",
    "moving_derivative",
    "moving_second_derivative",
    "population_standard_deviation",
    "population_variance",
    "sample_standard_deviation",
    "sample_variance",
    "sum_",
    "transform_value_in_range",
]
