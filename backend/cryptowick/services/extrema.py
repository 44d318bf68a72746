from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

from cryptowick.services.maths import div_no_nan, lagging_linear_regression_slopes


class ExtremumKind(str, Enum):
    MINIMA = "MINIMA"
    MAXIMA = "MAXIMA"


@dataclass(frozen=True)
class Extremum:
    kind: ExtremumKind
    value: float
    index: int


def _local_extrema(
    radius: int, values: Sequence[float], *, minima: bool
) -> List[bool]:
    if radius < 1:
        raise ValueError("Extrema radius must be >= 1")

    last = len(values) - 1
    flags: List[bool] = []
    for i, value in enumerate(values):
        if i < radius or i > last - radius:
            flags.append(False)
            continue
        window = values[i - radius : i + radius + 1]
        if minima:
            flags.append(all(other >= value for other in window))
        else:
            flags.append(all(other <= value for other in window))
    return flags


def are_local_minima(radius: int, values: Sequence[float]) -> List[bool]:
    """Flag values that are <= every value within `radius` on both sides."""

    return _local_extrema(radius, values, minima=True)


def are_local_maxima(radius: int, values: Sequence[float]) -> List[bool]:
    return _local_extrema(radius, values, minima=False)


def consolidate_adjacent_extrema(
    values_for_minima: Sequence[float],
    is_minima: Sequence[bool],
    values_for_maxima: Sequence[float],
    is_maxima: Sequence[bool],
) -> tuple[List[bool], List[bool]]:
    """Collapse runs of same-kind extrema into their most extreme member.

    Two minima with no maximum between them keep only the lower one (the
    later one on ties); maxima mirror this. A bar may be both a minimum and
    a maximum, in which case the minimum is considered first. Returns new
    flag lists; the inputs are left untouched.
    """

    minima = list(is_minima)
    maxima = list(is_maxima)
    last_kind: ExtremumKind | None = None
    last_index = -1

    for i in range(len(minima)):
        if minima[i]:
            if last_kind is not ExtremumKind.MINIMA:
                last_index = i
            elif values_for_minima[i] <= values_for_minima[last_index]:
                minima[last_index] = False
                last_index = i
            else:
                minima[i] = False
            last_kind = ExtremumKind.MINIMA

        if maxima[i]:
            if last_kind is not ExtremumKind.MAXIMA:
                last_index = i
            elif values_for_maxima[i] >= values_for_maxima[last_index]:
                maxima[last_index] = False
                last_index = i
            else:
                maxima[i] = False
            last_kind = ExtremumKind.MAXIMA

    return minima, maxima


def extrema_from_flags(
    values_for_minima: Sequence[float],
    is_minima: Sequence[bool],
    values_for_maxima: Sequence[float],
    is_maxima: Sequence[bool],
) -> List[Extremum]:
    out: List[Extremum] = []
    for i in range(len(is_minima)):
        if is_minima[i]:
            out.append(Extremum(ExtremumKind.MINIMA, float(values_for_minima[i]), i))
        if is_maxima[i]:
            out.append(Extremum(ExtremumKind.MAXIMA, float(values_for_maxima[i]), i))
    return out


def lin_reg_slopes_pct_close(closes: Sequence[float], lookback: int) -> List[float]:
    """Trailing regression slope of close, as a fraction of the current close."""

    slopes = lagging_linear_regression_slopes(closes, lookback)
    return [div_no_nan(slope, close) for slope, close in zip(slopes, closes)]


__all__ = [
    "Extremum",
    "ExtremumKind",
    "are_local_maxima",
    "are_local_minima",
    "consolidate_adjacent_extrema",
    "extrema_from_flags",
    "lin_reg_slopes_pct_close",
]
