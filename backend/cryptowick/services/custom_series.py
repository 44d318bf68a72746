from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from cryptowick.services import maths
from cryptowick.services.series_expression import ExprNode, evaluate
from cryptowick.services.series_expression_dsl import parse_expression
from cryptowick.services.trade_analysis import TradeAnalysis

TREND_ANALYSIS_LENGTH = 10
LIN_REG_LENGTHS = (2, 3, 4, 5, 6, 7, 8, 9, 10, 50)


@dataclass(frozen=True)
class CustomSeries:
    """A named series for charting, computed from a TradeAnalysis."""

    title: str
    compute: Callable[[TradeAnalysis], List[float]]
    formula: Optional[str] = None
    height: int = 100


def _compile(formula: str) -> ExprNode:
    errors: List[str] = []
    node = parse_expression(formula, errors)
    if node is None:
        raise ValueError(f"Invalid built-in formula '{formula}': {'; '.join(errors)}")
    return node


def formula_series(title: str, formula: str, height: int = 100) -> CustomSeries:
    node = _compile(formula)
    return CustomSeries(
        title=title,
        compute=lambda analysis: evaluate(node, analysis),
        formula=formula,
        height=height,
    )


def diff_from_lin_reg(analysis: TradeAnalysis) -> List[float]:
    """Close minus the close predicted by the previous bar's trend line."""

    slopes = evaluate(
        _compile(f"linRegSlope({TREND_ANALYSIS_LENGTH}, close)"), analysis
    )
    closes = analysis.closes
    out: List[float] = []
    for i, close in enumerate(closes):
        trend_start = (i - 1) - (TREND_ANALYSIS_LENGTH - 1)
        if trend_start < 0:
            out.append(0.0)
            continue
        predicted = closes[trend_start] + TREND_ANALYSIS_LENGTH * slopes[i - 1]
        out.append(close - predicted)
    return out


def relative_close_move(analysis: TradeAnalysis) -> List[float]:
    """Absolute close-to-close move divided by its trailing average."""

    closes = analysis.closes
    abs_deltas = [abs(closes[i] - closes[i - 1]) if i > 0 else 0.0 for i in range(len(closes))]
    averages = maths.lagging_simple_moving_average(abs_deltas, TREND_ANALYSIS_LENGTH)
    return maths.combine_series(abs_deltas, averages, maths.div_no_nan)


def default_custom_series() -> List[CustomSeries]:
    series = [
        formula_series("Close", "close"),
        CustomSeries(title="Diff From Lin. Reg.", compute=diff_from_lin_reg),
        formula_series("Trend Slope", f"linRegSlope({TREND_ANALYSIS_LENGTH}, close)"),
        CustomSeries(title="Relative Close Move", compute=relative_close_move),
        formula_series("SMA 16 Close", "sma(16, close)"),
        formula_series("Close - SMA 16 Close", "sub(close, sma(16, close))"),
        formula_series("SMA 50 1st d/dt", "ddt1st(sma(50, close))"),
        formula_series("SMA 50 2nd d/dt SMA 4", "sma(4, ddt2nd(sma(50, close)))"),
    ]
    series.extend(
        formula_series(f"Lin. Reg. Close Slope {n}", f"linRegSlope({n}, close)")
        for n in LIN_REG_LENGTHS
    )
    return series


__all__ = [
    "CustomSeries",
    "default_custom_series",
    "diff_from_lin_reg",
    "formula_series",
    "relative_close_move",
]
