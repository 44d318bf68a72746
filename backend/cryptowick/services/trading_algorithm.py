from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List

from cryptowick.core.config import Settings
from cryptowick.core.logging import security_logger
from cryptowick.services.extrema import Extremum, ExtremumKind, extrema_from_flags
from cryptowick.services.trade_analysis import TradeAnalysis

logger = logging.getLogger(__name__)

TryOrder = Callable[[], Awaitable[bool]]


@dataclass
class TradingAlgorithmState:
    is_in_trade: bool = False
    stop_loss_price: float = 0.0
    min_take_profit_price: float = 0.0
    trailing_stop_loss_price: float = 0.0


@dataclass(frozen=True)
class AlgorithmParams:
    sma_derivative_pct_close_threshold: float = 0.04 / 100
    stop_loss_drop_pct: float = 2 / 100
    min_take_profit_rise_pct: float = 1 / 100
    trailing_stop_loss_lag_pct: float = 1 / 100
    extrema_rise_pct_per_candle_threshold: float = 0.05 / 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlgorithmParams":
        return cls(
            sma_derivative_pct_close_threshold=settings.sma_derivative_pct_close_threshold,
            stop_loss_drop_pct=settings.stop_loss_drop_pct,
            min_take_profit_rise_pct=settings.min_take_profit_rise_pct,
            trailing_stop_loss_lag_pct=settings.trailing_stop_loss_lag_pct,
            extrema_rise_pct_per_candle_threshold=(
                settings.extrema_rise_pct_per_candle_threshold
            ),
        )


Policy = Callable[[TradingAlgorithmState, TradeAnalysis, int, AlgorithmParams], bool]


def list_extrema(analysis: TradeAnalysis, up_to_index: int) -> List[Extremum]:
    """Consolidated extrema at or before `up_to_index`, in index order."""

    return [
        e
        for e in extrema_from_flags(
            analysis.lows,
            analysis.is_local_minima,
            analysis.highs,
            analysis.is_local_maxima,
        )
        if e.index <= up_to_index
    ]


def _sma50_derivative_pct_close(analysis: TradeAnalysis, index: int) -> float:
    close = analysis.closes[index]
    if close == 0:
        return 0.0
    return analysis.sma50_derivative_1st[index] / close


# -----------------------------------------------------------------------------
# Entry policies
# -----------------------------------------------------------------------------


def sma_derivative_positive(
    state: TradingAlgorithmState,
    analysis: TradeAnalysis,
    index: int,
    params: AlgorithmParams,
) -> bool:
    """Enter when SMA(50) rises by at least the threshold fraction of close per bar."""

    return (
        _sma50_derivative_pct_close(analysis, index)
        >= params.sma_derivative_pct_close_threshold
    )


def _rise_per_candle(earlier: Extremum, later: Extremum) -> float:
    if earlier.value == 0 or later.index == earlier.index:
        return 0.0
    return ((later.value - earlier.value) / earlier.value) / (later.index - earlier.index)


def four_extrema_pattern(
    state: TradingAlgorithmState,
    analysis: TradeAnalysis,
    index: int,
    params: AlgorithmParams,
) -> bool:
    """Enter on a higher-high, higher-low swing: MAXIMA, MINIMA, MAXIMA, MINIMA.

    Both the swing lows and the swing highs must rise at least
    `extrema_rise_pct_per_candle_threshold` per candle.
    """

    extrema = list_extrema(analysis, index)
    if len(extrema) < 4:
        return False

    e1, e2, e3, e4 = extrema[-4:]
    expected = [
        ExtremumKind.MAXIMA,
        ExtremumKind.MINIMA,
        ExtremumKind.MAXIMA,
        ExtremumKind.MINIMA,
    ]
    if [e.kind for e in (e1, e2, e3, e4)] != expected:
        return False

    threshold = params.extrema_rise_pct_per_candle_threshold
    return (
        _rise_per_candle(e2, e4) >= threshold
        and _rise_per_candle(e1, e3) >= threshold
    )


def three_extrema_pattern(
    state: TradingAlgorithmState,
    analysis: TradeAnalysis,
    index: int,
    params: AlgorithmParams,
) -> bool:
    """Enter on MINIMA, MAXIMA, MINIMA with the second low sufficiently higher."""

    extrema = list_extrema(analysis, index)
    if len(extrema) < 3:
        return False

    e1, e2, e3 = extrema[-3:]
    if (e1.kind, e2.kind, e3.kind) != (
        ExtremumKind.MINIMA,
        ExtremumKind.MAXIMA,
        ExtremumKind.MINIMA,
    ):
        return False
    return _rise_per_candle(e1, e3) >= params.extrema_rise_pct_per_candle_threshold


# -----------------------------------------------------------------------------
# Exit policies
# -----------------------------------------------------------------------------


def sma_derivative_negative(
    state: TradingAlgorithmState,
    analysis: TradeAnalysis,
    index: int,
    params: AlgorithmParams,
) -> bool:
    return (
        _sma50_derivative_pct_close(analysis, index)
        <= -params.sma_derivative_pct_close_threshold
    )


def trailing_stop_hit(
    state: TradingAlgorithmState,
    analysis: TradeAnalysis,
    index: int,
    params: AlgorithmParams,
) -> bool:
    return analysis.closes[index] <= state.trailing_stop_loss_price


def trailing_stop_or_sma_negative(
    state: TradingAlgorithmState,
    analysis: TradeAnalysis,
    index: int,
    params: AlgorithmParams,
) -> bool:
    return trailing_stop_hit(state, analysis, index, params) or sma_derivative_negative(
        state, analysis, index, params
    )


ENTRY_POLICIES: dict[str, Policy] = {
    "sma_derivative_positive": sma_derivative_positive,
    "four_extrema_pattern": four_extrema_pattern,
    "three_extrema_pattern": three_extrema_pattern,
}

EXIT_POLICIES: dict[str, Policy] = {
    "trailing_stop_or_sma_negative": trailing_stop_or_sma_negative,
    "sma_derivative_negative": sma_derivative_negative,
    "trailing_stop_hit": trailing_stop_hit,
}


# -----------------------------------------------------------------------------
# State machine
# -----------------------------------------------------------------------------


async def no_op_buy() -> bool:
    return True


async def no_op_sell() -> bool:
    return True


async def _attempt(order: TryOrder, side: str, analysis: TradeAnalysis, index: int) -> bool:
    log = security_logger(
        logger, analysis.security_symbol, side=side, candlestick_index=index
    )
    try:
        succeeded = bool(await order())
    except Exception:
        log.exception("Order attempt failed")
        return False
    if not succeeded:
        log.info("Order attempt declined")
    return succeeded


async def update_trading_algorithm(
    state: TradingAlgorithmState,
    analysis: TradeAnalysis,
    index: int,
    try_buy: TryOrder,
    try_sell: TryOrder,
    *,
    params: AlgorithmParams | None = None,
    entry_policy: Policy | None = None,
    exit_policy: Policy | None = None,
) -> None:
    """Advance `state` by one candle.

    Out of trade, a positive entry signal sets the stop levels and attempts a
    buy; the state only changes when the buy succeeds. In trade, an exit
    signal attempts a sell; otherwise the trailing stop ratchets upwards once
    price reaches the minimum take-profit level. Order failures, including
    exceptions raised by the capabilities, leave the state unchanged so the
    next candle retries.
    """

    if not 0 <= index < analysis.candlestick_count:
        raise IndexError(
            f"Candlestick index {index} out of range for {analysis.candlestick_count} candles"
        )

    params = params or AlgorithmParams()
    entry_policy = entry_policy or sma_derivative_positive
    exit_policy = exit_policy or trailing_stop_or_sma_negative
    price = analysis.closes[index]

    if not state.is_in_trade:
        if index == 0 or not entry_policy(state, analysis, index, params):
            return

        stop_loss = (1 - params.stop_loss_drop_pct) * price
        min_take_profit = (1 + params.min_take_profit_rise_pct) * price
        if await _attempt(try_buy, "BUY", analysis, index):
            state.stop_loss_price = stop_loss
            state.min_take_profit_price = min_take_profit
            state.trailing_stop_loss_price = stop_loss
            state.is_in_trade = True
        return

    if exit_policy(state, analysis, index, params):
        if await _attempt(try_sell, "SELL", analysis, index):
            state.is_in_trade = False
        return

    if price >= state.min_take_profit_price:
        state.trailing_stop_loss_price = max(
            (1 - params.trailing_stop_loss_lag_pct) * price,
            state.min_take_profit_price,
            state.trailing_stop_loss_price,
        )


__all__ = [
    "AlgorithmParams",
    "ENTRY_POLICIES",
    "EXIT_POLICIES",
    "TradingAlgorithmState",
    "four_extrema_pattern",
    "list_extrema",
    "no_op_buy",
    "no_op_sell",
    "sma_derivative_negative",
    "sma_derivative_positive",
    "three_extrema_pattern",
    "trailing_stop_hit",
    "trailing_stop_or_sma_negative",
    "update_trading_algorithm",
]
