from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import List

import pytest

from cryptowick.core.config import Settings
from cryptowick.services.trade_analysis import (
    CandlestickSeries,
    TradeAnalysis,
    build_trade_analysis,
)
from cryptowick.services.trading_algorithm import (
    AlgorithmParams,
    TradingAlgorithmState,
    four_extrema_pattern,
    list_extrema,
    sma_derivative_negative,
    sma_derivative_positive,
    three_extrema_pattern,
    trailing_stop_or_sma_negative,
    update_trading_algorithm,
)


class OrderRecorder:
    """Fake order capability that records calls and returns a fixed outcome."""

    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def _analysis(closes: List[float], sma50_slopes: List[float]) -> TradeAnalysis:
    n = len(closes)
    analysis = build_trade_analysis(
        CandlestickSeries.from_sequences(
            range(n), closes, closes, closes, closes, [1.0] * n
        ),
        security_symbol="BTCUSD",
    )
    return replace(analysis, sma50_derivative_1st=tuple(sma50_slopes))


def _step(state, analysis, index, buy, sell, **kwargs) -> None:
    asyncio.run(update_trading_algorithm(state, analysis, index, buy, sell, **kwargs))


def test_entry_sets_levels_from_close() -> None:
    closes = [100.0] * 12
    closes[10] = 200.0
    slopes = [0.0] * 12
    slopes[10] = 0.1
    analysis = _analysis(closes, slopes)
    state = TradingAlgorithmState()
    buy, sell = OrderRecorder(), OrderRecorder()

    _step(state, analysis, 10, buy, sell)

    assert buy.calls == 1
    assert sell.calls == 0
    assert state.is_in_trade
    assert state.stop_loss_price == pytest.approx(196.0)
    assert state.min_take_profit_price == pytest.approx(202.0)
    assert state.trailing_stop_loss_price == pytest.approx(196.0)


def test_no_entry_below_threshold_or_on_first_candle() -> None:
    analysis = _analysis([100.0] * 3, [1.0, 0.01, 0.0])
    state = TradingAlgorithmState()
    buy, sell = OrderRecorder(), OrderRecorder()

    _step(state, analysis, 0, buy, sell)
    _step(state, analysis, 1, buy, sell)

    assert buy.calls == 0
    assert state == TradingAlgorithmState()


@pytest.mark.parametrize(
    "buy",
    [OrderRecorder(result=False), OrderRecorder(error=RuntimeError("exchange down"))],
)
def test_failed_buy_leaves_state_untouched(buy: OrderRecorder) -> None:
    analysis = _analysis([100.0] * 3, [0.0, 1.0, 1.0])
    state = TradingAlgorithmState()

    _step(state, analysis, 1, buy, OrderRecorder())

    assert buy.calls == 1
    assert state == TradingAlgorithmState()


def test_trailing_stop_hit_sells_and_clears_trade() -> None:
    analysis = _analysis([100.0, 99.0], [0.0, 0.0])
    state = TradingAlgorithmState(
        is_in_trade=True,
        stop_loss_price=98.0,
        min_take_profit_price=101.0,
        trailing_stop_loss_price=100.0,
    )
    buy, sell = OrderRecorder(), OrderRecorder()

    _step(state, analysis, 1, buy, sell)

    assert sell.calls == 1
    assert buy.calls == 0
    assert not state.is_in_trade


def test_failed_sell_keeps_trade_open() -> None:
    analysis = _analysis([100.0, 99.0], [0.0, 0.0])
    state = TradingAlgorithmState(is_in_trade=True, trailing_stop_loss_price=100.0)
    sell = OrderRecorder(result=False)

    _step(state, analysis, 1, OrderRecorder(), sell)

    assert sell.calls == 1
    assert state.is_in_trade
    assert state.trailing_stop_loss_price == 100.0


def test_trailing_stop_ratchets_up_then_exits() -> None:
    closes = [100.0, 100.0, 103.0, 105.0, 104.0, 103.0]
    analysis = _analysis(closes, [0.0, 1.0, 0.0, 0.0, 0.0, 0.0])
    state = TradingAlgorithmState()
    buy, sell = OrderRecorder(), OrderRecorder()

    _step(state, analysis, 1, buy, sell)
    assert state.trailing_stop_loss_price == pytest.approx(98.0)

    _step(state, analysis, 2, buy, sell)
    assert state.trailing_stop_loss_price == pytest.approx(0.99 * 103.0)

    _step(state, analysis, 3, buy, sell)
    assert state.trailing_stop_loss_price == pytest.approx(0.99 * 105.0)

    # A lower close never lowers the trailing stop.
    _step(state, analysis, 4, buy, sell)
    assert state.trailing_stop_loss_price == pytest.approx(0.99 * 105.0)
    assert state.is_in_trade

    _step(state, analysis, 5, buy, sell)
    assert sell.calls == 1
    assert not state.is_in_trade


def test_trailing_stop_waits_for_min_take_profit() -> None:
    analysis = _analysis([100.0, 100.0, 100.5], [0.0, 1.0, 0.0])
    state = TradingAlgorithmState()
    buy, sell = OrderRecorder(), OrderRecorder()

    _step(state, analysis, 1, buy, sell)
    _step(state, analysis, 2, buy, sell)

    assert state.is_in_trade
    assert state.trailing_stop_loss_price == pytest.approx(98.0)


def test_negative_sma_derivative_exits() -> None:
    analysis = _analysis([100.0, 100.0], [0.0, -1.0])
    state = TradingAlgorithmState(is_in_trade=True, trailing_stop_loss_price=90.0)
    sell = OrderRecorder()

    _step(state, analysis, 1, OrderRecorder(), sell)

    assert sell.calls == 1
    assert not state.is_in_trade


def test_index_out_of_range_raises() -> None:
    analysis = _analysis([100.0, 100.0], [0.0, 0.0])
    with pytest.raises(IndexError):
        _step(TradingAlgorithmState(), analysis, 2, OrderRecorder(), OrderRecorder())
    with pytest.raises(IndexError):
        _step(TradingAlgorithmState(), analysis, -1, OrderRecorder(), OrderRecorder())


def test_custom_params_and_policies() -> None:
    analysis = _analysis([100.0] * 3, [0.0, 0.01, -0.01])
    params = AlgorithmParams(sma_derivative_pct_close_threshold=0.00005)
    state = TradingAlgorithmState()

    assert sma_derivative_positive(state, analysis, 1, params)
    assert not sma_derivative_positive(state, analysis, 1, AlgorithmParams())
    assert sma_derivative_negative(state, analysis, 2, params)
    assert trailing_stop_or_sma_negative(state, analysis, 2, params)

    _step(state, analysis, 1, OrderRecorder(), OrderRecorder(), params=params)
    assert state.is_in_trade


def _swing_analysis(lows: List[float], highs: List[float]) -> TradeAnalysis:
    n = len(lows)
    closes = [(lo + hi) / 2 for lo, hi in zip(lows, highs)]
    return build_trade_analysis(
        CandlestickSeries.from_sequences(range(n), closes, highs, lows, closes, [1.0] * n)
    )


def test_extrema_patterns() -> None:
    # Highs peak at 3 and 11, lows bottom at 7 and 15; both swings rise.
    highs = [10, 11, 12, 20, 12, 11, 10, 9, 10, 11, 12, 22, 12, 11, 10, 9, 10, 11, 12]
    lows = [h - 5.0 for h in highs]
    lows[7] = 2.0
    lows[15] = 3.0
    analysis = _swing_analysis([float(v) for v in lows], [float(v) for v in highs])

    kinds = [(e.kind.value, e.index) for e in list_extrema(analysis, 18)]
    assert kinds[-4:] == [("MAXIMA", 3), ("MINIMA", 7), ("MAXIMA", 11), ("MINIMA", 15)]

    params = AlgorithmParams()
    state = TradingAlgorithmState()
    assert four_extrema_pattern(state, analysis, 18, params)
    assert not four_extrema_pattern(state, analysis, 14, params)
    assert three_extrema_pattern(state, analysis, 18, params)
    assert not three_extrema_pattern(state, analysis, 14, params)


def test_params_from_settings_carry_every_threshold() -> None:
    settings = Settings(
        sma_derivative_pct_close_threshold=0.001,
        stop_loss_drop_pct=0.03,
        min_take_profit_rise_pct=0.02,
        trailing_stop_loss_lag_pct=0.015,
        extrema_rise_pct_per_candle_threshold=0.1,
    )
    params = AlgorithmParams.from_settings(settings)
    assert params == AlgorithmParams(
        sma_derivative_pct_close_threshold=0.001,
        stop_loss_drop_pct=0.03,
        min_take_profit_rise_pct=0.02,
        trailing_stop_loss_lag_pct=0.015,
        extrema_rise_pct_per_candle_threshold=0.1,
    )
    assert AlgorithmParams.from_settings(Settings()) == AlgorithmParams()


def test_extrema_threshold_gates_the_swing_patterns() -> None:
    highs = [10, 11, 12, 20, 12, 11, 10, 9, 10, 11, 12, 22, 12, 11, 10, 9, 10, 11, 12]
    lows = [h - 5.0 for h in highs]
    lows[7] = 2.0
    lows[15] = 3.0
    analysis = _swing_analysis([float(v) for v in lows], [float(v) for v in highs])

    # The highs rise 1.25 % per candle between the two peaks.
    strict = AlgorithmParams.from_settings(
        Settings(extrema_rise_pct_per_candle_threshold=0.02)
    )
    state = TradingAlgorithmState()
    assert not four_extrema_pattern(state, analysis, 18, strict)
    assert three_extrema_pattern(state, analysis, 18, strict)
