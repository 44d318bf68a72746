from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import List

import pytest

from cryptowick.clients.cryptocompare import CandleProviderError
from cryptowick.core.config import Settings
from cryptowick.db.base import Base
from cryptowick.db.session import SessionLocal, engine
from cryptowick.services.position_store import list_trade_events, load_state
from cryptowick.services.security_trader import SecurityTrader, TradingRuntime
from cryptowick.services.trade_analysis import (
    CandlestickSeries,
    TradeAnalysis,
    build_trade_analysis,
)
from cryptowick.services.trading_algorithm import four_extrema_pattern, trailing_stop_hit


def setup_module() -> None:  # type: ignore[override]
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


class OrderRecorder:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return True


class Messages:
    def __init__(self) -> None:
        self.sent: List[str] = []

    async def __call__(self, message: str) -> bool:
        self.sent.append(message)
        return True


def _series(closes: List[float], start: int = 0) -> CandlestickSeries:
    n = len(closes)
    return CandlestickSeries.from_sequences(
        [start + 3600 * i for i in range(n)], closes, closes, closes, closes, [1.0] * n
    )


def _analysis(closes: List[float], slopes: List[float]) -> TradeAnalysis:
    analysis = build_trade_analysis(_series(closes), security_symbol="BTCUSD")
    return replace(analysis, sma50_derivative_1st=tuple(slopes))


def test_first_snapshot_replays_history_with_no_ops() -> None:
    trader = SecurityTrader(security_symbol="BTCUSD")
    buy, sell = OrderRecorder(), OrderRecorder()
    notify = Messages()

    events = asyncio.run(
        trader.on_new_analysis(
            _analysis([100.0] * 3, [0.0, 1.0, 1.0]), buy, sell, notify=notify
        )
    )

    assert [(e.kind, e.open_time, e.is_backfill) for e in events] == [
        ("ENTRY", 3600, True)
    ]
    # Backfill never touches the live capabilities or the notifier.
    assert buy.calls == 0
    assert notify.sent == []
    assert trader.state.is_in_trade
    assert trader.last_open_time == 7200


def test_live_transitions_notify_and_duplicates_are_ignored() -> None:
    trader = SecurityTrader(security_symbol="BTCUSD", replay_history=False)
    buy, sell = OrderRecorder(), OrderRecorder()
    notify = Messages()

    first = _analysis([100.0] * 3, [0.0, 0.0, 1.0])
    events = asyncio.run(trader.on_new_analysis(first, buy, sell, notify=notify))
    assert [(e.kind, e.is_backfill) for e in events] == [("ENTRY", False)]
    assert buy.calls == 1
    assert notify.sent == ["Bought BTCUSD at 100.00"]

    # Same newest candle again: only the stored analysis is replaced.
    again = _analysis([100.0] * 3, [0.0, 0.0, -1.0])
    assert asyncio.run(trader.on_new_analysis(again, buy, sell, notify=notify)) == []
    assert trader.analysis is again
    assert sell.calls == 0

    later = _analysis([100.0] * 4, [0.0, 0.0, 1.0, -1.0])
    events = asyncio.run(trader.on_new_analysis(later, buy, sell, notify=notify))
    assert [e.kind for e in events] == ["EXIT"]
    assert sell.calls == 1
    assert notify.sent[-1] == "Sold BTCUSD at 100.00"
    assert not trader.state.is_in_trade


def test_notifier_failure_does_not_break_the_cycle() -> None:
    async def broken_notify(_message: str) -> bool:
        raise RuntimeError("sms gateway down")

    trader = SecurityTrader(security_symbol="BTCUSD", replay_history=False)
    events = asyncio.run(
        trader.on_new_analysis(
            _analysis([100.0] * 2, [0.0, 1.0]),
            OrderRecorder(),
            OrderRecorder(),
            notify=broken_notify,
        )
    )
    assert [e.kind for e in events] == ["ENTRY"]
    assert trader.state.is_in_trade


def test_empty_snapshot_is_ignored() -> None:
    trader = SecurityTrader(security_symbol="BTCUSD")
    empty = build_trade_analysis(CandlestickSeries.from_sequences([], [], [], [], [], []))
    assert asyncio.run(trader.on_new_analysis(empty, OrderRecorder(), OrderRecorder())) == []
    assert trader.last_open_time is None


class FakeCandleClient:
    def __init__(self, candles: CandlestickSeries) -> None:
        self.candles = candles
        self.requests: List[tuple] = []

    async def fetch_candles(self, from_symbol, to_symbol, exchange_name, **kwargs):
        self.requests.append((from_symbol, to_symbol, exchange_name, kwargs))
        if from_symbol == "ETH":
            raise CandleProviderError("no data for ETH")
        return self.candles


def test_refresh_once_persists_state_and_events() -> None:
    settings = Settings(securities="btc, eth", quote_symbol="USD", exchange_name="Gemini")
    runtime = TradingRuntime(settings)
    client = FakeCandleClient(_series([100.0 + i for i in range(60)], start=1_000))

    with SessionLocal() as db:
        results = asyncio.run(runtime.refresh_once(db, client))  # type: ignore[arg-type]

        assert list(results) == ["BTCUSD"]
        assert [(e.kind, e.is_backfill) for e in results["BTCUSD"]] == [("ENTRY", True)]
        assert client.requests[0] == ("BTC", "USD", "Gemini", {"hours_per_candle": 1})

        state, last_open_time = load_state(db, "BTCUSD")
        assert state.is_in_trade
        assert last_open_time == 1_000 + 3600 * 59

        events = list_trade_events(db, security_symbol="BTCUSD")
        assert [(e.kind, e.price, e.open_time) for e in events] == [
            ("ENTRY", 101.0, 1_000 + 3600)
        ]

        # The same candles again produce nothing new.
        again = asyncio.run(runtime.refresh_once(db, client))  # type: ignore[arg-type]
        assert again == {"BTCUSD": []}


def test_new_runtime_resumes_from_persisted_state() -> None:
    settings = Settings(securities="BTC")
    runtime = TradingRuntime(settings)

    with SessionLocal() as db:
        trader = runtime.trader_for(db, "BTCUSD")

    assert trader.state.is_in_trade
    assert trader.last_open_time == 1_000 + 3600 * 59


def test_runtime_resolves_policies_by_name() -> None:
    runtime = TradingRuntime(
        Settings(entry_policy="four_extrema_pattern", exit_policy="trailing_stop_hit")
    )
    assert runtime.entry_policy is four_extrema_pattern
    assert runtime.exit_policy is trailing_stop_hit

    with pytest.raises(ValueError):
        TradingRuntime(Settings(entry_policy="moon_phase"))
