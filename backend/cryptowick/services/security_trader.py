from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from threading import Event, Thread
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from cryptowick.clients.cryptocompare import CandleProviderError, CryptoCompareClient
from cryptowick.clients.twilio import TwilioNotifier
from cryptowick.core.config import Settings, get_settings
from cryptowick.core.logging import security_logger
from cryptowick.db.session import session_scope
from cryptowick.services.position_store import (
    TradeEvent,
    load_state,
    record_trade_event,
    save_state,
)
from cryptowick.services.trade_analysis import TradeAnalysis, build_trade_analysis
from cryptowick.services.trading_algorithm import (
    ENTRY_POLICIES,
    EXIT_POLICIES,
    AlgorithmParams,
    Policy,
    TradingAlgorithmState,
    TryOrder,
    no_op_buy,
    no_op_sell,
    update_trading_algorithm,
)

logger = logging.getLogger(__name__)

Notify = Callable[[str], Awaitable[Any]]
CapabilityFactory = Callable[[str], Tuple[TryOrder, TryOrder]]

_scheduler_started = False
_scheduler_stop_event = Event()


def _lookup_policy(registry: Dict[str, Policy], name: str, kind: str) -> Policy:
    try:
        return registry[name]
    except KeyError:
        known = ", ".join(sorted(registry))
        raise ValueError(f"Unknown {kind} policy '{name}'; expected one of: {known}") from None


def paper_capabilities(_security_symbol: str) -> Tuple[TryOrder, TryOrder]:
    """Buy/sell capabilities that always fill; no exchange is contacted."""

    return no_op_buy, no_op_sell


@dataclass
class SecurityTrader:
    """Owns one security's latest analysis and trading-algorithm state."""

    security_symbol: str
    state: TradingAlgorithmState = field(default_factory=TradingAlgorithmState)
    params: AlgorithmParams = field(default_factory=AlgorithmParams)
    entry_policy: Optional[Policy] = None
    exit_policy: Optional[Policy] = None
    replay_history: bool = True
    last_open_time: Optional[int] = None
    analysis: Optional[TradeAnalysis] = None

    async def _step(
        self,
        analysis: TradeAnalysis,
        index: int,
        try_buy: TryOrder,
        try_sell: TryOrder,
        *,
        is_backfill: bool,
    ) -> Optional[TradeEvent]:
        was_in_trade = self.state.is_in_trade
        await update_trading_algorithm(
            self.state,
            analysis,
            index,
            try_buy,
            try_sell,
            params=self.params,
            entry_policy=self.entry_policy,
            exit_policy=self.exit_policy,
        )
        if was_in_trade == self.state.is_in_trade:
            return None
        return TradeEvent(
            security_symbol=self.security_symbol,
            kind="ENTRY" if self.state.is_in_trade else "EXIT",
            price=analysis.closes[index],
            open_time=analysis.open_times[index],
            is_backfill=is_backfill,
        )

    async def on_new_analysis(
        self,
        analysis: TradeAnalysis,
        try_buy: TryOrder,
        try_sell: TryOrder,
        notify: Optional[Notify] = None,
    ) -> List[TradeEvent]:
        """Feed a fresh snapshot; returns the entry/exit events it produced.

        Snapshots whose newest candle was already processed only replace the
        stored analysis. The first snapshot optionally replays every earlier
        candle with no-op capabilities to seed the state, then the newest
        candle is stepped with the real capabilities.
        """

        newest = analysis.last_open_time
        if newest is None:
            return []

        is_first = self.last_open_time is None
        if not is_first and newest <= self.last_open_time:  # type: ignore[operator]
            self.analysis = analysis
            return []

        events: List[TradeEvent] = []
        if is_first and self.replay_history:
            for i in range(analysis.candlestick_count - 1):
                event = await self._step(
                    analysis, i, no_op_buy, no_op_sell, is_backfill=True
                )
                if event is not None:
                    events.append(event)

        last_index = analysis.candlestick_count - 1
        event = await self._step(
            analysis, last_index, try_buy, try_sell, is_backfill=False
        )
        if event is not None:
            events.append(event)
            if notify is not None:
                await self._notify(notify, event)

        self.analysis = analysis
        self.last_open_time = newest
        return events

    async def _notify(self, notify: Notify, event: TradeEvent) -> None:
        verb = "Bought" if event.kind == "ENTRY" else "Sold"
        message = f"{verb} {self.security_symbol} at {event.price:.2f}"
        try:
            await notify(message)
        except Exception:
            security_logger(logger, self.security_symbol).exception(
                "Trade alert failed", extra={"extra": {"alert": message}}
            )


class TradingRuntime:
    """Per-process collection of security traders driven by refresh cycles."""

    def __init__(
        self,
        settings: Settings,
        *,
        capabilities: CapabilityFactory = paper_capabilities,
        entry_policy: Optional[Policy] = None,
        exit_policy: Optional[Policy] = None,
    ) -> None:
        self.settings = settings
        self.capabilities = capabilities
        self.entry_policy = entry_policy or _lookup_policy(
            ENTRY_POLICIES, settings.entry_policy, "entry"
        )
        self.exit_policy = exit_policy or _lookup_policy(
            EXIT_POLICIES, settings.exit_policy, "exit"
        )
        self.traders: Dict[str, SecurityTrader] = {}

    def trader_for(self, db: Session, security_symbol: str) -> SecurityTrader:
        trader = self.traders.get(security_symbol)
        if trader is None:
            state, last_open_time = load_state(db, security_symbol)
            trader = SecurityTrader(
                security_symbol=security_symbol,
                state=state,
                params=AlgorithmParams.from_settings(self.settings),
                entry_policy=self.entry_policy,
                exit_policy=self.exit_policy,
                replay_history=self.settings.replay_history,
                last_open_time=last_open_time,
            )
            self.traders[security_symbol] = trader
        return trader

    async def refresh_once(
        self,
        db: Session,
        client: CryptoCompareClient,
        *,
        notify: Optional[Notify] = None,
    ) -> Dict[str, List[TradeEvent]]:
        """Fetch, analyse and step every configured security, one at a time."""

        settings = self.settings
        hours = settings.candlestick_interval_hours
        results: Dict[str, List[TradeEvent]] = {}

        for base in settings.security_symbols():
            security_symbol = f"{base}{settings.quote_symbol}"
            log = security_logger(
                logger, security_symbol, exchange_name=settings.exchange_name
            )
            try:
                candles = await client.fetch_candles(
                    base,
                    settings.quote_symbol,
                    settings.exchange_name,
                    hours_per_candle=hours,
                )
            except CandleProviderError:
                log.exception("Skipping security this cycle; candle fetch failed")
                continue

            analysis = build_trade_analysis(
                candles,
                security_symbol=security_symbol,
                exchange_name=settings.exchange_name,
                timeframe=f"{hours}h",
            )
            trader = self.trader_for(db, security_symbol)
            try_buy, try_sell = self.capabilities(security_symbol)
            events = await trader.on_new_analysis(
                analysis, try_buy, try_sell, notify=notify
            )

            for event in events:
                record_trade_event(db, event)
            save_state(
                db,
                security_symbol,
                trader.state,
                last_open_time=trader.last_open_time,
            )
            results[security_symbol] = events

            if events:
                log.info(
                    "Trading algorithm transitions",
                    extra={
                        "extra": {
                            "events": [e.kind for e in events],
                            "is_in_trade": trader.state.is_in_trade,
                        }
                    },
                )

        return results


async def _run_refresh_cycle(runtime: TradingRuntime) -> None:
    settings = runtime.settings
    client = CryptoCompareClient(base_url=settings.cryptocompare_base_url)
    notifier = TwilioNotifier.from_settings(settings)
    try:
        with session_scope() as db:
            await runtime.refresh_once(db, client, notify=notifier.notify)
    finally:
        await client.aclose()
        await notifier.aclose()


def _trading_refresh_loop(stop_event: Event) -> None:  # pragma: no cover - background loop
    runtime = TradingRuntime(get_settings())
    interval = max(int(runtime.settings.refresh_interval_seconds), 1)

    while not stop_event.is_set():
        try:
            asyncio.run(_run_refresh_cycle(runtime))
        except Exception:
            logger.exception("Trading refresh cycle failed")
        stop_event.wait(timeout=interval)


def schedule_trading_refresh() -> None:
    """Start a background thread that periodically refreshes every security."""

    global _scheduler_started, _scheduler_stop_event
    if _scheduler_started:
        return
    _scheduler_started = True
    _scheduler_stop_event = Event()

    thread = Thread(
        target=_trading_refresh_loop,
        args=(_scheduler_stop_event,),
        name="trading-refresh",
        daemon=True,
    )
    thread.start()


def stop_trading_refresh() -> None:
    """Stop scheduling refresh cycles; an in-flight cycle runs to completion."""

    global _scheduler_started
    _scheduler_stop_event.set()
    _scheduler_started = False


__all__ = [
    "SecurityTrader",
    "TradingRuntime",
    "paper_capabilities",
    "schedule_trading_refresh",
    "stop_trading_refresh",
]
