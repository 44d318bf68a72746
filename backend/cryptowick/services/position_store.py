from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from cryptowick.models import TradeEventRecord, TradingPosition
from cryptowick.services.trading_algorithm import TradingAlgorithmState


@dataclass(frozen=True)
class TradeEvent:
    security_symbol: str
    kind: str  # ENTRY or EXIT
    price: float
    open_time: int
    is_backfill: bool = False


def _get_row(db: Session, security_symbol: str) -> Optional[TradingPosition]:
    return (
        db.query(TradingPosition)
        .filter(TradingPosition.security_symbol == security_symbol)
        .one_or_none()
    )


def load_state(
    db: Session, security_symbol: str
) -> tuple[TradingAlgorithmState, Optional[int]]:
    """Return the persisted state and last processed open time for a security.

    Unknown securities start flat with no processed candles.
    """

    row = _get_row(db, security_symbol)
    if row is None:
        return TradingAlgorithmState(), None
    state = TradingAlgorithmState(
        is_in_trade=bool(row.is_in_trade),
        stop_loss_price=float(row.stop_loss_price),
        min_take_profit_price=float(row.min_take_profit_price),
        trailing_stop_loss_price=float(row.trailing_stop_loss_price),
    )
    return state, row.last_open_time


def save_state(
    db: Session,
    security_symbol: str,
    state: TradingAlgorithmState,
    *,
    last_open_time: Optional[int] = None,
) -> TradingPosition:
    row = _get_row(db, security_symbol)
    if row is None:
        row = TradingPosition(security_symbol=security_symbol)
        db.add(row)
    row.is_in_trade = state.is_in_trade
    row.stop_loss_price = state.stop_loss_price
    row.min_take_profit_price = state.min_take_profit_price
    row.trailing_stop_loss_price = state.trailing_stop_loss_price
    if last_open_time is not None:
        row.last_open_time = last_open_time
    db.commit()
    db.refresh(row)
    return row


def record_trade_event(db: Session, event: TradeEvent) -> TradeEventRecord:
    row = TradeEventRecord(
        security_symbol=event.security_symbol,
        kind=event.kind,
        price=event.price,
        open_time=event.open_time,
        is_backfill=event.is_backfill,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_trade_events(
    db: Session,
    *,
    security_symbol: Optional[str] = None,
    limit: int = 100,
) -> List[TradeEventRecord]:
    query = db.query(TradeEventRecord)
    if security_symbol is not None:
        query = query.filter(TradeEventRecord.security_symbol == security_symbol)
    return (
        query.order_by(TradeEventRecord.open_time.desc(), TradeEventRecord.id.desc())
        .limit(limit)
        .all()
    )


__all__ = [
    "TradeEvent",
    "list_trade_events",
    "load_state",
    "record_trade_event",
    "save_state",
]
