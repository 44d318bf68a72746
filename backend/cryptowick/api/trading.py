from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cryptowick.db.session import get_db
from cryptowick.models import TradeEventRecord, TradingPosition
from cryptowick.schemas.trading import TradeEventRead, TradingPositionRead
from cryptowick.services.position_store import list_trade_events

# ruff: noqa: B008  # FastAPI dependency injection pattern

router = APIRouter()


@router.get("/positions", response_model=List[TradingPositionRead])
def list_positions(db: Session = Depends(get_db)) -> List[TradingPosition]:
    """Return the persisted trading-algorithm state of every security."""

    return db.query(TradingPosition).order_by(TradingPosition.security_symbol).all()


@router.get("/events", response_model=List[TradeEventRead])
def list_events(
    security_symbol: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> List[TradeEventRecord]:
    """Return recorded entry/exit events, most recent candle first."""

    symbol = security_symbol.upper() if security_symbol else None
    return list_trade_events(db, security_symbol=symbol, limit=limit)


__all__ = ["router"]
