from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from cryptowick.db.base import Base
from cryptowick.db.types import UTCDateTime, utcnow


class TradingPosition(Base):
    """Persisted trading-algorithm state, one row per security."""

    __tablename__ = "trading_positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    security_symbol: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False
    )
    is_in_trade: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stop_loss_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    min_take_profit_price: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    trailing_stop_loss_price: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    last_open_time: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class TradeEventRecord(Base):
    __tablename__ = "trade_events"

    __table_args__ = (
        CheckConstraint(
            "kind IN ('ENTRY', 'EXIT')",
            name="ck_trade_events_kind",
        ),
        Index("ix_trade_events_symbol_open_time", "security_symbol", "open_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    security_symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    kind: Mapped[str] = mapped_column(String(8), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    open_time: Mapped[int] = mapped_column(Integer, nullable=False)
    is_backfill: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )


__all__ = ["TradingPosition", "TradeEventRecord"]
