from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TradingPositionRead(BaseModel):
    security_symbol: str
    is_in_trade: bool
    stop_loss_price: float
    min_take_profit_price: float
    trailing_stop_loss_price: float
    last_open_time: Optional[int]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TradeEventRead(BaseModel):
    id: int
    security_symbol: str
    kind: str
    price: float
    open_time: int
    is_backfill: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


__all__ = ["TradeEventRead", "TradingPositionRead"]
