from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .candles import CandleIn


class ExpressionParseRequest(BaseModel):
    formula: str = Field(..., max_length=2000)


class ExpressionParseResponse(BaseModel):
    ok: bool
    ast: Optional[Dict[str, Any]] = None
    errors: List[str] = Field(default_factory=list)


class ExpressionEvaluateRequest(BaseModel):
    formula: str = Field(..., max_length=2000)
    candles: List[CandleIn] = Field(default_factory=list)


class ExpressionEvaluateResponse(BaseModel):
    ok: bool
    values: Optional[List[float]] = None
    errors: List[str] = Field(default_factory=list)


class CustomSeriesRead(BaseModel):
    title: str
    formula: Optional[str] = None
    height: int


__all__ = [
    "CustomSeriesRead",
    "ExpressionEvaluateRequest",
    "ExpressionEvaluateResponse",
    "ExpressionParseRequest",
    "ExpressionParseResponse",
]
