from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from cryptowick.schemas.analysis import TradeAnalysisRead, TradeAnalysisRequest
from cryptowick.schemas.candles import candles_to_series
from cryptowick.services.trade_analysis import build_trade_analysis

router = APIRouter()


@router.post("/", response_model=TradeAnalysisRead)
def create_trade_analysis(payload: TradeAnalysisRequest) -> Dict[str, Any]:
    """Compute the full analysis snapshot for the submitted candles."""

    try:
        analysis = build_trade_analysis(
            candles_to_series(payload.candles),
            security_symbol=payload.security_symbol,
            exchange_name=payload.exchange_name,
            timeframe=payload.timeframe,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return analysis.to_dict()


__all__ = ["router"]
