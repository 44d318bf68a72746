from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from .candles import CandleIn


class TradeAnalysisRequest(BaseModel):
    security_symbol: str = ""
    exchange_name: str = ""
    timeframe: str = ""
    candles: List[CandleIn] = Field(default_factory=list)


class TradeAnalysisRead(BaseModel):
    security_symbol: str
    exchange_name: str
    timeframe: str
    candlestick_count: int

    open_times: List[int]
    opens: List[float]
    highs: List[float]
    lows: List[float]
    closes: List[float]
    volumes: List[float]

    heikin_opens: List[float]
    heikin_highs: List[float]
    heikin_lows: List[float]
    heikin_closes: List[float]

    is_local_minima: List[bool]
    is_local_maxima: List[bool]

    lin_reg_slope_pct_close: List[float]
    lin_reg_slope_pct_close_concavity: List[float]
    lin_reg_slope_pct_close_mul_volume_mean: List[float]

    sma20: List[float]
    sma20_derivative_1st: List[float]
    sma20_derivative_2nd: List[float]
    sma50: List[float]
    sma50_derivative_1st: List[float]
    sma50_derivative_2nd: List[float]

    stochastic_close: List[float]
    stochastic_volume: List[float]

    is_volume_abnormal: List[bool]
    did_volume_drop: List[bool]
    bullishness: List[float]


__all__ = ["TradeAnalysisRead", "TradeAnalysisRequest"]
