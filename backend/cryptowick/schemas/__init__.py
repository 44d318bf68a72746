from .analysis import TradeAnalysisRead, TradeAnalysisRequest
from .candles import CandleIn, candles_to_series
from .expressions import (
    CustomSeriesRead,
    ExpressionEvaluateRequest,
    ExpressionEvaluateResponse,
    ExpressionParseRequest,
    ExpressionParseResponse,
)
from .trading import TradeEventRead, TradingPositionRead

__all__ = [
    "CandleIn",
    "CustomSeriesRead",
    "ExpressionEvaluateRequest",
    "ExpressionEvaluateResponse",
    "ExpressionParseRequest",
    "ExpressionParseResponse",
    "TradeAnalysisRead",
    "TradeAnalysisRequest",
    "TradeEventRead",
    "TradingPositionRead",
    "candles_to_series",
]
