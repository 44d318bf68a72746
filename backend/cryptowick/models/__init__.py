from .trading import TradeEventRecord, TradingPosition

__all__ = [
    "TradeEventRecord",
    "TradingPosition",
]
