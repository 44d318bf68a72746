from __future__ import annotations

from typing import List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from cryptowick.services.trade_analysis import CandlestickSeries


class CandleIn(BaseModel):
    """One provider candle; `volumefrom` is the base-currency volume."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volumefrom: float = Field(
        default=0.0, validation_alias=AliasChoices("volumefrom", "volume")
    )

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def candles_to_series(candles: List[CandleIn]) -> CandlestickSeries:
    return CandlestickSeries.from_sequences(
        (c.time for c in candles),
        (c.open for c in candles),
        (c.high for c in candles),
        (c.low for c in candles),
        (c.close for c in candles),
        (c.volumefrom for c in candles),
    )


__all__ = ["CandleIn", "candles_to_series"]
