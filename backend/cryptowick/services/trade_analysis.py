from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from cryptowick.services import maths
from cryptowick.services.extrema import (
    are_local_maxima,
    are_local_minima,
    consolidate_adjacent_extrema,
    lin_reg_slopes_pct_close,
)

EXTREMA_RADIUS = 3
LIN_REG_LOOKBACK = 8
SMA_FAST_LOOKBACK = 20
SMA_SLOW_LOOKBACK = 50
VOLUME_ABNORMAL_SIGMAS = 3.0
VOLUME_DROP_RATIO = 0.5
BULLISHNESS_BODY_VOLUME_WEIGHT = 0.0005
BULLISHNESS_SLOPE_WEIGHT = 1.0


@dataclass(frozen=True)
class CandlestickSeries:
    """Parallel OHLCV sequences, one element per candle in time order."""

    open_times: Tuple[int, ...]
    opens: Tuple[float, ...]
    highs: Tuple[float, ...]
    lows: Tuple[float, ...]
    closes: Tuple[float, ...]
    volumes: Tuple[float, ...]

    def __post_init__(self) -> None:
        n = len(self.open_times)
        lengths = {
            "opens": len(self.opens),
            "highs": len(self.highs),
            "lows": len(self.lows),
            "closes": len(self.closes),
            "volumes": len(self.volumes),
        }
        bad = {k: v for k, v in lengths.items() if v != n}
        if bad:
            raise ValueError(
                f"Candlestick sequences must all have length {n}; got {bad}"
            )

    @classmethod
    def from_sequences(
        cls,
        open_times: Iterable[int],
        opens: Iterable[float],
        highs: Iterable[float],
        lows: Iterable[float],
        closes: Iterable[float],
        volumes: Iterable[float],
    ) -> "CandlestickSeries":
        return cls(
            open_times=tuple(int(t) for t in open_times),
            opens=tuple(float(v) for v in opens),
            highs=tuple(float(v) for v in highs),
            lows=tuple(float(v) for v in lows),
            closes=tuple(float(v) for v in closes),
            volumes=tuple(float(v) for v in volumes),
        )

    @classmethod
    def from_rows(cls, rows: Sequence[Mapping[str, Any]]) -> "CandlestickSeries":
        """Build from provider rows shaped `{time, open, high, low, close, volumefrom}`.

        `volume` is accepted in place of `volumefrom`.
        """

        return cls.from_sequences(
            (r["time"] for r in rows),
            (r["open"] for r in rows),
            (r["high"] for r in rows),
            (r["low"] for r in rows),
            (r["close"] for r in rows),
            (r["volumefrom"] if "volumefrom" in r else r["volume"] for r in rows),
        )

    @property
    def candlestick_count(self) -> int:
        return len(self.opens)


@dataclass(frozen=True)
class TradeAnalysis:
    security_symbol: str
    exchange_name: str
    timeframe: str

    candles: CandlestickSeries

    heikin_opens: Tuple[float, ...]
    heikin_highs: Tuple[float, ...]
    heikin_lows: Tuple[float, ...]
    heikin_closes: Tuple[float, ...]

    is_local_minima: Tuple[bool, ...]
    is_local_maxima: Tuple[bool, ...]

    lin_reg_slope_pct_close: Tuple[float, ...]
    lin_reg_slope_pct_close_concavity: Tuple[float, ...]
    lin_reg_slope_pct_close_mul_volume_mean: Tuple[float, ...]

    sma20: Tuple[float, ...]
    sma20_derivative_1st: Tuple[float, ...]
    sma20_derivative_2nd: Tuple[float, ...]

    sma50: Tuple[float, ...]
    sma50_derivative_1st: Tuple[float, ...]
    sma50_derivative_2nd: Tuple[float, ...]

    stochastic_close: Tuple[float, ...]
    stochastic_volume: Tuple[float, ...]

    is_volume_abnormal: Tuple[bool, ...]
    did_volume_drop: Tuple[bool, ...]

    bullishness: Tuple[float, ...]

    @property
    def candlestick_count(self) -> int:
        return self.candles.candlestick_count

    @property
    def open_times(self) -> Tuple[int, ...]:
        return self.candles.open_times

    @property
    def opens(self) -> Tuple[float, ...]:
        return self.candles.opens

    @property
    def highs(self) -> Tuple[float, ...]:
        return self.candles.highs

    @property
    def lows(self) -> Tuple[float, ...]:
        return self.candles.lows

    @property
    def closes(self) -> Tuple[float, ...]:
        return self.candles.closes

    @property
    def volumes(self) -> Tuple[float, ...]:
        return self.candles.volumes

    @property
    def last_open_time(self) -> int | None:
        return self.open_times[-1] if self.open_times else None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        candles = data.pop("candles")
        data.update(candles)
        data["candlestick_count"] = self.candlestick_count
        return {k: list(v) if isinstance(v, tuple) else v for k, v in data.items()}


def heikin_ashi(
    candles: CandlestickSeries,
) -> Tuple[List[float], List[float], List[float], List[float]]:
    """Heikin-Ashi open/high/low/close. Each bar depends on the previous one."""

    n = candles.candlestick_count
    if n == 0:
        return [], [], [], []

    o, h, lo, c = candles.opens, candles.highs, candles.lows, candles.closes
    ha_open = [o[0]]
    ha_high = [h[0]]
    ha_low = [lo[0]]
    ha_close = [c[0]]
    for i in range(1, n):
        close_i = (o[i] + h[i] + lo[i] + c[i]) / 4
        open_i = (ha_open[i - 1] + ha_close[i - 1]) / 2
        ha_close.append(close_i)
        ha_open.append(open_i)
        ha_high.append(max(h[i], open_i, close_i))
        ha_low.append(min(lo[i], open_i, close_i))
    return ha_open, ha_high, ha_low, ha_close


def abnormal_volume_flags(volumes: Sequence[float], lookback: int) -> List[bool]:
    """Flag volumes outside mean +/- 3 sigma of the preceding lookback-1 bars."""

    if lookback < 3:
        raise ValueError("Volume anomaly lookback must be >= 3")

    def _is_abnormal(values: Sequence[float], start: int, count: int) -> bool:
        if count < lookback:
            return False
        avg = maths.mean_slice(values, start, count - 1)
        stdev = maths.population_standard_deviation(values, start, count - 1)
        band = VOLUME_ABNORMAL_SIGMAS * stdev
        return not maths.in_range_inclusive(
            values[start + count - 1], avg - band, avg + band
        )

    return maths.lagging_reduce(volumes, lookback, _is_abnormal)


def volume_drop_flags(volumes: Sequence[float]) -> List[bool]:
    return [
        i > 0 and maths.div_no_nan(volumes[i], volumes[i - 1]) < VOLUME_DROP_RATIO
        for i in range(len(volumes))
    ]


def bullishness_scores(
    candles: CandlestickSeries, lin_reg_slope_pct_close: Sequence[float]
) -> List[float]:
    out: List[float] = []
    for i in range(candles.candlestick_count):
        close = candles.closes[i]
        body_pct_close = maths.div_no_nan(close - candles.opens[i], close)
        out.append(
            BULLISHNESS_BODY_VOLUME_WEIGHT * body_pct_close * candles.volumes[i]
            + BULLISHNESS_SLOPE_WEIGHT * lin_reg_slope_pct_close[i]
        )
    return out


def build_trade_analysis(
    candles: CandlestickSeries,
    *,
    security_symbol: str = "",
    exchange_name: str = "",
    timeframe: str = "",
    lin_reg_lookback: int = LIN_REG_LOOKBACK,
) -> TradeAnalysis:
    """Derive every analysis series from a candlestick series."""

    ha_open, ha_high, ha_low, ha_close = heikin_ashi(candles)

    minima, maxima = consolidate_adjacent_extrema(
        candles.lows,
        are_local_minima(EXTREMA_RADIUS, candles.lows),
        candles.highs,
        are_local_maxima(EXTREMA_RADIUS, candles.highs),
    )

    slope_pct = lin_reg_slopes_pct_close(candles.closes, lin_reg_lookback)
    slope_concavity = maths.moving_second_derivative(slope_pct, 1)
    slope_mul_volume = maths.combine_series(
        slope_pct,
        maths.lagging_simple_moving_average(candles.volumes, lin_reg_lookback),
        lambda a, b: a * b,
    )

    sma20 = maths.lagging_simple_moving_average(candles.closes, SMA_FAST_LOOKBACK)
    sma50 = maths.lagging_simple_moving_average(candles.closes, SMA_SLOW_LOOKBACK)

    return TradeAnalysis(
        security_symbol=security_symbol,
        exchange_name=exchange_name,
        timeframe=timeframe,
        candles=candles,
        heikin_opens=tuple(ha_open),
        heikin_highs=tuple(ha_high),
        heikin_lows=tuple(ha_low),
        heikin_closes=tuple(ha_close),
        is_local_minima=tuple(minima),
        is_local_maxima=tuple(maxima),
        lin_reg_slope_pct_close=tuple(slope_pct),
        lin_reg_slope_pct_close_concavity=tuple(slope_concavity),
        lin_reg_slope_pct_close_mul_volume_mean=tuple(slope_mul_volume),
        sma20=tuple(sma20),
        sma20_derivative_1st=tuple(maths.moving_derivative(sma20, 1)),
        sma20_derivative_2nd=tuple(maths.moving_second_derivative(sma20, 1)),
        sma50=tuple(sma50),
        sma50_derivative_1st=tuple(maths.moving_derivative(sma50, 1)),
        sma50_derivative_2nd=tuple(maths.moving_second_derivative(sma50, 1)),
        stochastic_close=tuple(
            maths.lagging_stochastic_oscillator(candles.closes, lin_reg_lookback)
        ),
        stochastic_volume=tuple(
            maths.lagging_stochastic_oscillator(candles.volumes, lin_reg_lookback)
        ),
        is_volume_abnormal=tuple(abnormal_volume_flags(candles.volumes, lin_reg_lookback)),
        did_volume_drop=tuple(volume_drop_flags(candles.volumes)),
        bullishness=tuple(bullishness_scores(candles, slope_pct)),
    )


__all__ = [
    "CandlestickSeries",
    "TradeAnalysis",
    "abnormal_volume_flags",
    "build_trade_analysis",
    "bullishness_scores",
    "heikin_ashi",
    "volume_drop_flags",
]
