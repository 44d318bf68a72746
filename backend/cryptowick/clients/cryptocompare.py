from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from cryptowick.services.trade_analysis import CandlestickSeries


class CandleProviderError(RuntimeError):
    """Raised when candlesticks cannot be loaded from the provider."""


class CryptoCompareClient:
    """Async client for CryptoCompare aggregated OHLCV history."""

    def __init__(
        self,
        *,
        base_url: str = "https://min-api.cryptocompare.com",
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_candles(
        self,
        from_symbol: str,
        to_symbol: str,
        exchange_name: str,
        *,
        hours_per_candle: Optional[int] = None,
        minutes_per_candle: Optional[int] = None,
    ) -> CandlestickSeries:
        if (hours_per_candle is None) == (minutes_per_candle is None):
            raise ValueError("Pass exactly one of hours_per_candle or minutes_per_candle")

        if hours_per_candle is not None:
            endpoint, aggregate = "histohour", hours_per_candle
        else:
            endpoint, aggregate = "histominute", minutes_per_candle

        url = f"{self.base_url}/data/{endpoint}"
        params: Dict[str, Any] = {
            "fsym": from_symbol,
            "tsym": to_symbol,
            "aggregate": aggregate,
            "e": exchange_name,
        }
        try:
            resp = await self._client.get(
                url, params=params, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as exc:
            raise CandleProviderError(str(exc)) from exc
        if resp.status_code >= 400:
            raise CandleProviderError(f"HTTP {resp.status_code}: {resp.text}")

        payload = resp.json()
        if not isinstance(payload, dict) or payload.get("Response") != "Success":
            message = payload.get("Message") if isinstance(payload, dict) else None
            raise CandleProviderError(
                f"CryptoCompare rejected the request: {message or 'unknown error'}"
            )

        rows = payload.get("Data")
        # Newer API versions nest the rows one level deeper.
        if isinstance(rows, dict):
            rows = rows.get("Data")
        if not isinstance(rows, list):
            raise CandleProviderError("CryptoCompare response has no candle data")

        candles: List[Dict[str, Any]] = [r for r in rows if isinstance(r, dict)]
        try:
            return CandlestickSeries.from_rows(candles)
        except (KeyError, TypeError, ValueError) as exc:
            raise CandleProviderError(f"Malformed candle row: {exc}") from exc


__all__ = ["CandleProviderError", "CryptoCompareClient"]
