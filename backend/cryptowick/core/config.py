import os
import sys
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env files."""

    app_name: str = "CryptoWick API"
    environment: str = "dev"
    debug: bool = True
    version: str = "0.1.0"
    database_url: str = "sqlite:///./cryptowick.db"
    database_echo: bool = False

    # Securities traded against `quote_symbol` on `exchange_name`, comma separated.
    securities: str = "BTC,ETH"
    quote_symbol: str = "USD"
    exchange_name: str = "Gemini"
    candlestick_interval_hours: int = 1
    refresh_interval_seconds: int = 30
    cryptocompare_base_url: str = "https://min-api.cryptocompare.com"

    replay_history: bool = True
    auto_trade_enabled: bool = False

    sma_derivative_pct_close_threshold: float = 0.04 / 100
    stop_loss_drop_pct: float = 2 / 100
    min_take_profit_rise_pct: float = 1 / 100
    trailing_stop_loss_lag_pct: float = 1 / 100
    extrema_rise_pct_per_candle_threshold: float = 0.05 / 100
    entry_policy: str = "sma_derivative_positive"
    exit_policy: str = "trailing_stop_or_sma_negative"

    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_from_phone_number: str | None = None
    twilio_to_phone_number: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CW_",
        extra="ignore",
    )

    def security_symbols(self) -> list[str]:
        return [s.strip().upper() for s in self.securities.split(",") if s.strip()]

    def dict_for_logging(self) -> dict[str, Any]:
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "debug": self.debug,
            "version": self.version,
            "database_url": self.database_url,
            "securities": self.security_symbols(),
            "auto_trade_enabled": self.auto_trade_enabled,
        }


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    settings = Settings()

    # Use an isolated SQLite DB under pytest so test runs never touch the
    # database that holds real position state. Background trading stays off.
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        settings.database_url = "sqlite:///./cryptowick_test.db"
        settings.auto_trade_enabled = False

    return settings


__all__ = ["Settings", "get_settings"]
