"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Bybit public API (USDT perpetuals)
    rest_base_url: str = "https://api.bybit.com"
    ws_url: str = "wss://stream.bybit.com/v5/public/linear"
    category: str = "linear"
    http_timeout: float = 10.0
    requests_per_minute: int = 600

    # Watchlist and candles
    symbols: list[str] = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "XRPUSDT", "DOGEUSDT"]
    interval: str = "5"
    candle_limit: int = Field(200, ge=50, le=240)
    fetch_instrument_info: bool = True

    # Recompute triggers (seconds)
    debounce_seconds: float = 3.0
    refresh_seconds: float = 60.0

    # Streaming feed (seconds)
    heartbeat_seconds: float = 10.0
    min_reconnect_delay: float = 1.0
    max_reconnect_delay: float = 15.0

    # Persistence
    state_path: str = "state.json"
    trading_config_path: str = "trading.yaml"

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
