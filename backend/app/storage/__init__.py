"""State storage layer."""

from app.storage.price_cache import PriceCache
from app.storage.state_store import (
    DEFAULT_WATCHLIST,
    SUPPORTED_INTERVALS,
    AppState,
    JsonFileStateStore,
    MemoryStateStore,
    StateStore,
    normalize_symbol,
)

__all__ = [
    "PriceCache",
    "DEFAULT_WATCHLIST",
    "SUPPORTED_INTERVALS",
    "AppState",
    "JsonFileStateStore",
    "MemoryStateStore",
    "StateStore",
    "normalize_symbol",
]
