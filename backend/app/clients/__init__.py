"""Exchange clients."""

from app.clients.bybit_rest import BybitRestClient, RateLimiter
from app.clients.bybit_ws_ticker import (
    BybitTickerFeed,
    BybitTickerListener,
    FeedStatus,
    parse_ticker_message,
    topic_for,
)

__all__ = [
    "BybitRestClient",
    "RateLimiter",
    "BybitTickerFeed",
    "BybitTickerListener",
    "FeedStatus",
    "parse_ticker_message",
    "topic_for",
]
