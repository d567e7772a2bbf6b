"""Bybit v5 REST API client for candles, instrument precision and market metrics."""

import asyncio
import logging
import math
from typing import Any

import httpx

from core.errors import FetchError
from core.models import MAX_CANDLES, CandleSeries, InstrumentInfo, MarketMetrics

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 600):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


class BybitRestClient:
    """Bybit public market REST client (no authentication needed)."""

    BASE_URL = "https://api.bybit.com"

    def __init__(
        self,
        base_url: str = BASE_URL,
        category: str = "linear",
        timeout: float = 10.0,
        calls_per_minute: int = 600,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.category = category
        self.timeout = timeout
        self.rate_limiter = RateLimiter(calls_per_minute)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        endpoint: str,
        params: dict[str, Any],
        symbol: str | None = None,
    ) -> dict[str, Any]:
        """
        GET an endpoint and return the ``result`` object.

        Raises:
            FetchError: non-success HTTP status, transport failure,
                non-zero ``retCode`` or a body that is not a JSON object
        """
        await self.rate_limiter.acquire()
        client = await self._get_client()
        try:
            response = await client.get(endpoint, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"{endpoint} failed", symbol=symbol, status=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"{endpoint} failed: {e}", symbol=symbol) from e
        except ValueError as e:
            raise FetchError(f"{endpoint} returned invalid JSON", symbol=symbol) from e

        if not isinstance(data, dict):
            raise FetchError(f"{endpoint} returned unexpected payload", symbol=symbol)
        if data.get("retCode", 0) != 0:
            raise FetchError(
                f"{endpoint} retCode={data.get('retCode')} {data.get('retMsg', '')}".rstrip(),
                symbol=symbol,
            )
        result = data.get("result")
        if not isinstance(result, dict):
            raise FetchError(f"{endpoint} missing result", symbol=symbol)
        return result

    async def get_klines(
        self,
        symbol: str,
        interval: str,
        limit: int = 200,
    ) -> CandleSeries:
        """
        Fetch the most recent candles.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")
            interval: Bybit interval code (e.g., "5")
            limit: Number of bars, clamped to 1..240

        Returns:
            Oldest-first CandleSeries
        """
        params = {
            "category": self.category,
            "symbol": symbol,
            "interval": interval,
            "limit": max(1, min(limit, MAX_CANDLES)),
        }
        result = await self._request("/v5/market/kline", params, symbol)
        rows = result.get("list")
        if not isinstance(rows, list):
            raise FetchError("kline payload has no list", symbol=symbol)
        try:
            return CandleSeries.from_newest_first(symbol, interval, rows)
        except (IndexError, TypeError, ValueError) as e:
            raise FetchError(f"malformed kline row: {e}", symbol=symbol) from e

    async def get_instrument_info(self, symbol: str) -> InstrumentInfo:
        """Fetch price tick size and quantity step for a symbol."""
        params = {"category": self.category, "symbol": symbol}
        result = await self._request("/v5/market/instruments-info", params, symbol)
        try:
            item = result["list"][0]
            return InstrumentInfo(
                symbol=symbol,
                tick_size=float(item["priceFilter"]["tickSize"]),
                lot_size=float(item["lotSizeFilter"]["qtyStep"]),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise FetchError(f"malformed instrument info: {e}", symbol=symbol) from e

    async def get_funding_rate(self, symbol: str) -> float:
        """Fetch the current funding rate from the ticker snapshot."""
        params = {"category": self.category, "symbol": symbol}
        result = await self._request("/v5/market/tickers", params, symbol)
        try:
            return float(result["list"][0]["fundingRate"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise FetchError(f"malformed ticker: {e}", symbol=symbol) from e

    async def get_taker_ratio(self, symbol: str, limit: int = 200) -> float:
        """Buy size over sell size across the most recent public trades."""
        params = {"category": self.category, "symbol": symbol, "limit": limit}
        result = await self._request("/v5/market/recent-trade", params, symbol)
        buy = sell = 0.0
        try:
            for trade in result["list"]:
                size = float(trade["size"])
                if trade["side"] == "Buy":
                    buy += size
                else:
                    sell += size
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"malformed trade: {e}", symbol=symbol) from e
        if sell <= 0:
            raise FetchError("no sell volume in recent trades", symbol=symbol)
        return buy / sell

    async def get_open_interest_delta(self, symbol: str) -> float:
        """Relative change between the two newest 5-minute open-interest samples."""
        params = {
            "category": self.category,
            "symbol": symbol,
            "intervalTime": "5min",
            "limit": 2,
        }
        result = await self._request("/v5/market/open-interest", params, symbol)
        try:
            # Newest first
            latest, previous = (float(row["openInterest"]) for row in result["list"][:2])
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"malformed open interest: {e}", symbol=symbol) from e
        if previous <= 0 or not math.isfinite(latest):
            raise FetchError("open interest unavailable", symbol=symbol)
        return (latest - previous) / previous

    async def get_market_metrics(self, symbol: str) -> MarketMetrics:
        """Fetch funding, taker ratio and OI delta concurrently.

        A failing metric becomes None instead of failing the whole call.
        """
        results = await asyncio.gather(
            self.get_funding_rate(symbol),
            self.get_taker_ratio(symbol),
            self.get_open_interest_delta(symbol),
            return_exceptions=True,
        )
        values: list[float | None] = []
        for name, result in zip(("funding", "taker_ratio", "oi_delta"), results):
            if isinstance(result, FetchError):
                logger.debug(f"{symbol}: {name} unavailable: {result}")
                values.append(None)
            elif isinstance(result, BaseException):
                raise result
            else:
                values.append(result)
        return MarketMetrics(
            funding_rate=values[0],
            taker_ratio=values[1],
            oi_delta=values[2],
        )
