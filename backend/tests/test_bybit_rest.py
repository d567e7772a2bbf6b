"""Tests for the Bybit REST client using httpx.MockTransport."""

import httpx
import pytest

from app.clients.bybit_rest import BybitRestClient
from core.errors import FetchError


def _ok(result: dict) -> dict:
    return {"retCode": 0, "retMsg": "OK", "result": result}


def _kline_rows(count: int, start_ms: int = 1_700_000_000_000) -> list[list[str]]:
    """Newest-first rows like the exchange returns them."""
    rows = []
    for i in range(count):
        close = 100.0 + i
        rows.append([
            str(start_ms + i * 300_000),
            str(close - 0.5),
            str(close + 1.0),
            str(close - 1.0),
            str(close),
            "10",
            "1000",
        ])
    return list(reversed(rows))


def _make_client(handler) -> BybitRestClient:
    return BybitRestClient(
        base_url="https://api.test",
        calls_per_minute=60_000,
        transport=httpx.MockTransport(handler),
    )


class TestKlines:
    """Tests for kline fetching."""

    @pytest.mark.asyncio
    async def test_rows_reversed_to_oldest_first(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=_ok({"list": _kline_rows(3)}))

        client = _make_client(handler)
        series = await client.get_klines("BTCUSDT", "5", limit=3)
        await client.close()

        assert seen["path"] == "/v5/market/kline"
        assert seen["params"] == {
            "category": "linear",
            "symbol": "BTCUSDT",
            "interval": "5",
            "limit": "3",
        }
        assert series.get_closes() == [100.0, 101.0, 102.0]
        assert series.candles[0].start_time < series.candles[-1].start_time
        assert series.symbol == "BTCUSDT"
        assert series.interval == "5"

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["limit"] = request.url.params["limit"]
            return httpx.Response(200, json=_ok({"list": []}))

        client = _make_client(handler)
        await client.get_klines("BTCUSDT", "5", limit=1000)
        assert seen["limit"] == "240"
        await client.close()

    @pytest.mark.asyncio
    async def test_ret_code_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"retCode": 10001, "retMsg": "params error"})

        client = _make_client(handler)
        with pytest.raises(FetchError) as exc_info:
            await client.get_klines("BTCUSDT", "5")
        await client.close()

        assert exc_info.value.symbol == "BTCUSDT"
        assert "10001" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="internal error")

        client = _make_client(handler)
        with pytest.raises(FetchError) as exc_info:
            await client.get_klines("ETHUSDT", "5")
        await client.close()

        assert exc_info.value.status == 500
        assert exc_info.value.symbol == "ETHUSDT"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        client = _make_client(handler)
        with pytest.raises(FetchError):
            await client.get_klines("BTCUSDT", "5")
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _make_client(handler)
        with pytest.raises(FetchError) as exc_info:
            await client.get_klines("BTCUSDT", "5")
        await client.close()

        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_malformed_row(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok({"list": [["1700000000000", "abc"]]}))

        client = _make_client(handler)
        with pytest.raises(FetchError):
            await client.get_klines("BTCUSDT", "5")
        await client.close()


class TestInstrumentInfo:
    """Tests for instrument precision."""

    @pytest.mark.asyncio
    async def test_parse(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v5/market/instruments-info"
            return httpx.Response(200, json=_ok({
                "list": [{
                    "symbol": "BTCUSDT",
                    "priceFilter": {"tickSize": "0.10"},
                    "lotSizeFilter": {"qtyStep": "0.001"},
                }]
            }))

        client = _make_client(handler)
        info = await client.get_instrument_info("BTCUSDT")
        await client.close()

        assert info.tick_size == pytest.approx(0.1)
        assert info.lot_size == pytest.approx(0.001)

    @pytest.mark.asyncio
    async def test_empty_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok({"list": []}))

        client = _make_client(handler)
        with pytest.raises(FetchError):
            await client.get_instrument_info("BTCUSDT")
        await client.close()


class TestMarketMetrics:
    """Tests for funding, taker ratio and open-interest metrics."""

    @staticmethod
    def _handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v5/market/tickers":
            return httpx.Response(200, json=_ok({"list": [{"fundingRate": "0.0001"}]}))
        if path == "/v5/market/recent-trade":
            return httpx.Response(200, json=_ok({
                "list": [
                    {"side": "Buy", "size": "3"},
                    {"side": "Sell", "size": "2"},
                    {"side": "Buy", "size": "1"},
                ]
            }))
        if path == "/v5/market/open-interest":
            assert request.url.params["intervalTime"] == "5min"
            return httpx.Response(200, json=_ok({
                "list": [{"openInterest": "110"}, {"openInterest": "100"}]
            }))
        return httpx.Response(404)

    @pytest.mark.asyncio
    async def test_all_metrics(self):
        client = _make_client(self._handler)
        metrics = await client.get_market_metrics("BTCUSDT")
        await client.close()

        assert metrics.funding_rate == pytest.approx(0.0001)
        assert metrics.taker_ratio == pytest.approx(2.0)
        assert metrics.oi_delta == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_partial_failure_becomes_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v5/market/open-interest":
                return httpx.Response(503)
            return self._handler(request)

        client = _make_client(handler)
        metrics = await client.get_market_metrics("BTCUSDT")
        await client.close()

        assert metrics.funding_rate == pytest.approx(0.0001)
        assert metrics.taker_ratio == pytest.approx(2.0)
        assert metrics.oi_delta is None

    @pytest.mark.asyncio
    async def test_taker_ratio_without_sells(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok({"list": [{"side": "Buy", "size": "1"}]}))

        client = _make_client(handler)
        with pytest.raises(FetchError):
            await client.get_taker_ratio("BTCUSDT")
        await client.close()

    @pytest.mark.asyncio
    async def test_open_interest_needs_two_samples(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok({"list": [{"openInterest": "100"}]}))

        client = _make_client(handler)
        with pytest.raises(FetchError):
            await client.get_open_interest_delta("BTCUSDT")
        await client.close()
