"""Tests for the decision cycle service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.position_tracker import PositionTracker
from app.services.signal_generator import SignalGenerator
from app.storage.price_cache import PriceCache
from app.storage.state_store import AppState, MemoryStateStore
from core.errors import FetchError
from core.models import (
    BREAKOUT_PARAMS,
    MEAN_REVERSION_PARAMS,
    InstrumentInfo,
    Side,
    SignalStatus,
)

SYMBOLS = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "XRPUSDT", "DOGEUSDT"]
LONG_TICK = 1021.0  # last close 1016 + 5, above the 24-bar high


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def state():
    return AppState(watchlist=list(SYMBOLS))


@pytest.fixture
def cache():
    cache = PriceCache()
    for symbol in SYMBOLS:
        cache.update(symbol, LONG_TICK)
    return cache


@pytest.fixture
def client(make_series):
    """Fake REST client: every symbol is an uptrend, XRPUSDT fails."""
    client = MagicMock()

    async def get_klines(symbol, interval, limit=200):
        if symbol == "XRPUSDT":
            raise FetchError("kline request failed", symbol=symbol, status=502)
        return make_series(symbol=symbol)

    client.get_klines = AsyncMock(side_effect=get_klines)
    client.get_instrument_info = AsyncMock(
        side_effect=FetchError("instrument unavailable", symbol="X")
    )
    client.get_market_metrics = AsyncMock()
    return client


@pytest.fixture
def generator(state, client, cache, store):
    tracker = PositionTracker(state, store)
    return SignalGenerator(state, client, cache, tracker, store=store)


class TestRunCycle:
    """Tests for SignalGenerator.run_cycle."""

    @pytest.mark.asyncio
    async def test_one_failing_symbol_does_not_block_others(self, generator, state):
        result = await generator.run_cycle()

        assert result.failed == ["XRPUSDT"]
        assert sorted(s.symbol for s in result.accepted) == sorted(
            s for s in SYMBOLS if s != "XRPUSDT"
        )
        assert all(s.side == Side.LONG for s in result.accepted)
        assert len(state.signals) == 4
        assert generator.last_result is result

    @pytest.mark.asyncio
    async def test_new_signals_enter_after_cycle(self, generator):
        result = await generator.run_cycle()
        assert all(s.status == SignalStatus.ENTERED for s in result.accepted)

    @pytest.mark.asyncio
    async def test_symbol_with_open_signal_is_skipped(self, generator):
        first = await generator.run_cycle()
        second = await generator.run_cycle()

        assert len(first.accepted) == 4
        assert len(second.candidates) == 4
        assert second.accepted == []
        assert generator.tracker.active_count == 4

    @pytest.mark.asyncio
    async def test_symbol_without_price_is_skipped(self, state, client, store):
        cache = PriceCache()
        cache.update("BTCUSDT", LONG_TICK)
        tracker = PositionTracker(state, store)
        generator = SignalGenerator(state, client, cache, tracker)

        result = await generator.run_cycle()

        assert [s.symbol for s in result.accepted] == ["BTCUSDT"]
        client.get_klines.assert_awaited_once_with("BTCUSDT", "5", 200)

    @pytest.mark.asyncio
    async def test_uses_state_interval_and_candle_limit(self, state, client, cache):
        state.set_interval("15")
        generator = SignalGenerator(
            state, client, cache, PositionTracker(state), candle_limit=120
        )

        await generator.run_cycle()

        client.get_klines.assert_any_await("BTCUSDT", "15", 120)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, generator, client, make_series):
        async def get_klines(symbol, interval, limit=200):
            if symbol == "ETHUSDT":
                raise RuntimeError("boom")
            return make_series(symbol=symbol)

        client.get_klines.side_effect = get_klines
        result = await generator.run_cycle()

        assert result.failed == ["ETHUSDT"]
        assert len(result.accepted) == 4

    @pytest.mark.asyncio
    async def test_signal_callbacks(self, generator):
        callback = AsyncMock()
        generator.on_signal(callback)

        result = await generator.run_cycle()

        assert callback.await_count == len(result.accepted)

    @pytest.mark.asyncio
    async def test_instrument_info_cached(self, generator, client):
        client.get_instrument_info = AsyncMock(
            return_value=InstrumentInfo(symbol="BTCUSDT", tick_size=0.1, lot_size=0.001)
        )

        await generator.run_cycle()
        await generator.run_cycle()

        # Once per symbol that reached the decision step
        assert client.get_instrument_info.await_count == 4

    @pytest.mark.asyncio
    async def test_metrics_only_fetched_with_market_filters(self, generator, client, cache):
        await generator.run_cycle()
        client.get_market_metrics.assert_not_awaited()

        params = BREAKOUT_PARAMS.model_copy(update={"use_market_filters": True})
        state = AppState(watchlist=list(SYMBOLS), params=params)
        filtered = SignalGenerator(state, client, cache, PositionTracker(state))
        client.get_market_metrics.side_effect = FetchError("metrics down")

        result = await filtered.run_cycle()

        assert client.get_market_metrics.await_count == 4
        # Missing metrics never reject
        assert len(result.accepted) == 4

    @pytest.mark.asyncio
    async def test_set_params_replaces_snapshot(self, generator, state):
        await generator.set_params(MEAN_REVERSION_PARAMS)
        assert state.params is MEAN_REVERSION_PARAMS


class TestWatchlistAndInterval:
    """Tests for watchlist / interval edits."""

    @pytest.mark.asyncio
    async def test_set_interval_triggers_recompute(self, generator, state, store):
        trigger = MagicMock()
        generator.set_trigger(trigger)

        await generator.set_interval("1")

        assert state.interval == "1"
        trigger.assert_called_once()
        assert (await store.load()).interval == "1"

    @pytest.mark.asyncio
    async def test_same_interval_is_noop(self, generator):
        trigger = MagicMock()
        generator.set_trigger(trigger)
        await generator.set_interval("5")
        trigger.assert_not_called()

    @pytest.mark.asyncio
    async def test_unsupported_interval(self, generator, state):
        with pytest.raises(ValueError):
            await generator.set_interval("60")
        assert state.interval == "5"

    @pytest.mark.asyncio
    async def test_add_symbol_notifies_and_persists(self, generator, state, store):
        watched = MagicMock()
        generator.on_watchlist_change(watched)
        generator.set_trigger(MagicMock())

        assert await generator.add_symbol("pepe") == "PEPEUSDT"

        assert state.watchlist[0] == "PEPEUSDT"
        watched.assert_called_once_with(state.watchlist)
        assert (await store.load()).watchlist[0] == "PEPEUSDT"

    @pytest.mark.asyncio
    async def test_add_invalid_or_duplicate_symbol(self, generator):
        watched = MagicMock()
        generator.on_watchlist_change(watched)

        assert await generator.add_symbol("btc") is None
        assert await generator.add_symbol("bad-symbol!") is None
        watched.assert_not_called()

    @pytest.mark.asyncio
    async def test_remove_symbol(self, generator, state):
        generator.set_trigger(MagicMock())

        assert await generator.remove_symbol("DOGEUSDT") is True
        assert "DOGEUSDT" not in state.watchlist
        assert await generator.remove_symbol("DOGEUSDT") is False

    @pytest.mark.asyncio
    async def test_recompute_without_trigger_runs_cycle(self, generator):
        await generator.set_interval("3")
        assert generator.last_result is not None
        assert generator.last_result.interval == "3"
