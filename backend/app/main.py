"""Main application entry point."""

import asyncio
import logging
import signal
from pathlib import Path

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("picows").setLevel(logging.WARNING)

# Try to use uvloop for better performance (Unix only)
try:
    import uvloop
    uvloop.install()
    _UVLOOP_ENABLED = True
except ImportError:
    _UVLOOP_ENABLED = False

from app.clients import BybitRestClient, BybitTickerFeed
from app.config import Settings, get_settings
from app.services import PositionTracker, RecomputeScheduler, SignalGenerator
from app.storage import AppState, JsonFileStateStore, PriceCache
from app.trading_config import load_trading_config
from core.lifecycle import Transition
from core.models import Signal
from core.ranking import narrative, score_signal

# Shutdown timeout in seconds
SHUTDOWN_TIMEOUT = 10

logger = logging.getLogger(__name__)


async def on_new_signal(signal: Signal) -> None:
    """Log a newly tracked signal with its insight read."""
    logger.info(
        f"NEW {signal.side.value} {signal.symbol} entry={signal.entry} "
        f"TP={signal.take_profit} SL={signal.stop_loss} lev={signal.leverage}x "
        f"score={score_signal(signal):.1f} | {signal.reasoning} {narrative(signal)}"
    )


async def on_outcome(transition: Transition) -> None:
    """Log a resolved signal."""
    s = transition.signal
    logger.info(
        f"{transition.status.value} {s.side.value} {s.symbol} "
        f"entry={s.entry} exit={s.exit_price} pnl={s.pnl:+.2f} USDT"
    )


async def build_state(settings: Settings, store: JsonFileStateStore) -> AppState:
    """Restore persisted state, falling back to configured defaults."""
    trading_config = load_trading_config(Path(settings.trading_config_path))
    return trading_config.restore(await store.load(), settings.symbols, settings.interval)


async def run(settings: Settings | None = None) -> None:
    """Run the live service until SIGINT/SIGTERM."""
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info("Starting signal service...")
    logger.info(f"Event loop: {'uvloop' if _UVLOOP_ENABLED else 'asyncio'}")

    store = JsonFileStateStore(settings.state_path)
    state = await build_state(settings, store)
    logger.info(
        f"Watchlist: {', '.join(state.watchlist)} | interval={state.interval}m | "
        f"lookback={state.params.breakout_lookback} buffer={state.params.breakout_buffer}"
    )

    client = BybitRestClient(
        base_url=settings.rest_base_url,
        category=settings.category,
        timeout=settings.http_timeout,
        calls_per_minute=settings.requests_per_minute,
    )
    price_cache = PriceCache()
    tracker = PositionTracker(state, store)
    generator = SignalGenerator(
        state,
        client,
        price_cache,
        tracker,
        store=store,
        candle_limit=settings.candle_limit,
        fetch_instrument_info=settings.fetch_instrument_info,
    )
    scheduler = RecomputeScheduler(
        generator.run_cycle,
        debounce_seconds=settings.debounce_seconds,
        refresh_seconds=settings.refresh_seconds,
    )
    feed = BybitTickerFeed(
        price_cache,
        symbols=state.watchlist,
        ws_url=settings.ws_url,
        heartbeat_interval=settings.heartbeat_seconds,
        min_reconnect_delay=settings.min_reconnect_delay,
        max_reconnect_delay=settings.max_reconnect_delay,
    )

    # Register callbacks
    feed.on_tick(tracker.process_tick)
    feed.on_tick(scheduler.on_tick)
    generator.on_signal(on_new_signal)
    generator.on_watchlist_change(feed.update_symbols)
    generator.set_trigger(scheduler.trigger_now)
    tracker.on_outcome(on_outcome)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    try:
        await feed.start()
        # First cycle only once prices can arrive; the debounce covers the rest
        await feed.wait_connected(timeout=settings.debounce_seconds)
        await scheduler.start()
        logger.info("Signal service started")

        await stop_event.wait()
    finally:
        # Shutdown
        logger.info("Shutting down...")
        try:
            await asyncio.wait_for(scheduler.stop(), timeout=SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Scheduler did not stop in time")
        try:
            await asyncio.wait_for(feed.stop(), timeout=SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Ticker feed did not stop in time")
        await client.close()
        await tracker.persist()

        stats = tracker.stats
        logger.info(
            f"Stats: {stats.total} closed, {stats.wins} wins, {stats.losses} losses, "
            f"{stats.cancelled} cancelled, pnl={stats.pnl:+.2f} USDT"
        )
        logger.info("Shutdown complete")


def main():
    """Run the application."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
