"""Decision cycle: fetch candles per symbol, decide, rank and track signals."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from app.clients.bybit_rest import BybitRestClient
from app.services.position_tracker import PositionTracker
from app.storage.price_cache import PriceCache
from app.storage.state_store import AppState, StateStore
from core.errors import FetchError
from core.models import InstrumentInfo, MarketMetrics, Params, Signal
from core.ranking import rank_signals
from core.signal_generator import SignalDecider

logger = logging.getLogger(__name__)

# Type alias for signal callback
SignalCallback = Callable[[Signal], Awaitable[None]]
# Called after the watchlist changes (e.g. ticker feed resubscription)
WatchlistCallback = Callable[[list[str]], None]
# Called when something requires an immediate recompute
TriggerCallback = Callable[[], None]


@dataclass
class CycleResult:
    """Result of one decision cycle."""

    interval: str
    started_at: datetime
    candidates: list[Signal] = field(default_factory=list)  # Ranked
    accepted: list[Signal] = field(default_factory=list)  # Handed to the tracker
    failed: list[str] = field(default_factory=list)  # Symbols whose fetch failed


class SignalGenerator:
    """
    Run decision cycles over the watchlist.

    Each cycle snapshots Params, watchlist and interval from AppState so a
    concurrent edit never mixes two configurations in one cycle. Symbols
    are evaluated concurrently; a failure on one symbol yields no signal
    for it and leaves the others untouched.
    """

    def __init__(
        self,
        state: AppState,
        client: BybitRestClient,
        price_cache: PriceCache,
        tracker: PositionTracker,
        store: StateStore | None = None,
        decider: SignalDecider | None = None,
        candle_limit: int = 200,
        fetch_instrument_info: bool = True,
    ):
        self.state = state
        self.client = client
        self.price_cache = price_cache
        self.tracker = tracker
        self.store = store
        self.decider = decider or SignalDecider()
        self.candle_limit = candle_limit
        self.fetch_instrument_info = fetch_instrument_info

        self._instruments: dict[str, InstrumentInfo] = {}
        self._callbacks: list[SignalCallback] = []
        self._watchlist_callbacks: list[WatchlistCallback] = []
        self._trigger: TriggerCallback | None = None

        self.last_result: CycleResult | None = None

    def on_signal(self, callback: SignalCallback) -> None:
        """Register callback for new tracked signals."""
        self._callbacks.append(callback)

    def on_watchlist_change(self, callback: WatchlistCallback) -> None:
        self._watchlist_callbacks.append(callback)

    def set_trigger(self, trigger: TriggerCallback) -> None:
        """Hook used to request an immediate recompute (the scheduler)."""
        self._trigger = trigger

    async def run_cycle(self) -> CycleResult:
        """
        Evaluate every watched symbol once.

        Returns:
            CycleResult with ranked candidates and the subset that was
            accepted by the tracker (symbols with an open signal are skipped)
        """
        params = self.state.params
        symbols = list(self.state.watchlist)
        interval = self.state.interval
        prices = self.price_cache.snapshot()
        now = datetime.now(timezone.utc)
        result = CycleResult(interval=interval, started_at=now)

        outcomes = await asyncio.gather(
            *(
                self._evaluate_symbol(symbol, interval, params, prices.get(symbol), now)
                for symbol in symbols
            ),
            return_exceptions=True,
        )

        candidates = []
        for symbol, outcome in zip(symbols, outcomes):
            if isinstance(outcome, FetchError):
                logger.warning(f"Fetch failed, no signal this cycle: {outcome}")
                result.failed.append(symbol)
            elif isinstance(outcome, Exception):
                logger.error(f"{symbol}: unexpected error during decision: {outcome}")
                result.failed.append(symbol)
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is not None:
                candidates.append(outcome)

        result.candidates = rank_signals(candidates)

        for signal in result.candidates:
            if self.tracker.has_open(signal.symbol):
                continue
            if await self.tracker.add_signal(signal):
                result.accepted.append(signal)
                for callback in self._callbacks:
                    try:
                        await callback(signal)
                    except Exception as e:
                        logger.error(f"Signal callback error: {e}")

        await self.tracker.reconcile(self.price_cache.snapshot())

        self.last_result = result
        logger.info(
            f"Cycle {interval}m: {len(symbols)} symbols, "
            f"{len(result.candidates)} candidates, {len(result.accepted)} new, "
            f"{len(result.failed)} failed"
        )
        return result

    async def _evaluate_symbol(
        self,
        symbol: str,
        interval: str,
        params: Params,
        tick_price: float | None,
        now: datetime,
    ) -> Signal | None:
        if tick_price is None:
            logger.debug(f"{symbol}: no live price yet, skipping")
            return None

        series = await self.client.get_klines(symbol, interval, self.candle_limit)
        instrument = await self._get_instrument(symbol)
        metrics = await self._get_metrics(symbol) if params.use_market_filters else None

        return self.decider.decide(
            series,
            tick_price,
            params,
            instrument=instrument,
            metrics=metrics,
            now=now,
        )

    async def _get_instrument(self, symbol: str) -> InstrumentInfo | None:
        """Instrument precision, cached per symbol. Missing info skips rounding."""
        if not self.fetch_instrument_info:
            return None
        if symbol not in self._instruments:
            try:
                self._instruments[symbol] = await self.client.get_instrument_info(symbol)
            except FetchError as e:
                logger.debug(f"Instrument info unavailable: {e}")
                return None
        return self._instruments[symbol]

    async def _get_metrics(self, symbol: str) -> MarketMetrics | None:
        try:
            return await self.client.get_market_metrics(symbol)
        except FetchError as e:
            logger.debug(f"Market metrics unavailable: {e}")
            return None

    async def set_interval(self, interval: str) -> None:
        """Switch the candle interval and recompute immediately.

        Raises:
            ValueError: unsupported interval code
        """
        if interval == self.state.interval:
            return
        self.state.set_interval(interval)
        logger.info(f"Interval changed to {interval}m")
        await self._persist()
        await self._recompute()

    async def set_params(self, params: Params) -> None:
        """Replace the Params snapshot used by the next cycle."""
        self.state.params = params
        await self._persist()
        await self._recompute()

    async def add_symbol(self, raw: str) -> str | None:
        """Add a symbol (normalized) to the front of the watchlist."""
        symbol = self.state.add_symbol(raw)
        if symbol is None:
            logger.info(f"Ignored watchlist entry {raw!r}")
            return None
        await self._watchlist_changed()
        return symbol

    async def remove_symbol(self, symbol: str) -> bool:
        if not self.state.remove_symbol(symbol):
            return False
        self._instruments.pop(symbol, None)
        await self._watchlist_changed()
        return True

    async def _watchlist_changed(self) -> None:
        watchlist = list(self.state.watchlist)
        for callback in self._watchlist_callbacks:
            try:
                callback(watchlist)
            except Exception as e:
                logger.error(f"Watchlist callback error: {e}")
        await self._persist()
        await self._recompute()

    async def _recompute(self) -> None:
        if self._trigger is not None:
            self._trigger()
        else:
            await self.run_cycle()

    async def _persist(self) -> None:
        if self.store is None:
            return
        try:
            await self.store.save(self.state)
        except OSError as e:
            logger.warning(f"Failed to persist state: {e}")

