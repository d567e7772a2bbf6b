"""Position tracker for evolving emitted signals against live prices.

Wraps the SignalLifecycle state machine with an asyncio lock, outcome
callbacks and persistence. The AppState it is given is the single source
of truth for signal history: after every mutation the tracker writes
signals + stats back into the state and saves it through the store.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Mapping

from app.storage.state_store import AppState, StateStore
from core.lifecycle import SignalLifecycle, Transition
from core.models import LifecycleStats, PriceTick, Signal

logger = logging.getLogger(__name__)

# Type alias for outcome callback (TP / SL / CANCELLED transitions)
OutcomeCallback = Callable[[Transition], Awaitable[None]]


class PositionTracker:
    """
    Track emitted signals and resolve them from price updates.

    This service:
    1. Holds every signal ever emitted (terminal ones stay for stats)
    2. Enforces one open (NEW/ENTERED) signal per symbol
    3. Advances signals on each tick and after each decision cycle
    4. Notifies outcome callbacks and persists state on every change
    """

    def __init__(self, state: AppState, store: StateStore | None = None):
        """
        Args:
            state: Process state; its ``signals`` seed the tracker
            store: Optional persistence port (None disables saving)
        """
        self.state = state
        self.store = store
        self._lifecycle = SignalLifecycle(
            state.signals, auto_cancel_mins=state.params.auto_cancel_mins
        )
        self._outcome_callbacks: list[OutcomeCallback] = []
        self._lock = asyncio.Lock()
        self._sync_state()

    def on_outcome(self, callback: OutcomeCallback) -> None:
        """Register callback for terminal transitions.

        Note: Duplicate callbacks are ignored.
        """
        if callback not in self._outcome_callbacks:
            self._outcome_callbacks.append(callback)

    def off_outcome(self, callback: OutcomeCallback) -> None:
        """Unregister callback for outcome events."""
        if callback in self._outcome_callbacks:
            self._outcome_callbacks.remove(callback)

    async def add_signal(self, signal: Signal) -> bool:
        """Start tracking a signal.

        Returns:
            False if the symbol already has an open signal or the ID is known
        """
        async with self._lock:
            if self._lifecycle.has_open(signal.symbol):
                logger.debug(f"{signal.symbol} already has an open signal, skipping")
                return False
            if not self._lifecycle.add(signal):
                return False
            self._sync_state()
        logger.info(f"Tracking new signal: {signal.id} ({signal.symbol} {signal.side.value})")
        await self.persist()
        return True

    async def process_tick(self, tick: PriceTick) -> list[Transition]:
        """Evaluate the symbol's open signals against a live tick."""
        async with self._lock:
            if not self._lifecycle.has_open(tick.symbol):
                return []
            self._lifecycle.auto_cancel_mins = self.state.params.auto_cancel_mins
            transitions = self._lifecycle.process_price(
                tick.symbol, tick.price, datetime.now(timezone.utc)
            )
            if transitions:
                self._sync_state()
        await self._after_transitions(transitions)
        return transitions

    async def reconcile(
        self,
        prices: Mapping[str, float],
        now: datetime | None = None,
    ) -> list[Transition]:
        """Evaluate every open signal against the latest known prices."""
        async with self._lock:
            self._lifecycle.auto_cancel_mins = self.state.params.auto_cancel_mins
            transitions = self._lifecycle.reconcile(prices, now or datetime.now(timezone.utc))
            if transitions:
                self._sync_state()
        await self._after_transitions(transitions)
        return transitions

    async def _after_transitions(self, transitions: list[Transition]) -> None:
        """Persist and notify OUTSIDE the lock (I/O and callbacks are slow)."""
        if not transitions:
            return
        await self.persist()
        for transition in transitions:
            if not transition.status.is_terminal:
                continue
            for callback in self._outcome_callbacks:
                try:
                    await callback(transition)
                except Exception as e:
                    logger.error(f"Outcome callback error: {e}")

    def _sync_state(self) -> None:
        self.state.signals = self._lifecycle.signals
        self.state.stats = self._lifecycle.stats

    async def persist(self) -> None:
        """Save the current state. Failures are logged, never raised."""
        if self.store is None:
            return
        try:
            await self.store.save(self.state)
        except OSError as e:
            logger.warning(f"Failed to persist state: {e}")

    def has_open(self, symbol: str) -> bool:
        return self._lifecycle.has_open(symbol)

    def get_open_signals(self, symbol: str | None = None) -> list[Signal]:
        return self._lifecycle.open_signals(symbol)

    def get_signal(self, signal_id: str) -> Signal | None:
        return self._lifecycle.get(signal_id)

    @property
    def signals(self) -> list[Signal]:
        return self._lifecycle.signals

    @property
    def stats(self) -> LifecycleStats:
        return self._lifecycle.stats

    @property
    def active_count(self) -> int:
        """Get total number of open signals."""
        return len(self._lifecycle.open_signals())
