"""Signal lifecycle state machine.

NEW -> ENTERED on the first evaluation after creation (entry is the tick
price at creation, so the fill is immediate). ENTERED -> TP / SL when the
live price reaches the level, ENTERED -> CANCELLED once the signal is older
than ``auto_cancel_mins``. TP, SL and CANCELLED are terminal: evaluating a
terminal signal is a no-op. Signals are never removed; they stay in the
history that LifecycleStats folds over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Mapping

from core.models import LifecycleStats, Side, Signal, SignalStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """A single status change of a tracked signal."""

    signal: Signal
    previous: SignalStatus
    status: SignalStatus
    at: datetime


def check_levels(signal: Signal, price: float) -> SignalStatus | None:
    """Return TP/SL if ``price`` reached a level in the relevant direction."""
    if signal.side == Side.LONG:
        if price >= signal.take_profit:
            return SignalStatus.TP
        if price <= signal.stop_loss:
            return SignalStatus.SL
    else:  # SHORT
        if price <= signal.take_profit:
            return SignalStatus.TP
        if price >= signal.stop_loss:
            return SignalStatus.SL
    return None


class SignalLifecycle:
    """Track signals and evolve them against live prices."""

    def __init__(
        self,
        signals: Iterable[Signal] = (),
        auto_cancel_mins: float = 120.0,
    ):
        self.auto_cancel_mins = auto_cancel_mins
        self._signals: list[Signal] = []
        self._ids: set[str] = set()
        for signal in signals:
            self.add(signal)
        self._stats = LifecycleStats.from_signals(self._signals)

    def add(self, signal: Signal) -> bool:
        """Start tracking a signal. Returns False if it is already tracked."""
        if signal.id in self._ids:
            return False
        self._signals.append(signal)
        self._ids.add(signal.id)
        return True

    def step(self, signal: Signal, price: float | None, now: datetime) -> Transition | None:
        """
        Advance one signal by at most one state.

        Args:
            signal: Tracked signal (mutated in place on transition)
            price: Latest live price for the symbol, or None if unknown
            now: Evaluation time

        Returns:
            The transition that happened, or None
        """
        previous = signal.status
        if previous.is_terminal:
            return None

        if previous == SignalStatus.NEW:
            signal.status = SignalStatus.ENTERED
            signal.entered_at = now
            return Transition(signal, previous, SignalStatus.ENTERED, now)

        new_status = check_levels(signal, price) if price is not None else None
        if new_status is not None:
            signal.exit_price = price
        elif self._expired(signal, now):
            new_status = SignalStatus.CANCELLED

        if new_status is None:
            return None

        signal.status = new_status
        signal.closed_at = now
        logger.info(
            f"Signal {signal.id} {new_status.value}: {signal.symbol} {signal.side.value} "
            f"entry={signal.entry} exit={signal.exit_price}"
        )
        return Transition(signal, previous, new_status, now)

    def _expired(self, signal: Signal, now: datetime) -> bool:
        if self.auto_cancel_mins <= 0:
            return False
        return now - signal.created_at > timedelta(minutes=self.auto_cancel_mins)

    def process_price(self, symbol: str, price: float, now: datetime) -> list[Transition]:
        """Evaluate every open signal of ``symbol`` against a new price."""
        transitions = [
            t
            for signal in self.open_signals(symbol)
            if (t := self.step(signal, price, now)) is not None
        ]
        if transitions:
            self._recompute_stats()
        return transitions

    def reconcile(self, prices: Mapping[str, float], now: datetime) -> list[Transition]:
        """Evaluate all open signals against the latest known prices."""
        transitions = [
            t
            for signal in self.open_signals()
            if (t := self.step(signal, prices.get(signal.symbol), now)) is not None
        ]
        if transitions:
            self._recompute_stats()
        return transitions

    def _recompute_stats(self) -> None:
        self._stats = LifecycleStats.from_signals(self._signals)

    def open_signals(self, symbol: str | None = None) -> list[Signal]:
        """Signals in NEW or ENTERED, optionally for one symbol."""
        return [
            s for s in self._signals
            if s.is_open and (symbol is None or s.symbol == symbol)
        ]

    def has_open(self, symbol: str) -> bool:
        return any(s.is_open and s.symbol == symbol for s in self._signals)

    def get(self, signal_id: str) -> Signal | None:
        for signal in self._signals:
            if signal.id == signal_id:
                return signal
        return None

    @property
    def signals(self) -> list[Signal]:
        """All tracked signals, oldest first."""
        return list(self._signals)

    @property
    def stats(self) -> LifecycleStats:
        return self._stats
