"""Recompute scheduler.

Decides WHEN a decision cycle runs. Three triggers feed it:

1. Live ticks re-arm a single debounce timer; a burst of ticks therefore
   produces one cycle ``debounce_seconds`` after the last tick.
2. A periodic task fires every ``refresh_seconds`` regardless of ticks.
3. ``trigger_now()`` runs a cycle immediately (interval or watchlist change).

At most one cycle is in flight. Triggers that arrive while a cycle runs
set a flag and are coalesced into exactly one follow-up run.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from core.models import PriceTick

logger = logging.getLogger(__name__)

CycleRunner = Callable[[], Awaitable[Any]]


class RecomputeScheduler:
    """Debounced, coalescing trigger for decision cycles."""

    def __init__(
        self,
        run_cycle: CycleRunner,
        debounce_seconds: float = 3.0,
        refresh_seconds: float = 60.0,
    ):
        self._run_cycle = run_cycle
        self.debounce_seconds = debounce_seconds
        self.refresh_seconds = refresh_seconds

        self._running = False
        self._paused = False
        self._rerun = False
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._periodic_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None

        self.cycles_run = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def in_flight(self) -> bool:
        """True while a cycle is executing."""
        return self._cycle_task is not None and not self._cycle_task.done()

    @property
    def debounce_pending(self) -> bool:
        return self._debounce_handle is not None

    async def start(self, run_immediately: bool = True) -> None:
        """Start the periodic refresh and optionally run a first cycle."""
        if self._running:
            return
        self._running = True
        self._periodic_task = asyncio.create_task(self._periodic())
        logger.info(
            f"Scheduler started: debounce={self.debounce_seconds}s, "
            f"refresh={self.refresh_seconds}s"
        )
        if run_immediately:
            self.trigger_now()

    async def stop(self) -> None:
        """Cancel the debounce timer, the periodic task and any running cycle."""
        self._running = False
        self._rerun = False
        self._cancel_debounce()
        for task in (self._periodic_task, self._cycle_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._periodic_task = None
        self._cycle_task = None
        logger.info("Scheduler stopped")

    def pause(self) -> None:
        """Ignore triggers until resume(). A cycle already running completes."""
        self._paused = True
        self._rerun = False
        self._cancel_debounce()

    def resume(self) -> None:
        """Accept triggers again and recompute right away."""
        if not self._paused:
            return
        self._paused = False
        self.trigger_now()

    def notify_tick(self) -> None:
        """Re-arm the single debounce slot."""
        if not self._running or self._paused:
            return
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self.debounce_seconds, self._on_debounce)

    async def on_tick(self, tick: PriceTick) -> None:
        """Tick callback for the price feed."""
        self.notify_tick()

    def trigger_now(self) -> None:
        """Run a cycle now, or once more after the one in flight."""
        if not self._running or self._paused:
            return
        self._cancel_debounce()
        if self.in_flight:
            self._rerun = True
            return
        self._cycle_task = asyncio.create_task(self._run())

    async def wait_idle(self) -> None:
        """Wait until no cycle is running (follow-up runs included)."""
        while self.in_flight:
            await asyncio.shield(self._cycle_task)

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        self.trigger_now()

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    async def _run(self) -> None:
        while True:
            self._rerun = False
            try:
                await self._run_cycle()
            except Exception as e:
                logger.error(f"Decision cycle failed: {e}")
            self.cycles_run += 1
            if not (self._rerun and self._running and not self._paused):
                break
            logger.debug("Running coalesced follow-up cycle")

    async def _periodic(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_seconds)
            self.trigger_now()
