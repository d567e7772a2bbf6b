"""Tests for the recompute scheduler."""

import asyncio

import pytest

from app.services.scheduler import RecomputeScheduler


class SlowCycle:
    """Cycle runner that blocks until released."""

    def __init__(self):
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        await self.release.wait()
        self.release.clear()


class TestDebounce:
    """Tests for tick debouncing."""

    @pytest.mark.asyncio
    async def test_burst_of_ticks_runs_one_cycle(self):
        calls = []

        async def cycle():
            calls.append(1)

        scheduler = RecomputeScheduler(cycle, debounce_seconds=0.05, refresh_seconds=60)
        await scheduler.start(run_immediately=False)

        for _ in range(10):
            scheduler.notify_tick()
            await asyncio.sleep(0.01)
        assert calls == []
        assert scheduler.debounce_pending

        await asyncio.sleep(0.1)
        await scheduler.wait_idle()

        assert calls == [1]
        assert not scheduler.debounce_pending
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_ticks_ignored_before_start(self):
        async def cycle():
            raise AssertionError("should not run")

        scheduler = RecomputeScheduler(cycle, debounce_seconds=0.01)
        scheduler.notify_tick()
        assert not scheduler.debounce_pending

    @pytest.mark.asyncio
    async def test_on_tick_callback(self):
        calls = []

        async def cycle():
            calls.append(1)

        scheduler = RecomputeScheduler(cycle, debounce_seconds=0.01, refresh_seconds=60)
        await scheduler.start(run_immediately=False)

        await scheduler.on_tick(None)
        await asyncio.sleep(0.05)
        await scheduler.wait_idle()

        assert calls == [1]
        await scheduler.stop()


class TestCoalescing:
    """Tests for the single-flight guarantee."""

    @pytest.mark.asyncio
    async def test_triggers_during_cycle_coalesce_into_one_rerun(self):
        cycle = SlowCycle()
        scheduler = RecomputeScheduler(cycle, debounce_seconds=60, refresh_seconds=60)
        await scheduler.start()
        await asyncio.sleep(0)
        assert scheduler.in_flight
        assert cycle.calls == 1

        for _ in range(5):
            scheduler.trigger_now()

        cycle.release.set()
        await asyncio.sleep(0.01)
        assert cycle.calls == 2

        cycle.release.set()
        await scheduler.wait_idle()

        assert cycle.calls == 2
        assert scheduler.cycles_run == 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_trigger_now_cancels_pending_debounce(self):
        calls = []

        async def cycle():
            calls.append(1)

        scheduler = RecomputeScheduler(cycle, debounce_seconds=0.05, refresh_seconds=60)
        await scheduler.start(run_immediately=False)
        scheduler.notify_tick()

        scheduler.trigger_now()
        assert not scheduler.debounce_pending
        await scheduler.wait_idle()
        await asyncio.sleep(0.1)

        assert calls == [1]
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failing_cycle_is_logged(self):
        async def cycle():
            raise RuntimeError("boom")

        scheduler = RecomputeScheduler(cycle, refresh_seconds=60)
        await scheduler.start()
        await scheduler.wait_idle()

        assert scheduler.cycles_run == 1
        assert scheduler.running
        await scheduler.stop()


class TestLifecycle:
    """Tests for start / stop / pause / resume and the periodic refresh."""

    @pytest.mark.asyncio
    async def test_periodic_refresh(self):
        calls = []

        async def cycle():
            calls.append(1)

        scheduler = RecomputeScheduler(cycle, debounce_seconds=60, refresh_seconds=0.02)
        await scheduler.start(run_immediately=False)
        await asyncio.sleep(0.11)
        await scheduler.stop()

        assert len(calls) >= 3

    @pytest.mark.asyncio
    async def test_pause_and_resume(self):
        calls = []

        async def cycle():
            calls.append(1)

        scheduler = RecomputeScheduler(cycle, debounce_seconds=0.01, refresh_seconds=60)
        await scheduler.start(run_immediately=False)
        scheduler.notify_tick()

        scheduler.pause()
        assert scheduler.paused
        assert not scheduler.debounce_pending
        scheduler.notify_tick()
        scheduler.trigger_now()
        await asyncio.sleep(0.05)
        assert calls == []

        scheduler.resume()
        await scheduler.wait_idle()
        assert calls == [1]
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_running_cycle(self):
        cycle = SlowCycle()
        scheduler = RecomputeScheduler(cycle, debounce_seconds=60, refresh_seconds=60)
        await scheduler.start()
        await asyncio.sleep(0)
        scheduler.notify_tick()

        await scheduler.stop()

        assert not scheduler.running
        assert not scheduler.in_flight
        assert not scheduler.debounce_pending
        assert scheduler.cycles_run == 0

        scheduler.trigger_now()
        assert not scheduler.in_flight

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        calls = []

        async def cycle():
            calls.append(1)

        scheduler = RecomputeScheduler(cycle, refresh_seconds=60)
        await scheduler.start()
        await scheduler.start()
        await scheduler.wait_idle()

        assert calls == [1]
        await scheduler.stop()
