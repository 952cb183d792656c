"""
Tests for popwarden.decisions.scheduler and sweeper on a real event loop.
"""

import asyncio

import pytest

pytestmark = pytest.mark.decisions

from popwarden.config.models import DecisionsConfig
from popwarden.decisions.coordinator import DecisionCoordinator
from popwarden.decisions.scheduler import LoopScheduler
from popwarden.decisions.sweeper import ExpirySweeper


class TestLoopScheduler:
    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        scheduler = LoopScheduler()
        fired = asyncio.Event()

        async def callback():
            fired.set()

        scheduler.call_later(10, callback)
        await asyncio.wait_for(fired.wait(), timeout=2)

    @pytest.mark.asyncio
    async def test_cancelled_timer_does_not_fire(self):
        scheduler = LoopScheduler()
        calls = []

        async def callback():
            calls.append(1)

        handle = scheduler.call_later(10, callback)
        handle.cancel()
        await asyncio.sleep(0.05)
        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self, caplog):
        scheduler = LoopScheduler()

        async def callback():
            raise RuntimeError("boom")

        scheduler.call_later(0, callback)
        await asyncio.sleep(0.05)
        assert scheduler.running == 0
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_cancels_running_callbacks(self):
        scheduler = LoopScheduler()
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(60)

        scheduler.call_later(0, slow)
        await asyncio.wait_for(started.wait(), timeout=2)
        assert scheduler.running == 1
        await scheduler.drain()
        assert scheduler.running == 0


class TestCoordinatorOnLoop:
    @pytest.mark.asyncio
    async def test_real_timers_drive_timeout(self, storage, channel):
        config = DecisionsConfig(initial_timeout_seconds=0.02, reminder_timeout_seconds=0.01, max_reminders=1)
        coordinator = DecisionCoordinator(storage, channel=channel, config=config)
        await coordinator.initiate({"id": "p1"}, tab_id=1)

        for _ in range(200):
            if channel.timeouts:
                break
            await asyncio.sleep(0.01)

        assert channel.reminders == [("p1", 1)]
        assert channel.timeouts == ["p1"]
        assert coordinator.pending() == []


class TestExpirySweeper:
    @pytest.mark.asyncio
    async def test_sweep_now(self, coordinator, clock):
        await coordinator.initiate({"id": "p1"}, tab_id=1)
        clock.advance(25 * 60 * 60 * 1000)
        sweeper = ExpirySweeper(coordinator)

        assert await sweeper.sweep_now() == 1
        assert sweeper.sweep_count == 1
        assert sweeper.total_expired == 1

    def test_interval_from_config(self, coordinator):
        assert ExpirySweeper(coordinator).interval == 300
        assert ExpirySweeper(coordinator, interval_seconds=5).interval == 5

    @pytest.mark.asyncio
    async def test_loop_runs_and_stops(self, coordinator):
        sweeper = ExpirySweeper(coordinator, interval_seconds=0.01)
        await sweeper.start()
        assert sweeper.running is True
        for _ in range(200):
            if sweeper.sweep_count >= 2:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert sweeper.sweep_count >= 2
        assert sweeper.running is False

    @pytest.mark.asyncio
    async def test_loop_survives_failures(self, coordinator, monkeypatch, caplog):
        async def broken():
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(coordinator, "expire", broken)

        sweeper = ExpirySweeper(coordinator, interval_seconds=0.01)
        await sweeper.start()
        await asyncio.sleep(0.05)
        assert sweeper.running is True
        await sweeper.stop()
        assert "Expiry sweep failed" in caplog.text
