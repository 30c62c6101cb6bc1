"""Tests for the periodic task scheduler."""

import asyncio

import pytest

from offplanmap.scheduling import PeriodicTask, Scheduler


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_runs_until_stopped(self):
        calls = []
        task = PeriodicTask("tick", 0.01, lambda: calls.append(1))

        task.start()
        assert task.running
        await asyncio.sleep(0.05)
        await task.stop()
        count = len(calls)
        await asyncio.sleep(0.03)

        assert not task.running
        assert count >= 2
        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_async_callback_awaited(self):
        seen = []

        async def callback():
            await asyncio.sleep(0)
            seen.append("done")

        task = PeriodicTask("async", 60, callback)
        await task.run_once()

        assert seen == ["done"]
        assert task.runs == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        def boom():
            raise RuntimeError("disk full")

        task = PeriodicTask("persist", 60, boom)
        await task.run_once()

        assert task.runs == 1
        assert "Periodic task persist failed" in caplog.text

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PeriodicTask("bad", 0, lambda: None)


class TestScheduler:
    @pytest.mark.asyncio
    async def test_start_and_stop_together(self):
        scheduler = Scheduler()
        scheduler.every("a", 60, lambda: None)
        scheduler.every("b", 60, lambda: None)

        scheduler.start()
        assert scheduler.running
        assert all(t.running for t in scheduler.tasks)

        await scheduler.stop()
        assert not scheduler.running

    def test_duplicate_name_rejected(self):
        scheduler = Scheduler()
        scheduler.every("a", 60, lambda: None)
        with pytest.raises(ValueError):
            scheduler.every("a", 30, lambda: None)

    @pytest.mark.asyncio
    async def test_cancel_one(self):
        scheduler = Scheduler()
        scheduler.every("a", 60, lambda: None)
        scheduler.every("b", 60, lambda: None)
        scheduler.start()

        assert await scheduler.cancel("a")
        assert not await scheduler.cancel("a")
        assert scheduler.get("a") is None
        assert scheduler.get("b").running

        await scheduler.stop()
