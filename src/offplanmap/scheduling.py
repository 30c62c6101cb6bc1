"""Cancelable periodic tasks on the asyncio event loop.

Every timer the cache pipeline needs (persistence, cache optimization,
performance checks, leak checks) is registered with a ``Scheduler`` owned by
the session, which starts and stops them together so no callback outlives
the session that created it.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """Runs a callback every ``interval`` seconds until stopped."""

    def __init__(self, name: str, interval: float, callback: Callback):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.callback = callback
        self.runs = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Launch the background loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.debug(f"Started {self.name} (every {self.interval}s)")

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.debug(f"Stopped {self.name}")
        self._task = None

    async def run_once(self) -> None:
        """Invoke the callback, logging instead of raising on failure."""
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Periodic task {self.name} failed")
        self.runs += 1

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()


class Scheduler:
    """Registry of periodic tasks started and stopped as a group.

    Example:
        scheduler = Scheduler()
        scheduler.every("persist", 300, persist_now)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self):
        self._tasks: dict[str, PeriodicTask] = {}

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks.values())

    def get(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    def every(self, name: str, interval: float, callback: Callback) -> PeriodicTask:
        """Register ``callback`` to run every ``interval`` seconds."""
        if name in self._tasks:
            raise ValueError(f"Task {name!r} already registered")
        task = PeriodicTask(name, interval, callback)
        self._tasks[name] = task
        return task

    def start(self) -> None:
        for task in self._tasks.values():
            task.start()

    async def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        await task.stop()
        return True

    async def stop(self) -> None:
        """Cancel every task."""
        for task in self._tasks.values():
            await task.stop()

    @property
    def running(self) -> bool:
        return any(task.running for task in self._tasks.values())
