"""
Timer scheduling for decision reminders and timeouts.

Timers are transient: they live only in the scheduler and are never
persisted with the decisions they belong to.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Set

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Runs an async callback after a delay in milliseconds."""

    def call_later(self, delay_ms: int, callback: TimerCallback) -> TimerHandle:
        ...


class LoopScheduler:
    """Scheduler on the running asyncio event loop.

    Each fired callback runs as a task; the scheduler holds a reference to
    every running task until it finishes.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: int, callback: TimerCallback) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(delay_ms, 0) / 1000, self._spawn, callback)

    def _spawn(self, callback: TimerCallback) -> None:
        task = self._get_loop().create_task(callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Decision timer callback failed: %s", exc, exc_info=exc)

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Cancel callbacks that are still running and wait for them."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
