"""Per-key debounced tasks that can be flushed deterministically."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

TaskFactory = Callable[[], Awaitable[Any]]


class DelayedTaskScheduler:
    """Debounce async work per key.

    Scheduling a key replaces any pending timer for that key. When a timer
    fires, the factory's coroutine runs as a task on the running loop.
    ``flush`` runs every pending factory immediately, in scheduling order,
    and awaits tasks that already fired.
    """

    def __init__(self) -> None:
        self._pending: dict[str, tuple[asyncio.TimerHandle, TaskFactory]] = {}
        self._running: set[asyncio.Task[Any]] = set()

    @property
    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def schedule(self, key: str, delay: float, factory: TaskFactory) -> None:
        """Run ``factory()`` after ``delay`` seconds unless rescheduled or cancelled."""
        self.cancel(key)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self._fire, key)
        self._pending[key] = (handle, factory)

    def cancel(self, key: str) -> bool:
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)

    def _fire(self, key: str) -> None:
        entry = self._pending.pop(key, None)
        if entry is None:
            return
        task = asyncio.ensure_future(entry[1]())
        self._running.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Task[Any]") -> None:
        self._running.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Delayed task failed")

    async def flush(self) -> None:
        """Run all pending tasks now and wait for in-flight ones."""
        pending = list(self._pending.items())
        self._pending.clear()
        for _key, (handle, factory) in pending:
            handle.cancel()
            await factory()
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
