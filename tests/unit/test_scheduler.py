"""Tests for DelayedTaskScheduler."""

import asyncio

from outline_engine.core.scheduler import DelayedTaskScheduler


def test_reschedule_replaces_pending_task() -> None:
    ran: list[str] = []

    async def record(value: str) -> None:
        ran.append(value)

    async def scenario() -> None:
        scheduler = DelayedTaskScheduler()
        scheduler.schedule("n1", 60, lambda: record("first"))
        scheduler.schedule("n1", 60, lambda: record("second"))
        scheduler.schedule("n2", 60, lambda: record("other"))
        assert scheduler.pending_keys == ["n1", "n2"]
        await scheduler.flush()
        assert scheduler.pending_keys == []

    asyncio.run(scenario())
    assert ran == ["second", "other"]


def test_timer_fires_after_delay() -> None:
    ran: list[str] = []

    async def record() -> None:
        ran.append("fired")

    async def scenario() -> None:
        scheduler = DelayedTaskScheduler()
        scheduler.schedule("k", 0, record)
        await asyncio.sleep(0.01)
        await scheduler.flush()

    asyncio.run(scenario())
    assert ran == ["fired"]


def test_cancel_prevents_run() -> None:
    ran: list[str] = []

    async def record() -> None:
        ran.append("fired")

    async def scenario() -> None:
        scheduler = DelayedTaskScheduler()
        scheduler.schedule("a", 0, record)
        scheduler.schedule("b", 0, record)
        assert scheduler.cancel("a")
        assert not scheduler.cancel("missing")
        scheduler.cancel_all()
        await asyncio.sleep(0.01)
        await scheduler.flush()

    asyncio.run(scenario())
    assert ran == []


def test_failing_task_does_not_break_flush() -> None:
    async def boom() -> None:
        msg = "boom"
        raise ValueError(msg)

    async def scenario() -> None:
        scheduler = DelayedTaskScheduler()
        scheduler.schedule("k", 0, boom)
        await asyncio.sleep(0.01)
        await scheduler.flush()

    asyncio.run(scenario())
