"""Tests for the bounded undo log."""

import asyncio

from outline_engine.core.undo import UndoLog, batch_applies
from outline_engine.models.node import Node, NodeChanges
from outline_engine.models.undo import (
    BatchAction,
    CreateAction,
    DeleteAction,
    MoveAction,
    SwapAction,
    UndoAction,
    UndoEntry,
    UpdateAction,
)


def _entry(n: int) -> UndoEntry:
    return UndoEntry(description=f"step {n}", undo=DeleteAction(f"u{n}"), redo=DeleteAction(f"r{n}"))


class RecordingExecutor:
    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.actions: list[UndoAction] = []

    async def __call__(self, action: UndoAction) -> bool:
        self.actions.append(action)
        return self.result


def test_capacity_evicts_oldest_first() -> None:
    log = UndoLog(capacity=3)
    for n in range(5):
        log.push(_entry(n))
    assert len(log) == 3

    executor = RecordingExecutor()

    async def drain() -> list[str]:
        undone = []
        while await log.undo(executor):
            undone.append(log.redo_description)
        return undone

    assert asyncio.run(drain()) == ["step 4", "step 3", "step 2"]


def test_undo_then_redo_moves_entry_between_stacks() -> None:
    log = UndoLog()
    log.push(_entry(1))
    executor = RecordingExecutor()

    assert asyncio.run(log.undo(executor))
    assert not log.can_undo
    assert log.can_redo
    assert executor.actions == [DeleteAction("u1")]

    assert asyncio.run(log.redo(executor))
    assert log.can_undo
    assert not log.can_redo
    assert executor.actions[-1] == DeleteAction("r1")


def test_push_clears_redo() -> None:
    log = UndoLog()
    log.push(_entry(1))
    asyncio.run(log.undo(RecordingExecutor()))
    assert log.redo_depth == 1
    log.push(_entry(2))
    assert log.redo_depth == 0


def test_failed_undo_restores_entry() -> None:
    log = UndoLog()
    log.push(_entry(1))
    assert not asyncio.run(log.undo(RecordingExecutor(result=False)))
    assert log.can_undo
    assert log.undo_description == "step 1"
    assert not log.can_redo


def test_failed_redo_restores_entry() -> None:
    log = UndoLog()
    log.push(_entry(1))
    asyncio.run(log.undo(RecordingExecutor()))
    assert not asyncio.run(log.redo(RecordingExecutor(result=False)))
    assert log.redo_description == "step 1"


def test_empty_log_undo_is_noop() -> None:
    log = UndoLog()
    executor = RecordingExecutor()
    assert not asyncio.run(log.undo(executor))
    assert not asyncio.run(log.redo(executor))
    assert executor.actions == []


def test_clear() -> None:
    log = UndoLog()
    log.push(_entry(1))
    log.push(_entry(2))
    asyncio.run(log.undo(RecordingExecutor()))
    log.clear()
    assert not log.can_undo
    assert not log.can_redo


def test_batch_applies_tracks_earlier_steps() -> None:
    parents = {"A": None, "B": None}
    created = Node(id="x", parent_id="A", position=0)
    assert batch_applies(BatchAction((CreateAction(created), MoveAction("B", "x", 0))), parents)
    # Moving A under its own new child would form a cycle.
    assert not batch_applies(BatchAction((CreateAction(created), MoveAction("A", "x", 0))), parents)
    assert parents == {"A": None, "B": None}


def test_batch_applies_rejects_steps_on_deleted_subtree() -> None:
    parents = {"A": None, "A.1": "A", "B": None}
    batch = BatchAction((DeleteAction("A"), UpdateAction("A.1", NodeChanges(content="x"))))
    assert not batch_applies(batch, parents)
    assert not batch_applies(BatchAction((SwapAction("A", 1, "A.1", 0),)), parents)
    assert not batch_applies(BatchAction((DeleteAction("A"), DeleteAction("B"))), parents)
    assert batch_applies(BatchAction((DeleteAction("A"), MoveAction("B", None, 0))), parents)
