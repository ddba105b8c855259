"""Bounded undo/redo stacks of invertible command pairs."""

from collections import deque
from collections.abc import Awaitable, Callable, Iterator

from loguru import logger

from outline_engine.config import UNDO_CAPACITY
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

ActionExecutor = Callable[[UndoAction], Awaitable[bool]]


class UndoLog:
    """Undo/redo history for one open document.

    The undo stack holds at most ``capacity`` entries; pushing beyond that
    evicts the oldest one. The redo stack grows until the next push or
    ``clear``. Undo and redo run the stored action through ``execute``; an
    action that fails is put back on the stack it came from.
    """

    def __init__(self, capacity: int = UNDO_CAPACITY) -> None:
        self.capacity = max(1, int(capacity))
        self._undo: deque[UndoEntry] = deque(maxlen=self.capacity)
        self._redo: list[UndoEntry] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_description(self) -> str | None:
        return self._undo[-1].description if self._undo else None

    @property
    def redo_description(self) -> str | None:
        return self._redo[-1].description if self._redo else None

    def __len__(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def push(self, entry: UndoEntry) -> None:
        """Record a new reversible action. Clears the redo stack."""
        self._undo.append(entry)
        self._redo.clear()

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    async def undo(self, execute: ActionExecutor) -> bool:
        if not self._undo:
            return False
        entry = self._undo.pop()
        if await execute(entry.undo):
            self._redo.append(entry)
            logger.debug("Undid: {}", entry.description)
            return True
        self._undo.append(entry)
        logger.warning("Undo of {!r} failed, entry kept", entry.description)
        return False

    async def redo(self, execute: ActionExecutor) -> bool:
        if not self._redo:
            return False
        entry = self._redo.pop()
        if await execute(entry.redo):
            self._undo.append(entry)
            logger.debug("Redid: {}", entry.description)
            return True
        self._redo.append(entry)
        logger.warning("Redo of {!r} failed, entry kept", entry.description)
        return False


def flatten(action: UndoAction) -> Iterator[UndoAction]:
    """Yield the leaf actions of ``action`` in execution order."""
    if isinstance(action, BatchAction):
        for step in action.actions:
            yield from flatten(step)
    else:
        yield action


def batch_applies(batch: BatchAction, parents: dict[str, str | None]) -> bool:
    """Dry-run ``batch`` against a node id -> parent id map.

    Mirrors the checks each step makes when it runs, tracking the ids that
    earlier steps create, delete or move, so a stale step is caught before
    the first write.
    """
    parents = dict(parents)

    def within(node_id: str | None, root_id: str) -> bool:
        while node_id is not None:
            if node_id == root_id:
                return True
            node_id = parents.get(node_id)
        return False

    for step in flatten(batch):
        if isinstance(step, CreateAction):
            node = step.node
            if node.id in parents:
                return False
            if node.parent_id is not None and node.parent_id not in parents:
                return False
            parents[node.id] = node.parent_id
        elif isinstance(step, DeleteAction):
            if step.node_id not in parents:
                return False
            doomed = [i for i in parents if within(i, step.node_id)]
            if len(parents) - len(doomed) < 1:
                return False
            for node_id in doomed:
                del parents[node_id]
        elif isinstance(step, UpdateAction):
            if step.node_id not in parents:
                return False
        elif isinstance(step, MoveAction):
            if step.node_id not in parents:
                return False
            if step.parent_id is not None and (
                step.parent_id not in parents or within(step.parent_id, step.node_id)
            ):
                return False
            parents[step.node_id] = step.parent_id
        elif isinstance(step, SwapAction):
            if step.node_id not in parents or step.other_id not in parents:
                return False
            if parents[step.node_id] != parents[step.other_id]:
                return False
    return True
