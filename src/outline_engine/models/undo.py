"""Invertible commands recorded by the undo log."""

import time
from dataclasses import dataclass, field
from typing import Union

from outline_engine.models.node import Node, NodeChanges


@dataclass(frozen=True)
class CreateAction:
    """Recreate ``node`` with its original id, position and fields."""

    node: Node


@dataclass(frozen=True)
class DeleteAction:
    """Delete a node (and its descendants)."""

    node_id: str


@dataclass(frozen=True)
class UpdateAction:
    """Apply partial field changes to a node."""

    node_id: str
    changes: NodeChanges


@dataclass(frozen=True)
class MoveAction:
    """Reparent and/or reposition a node."""

    node_id: str
    parent_id: str | None
    position: int


@dataclass(frozen=True)
class SwapAction:
    """Set the positions of two siblings."""

    node_id: str
    position: int
    other_id: str
    other_position: int


@dataclass(frozen=True)
class BatchAction:
    """Run several actions in order; used by split, merge and bulk edits."""

    actions: tuple["UndoAction", ...]


UndoAction = Union[CreateAction, DeleteAction, UpdateAction, MoveAction, SwapAction, BatchAction]


@dataclass(frozen=True)
class UndoEntry:
    """One reversible user action."""

    description: str
    undo: UndoAction
    redo: UndoAction
    timestamp: float = field(default_factory=time.time)
