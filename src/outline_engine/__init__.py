"""Outline document engine: hierarchical outliner core with pluggable persistence."""

from outline_engine.api import OutlineApi
from outline_engine.backends.remote import RemoteBackend
from outline_engine.backends.sqlite import SqliteBackend
from outline_engine.core.engine import OutlineEngine
from outline_engine.models.node import DocumentState, Node, NodeChanges
from outline_engine.protocols import ApiProtocol, BackendError, BackendProtocol

__all__ = [
    "ApiProtocol",
    "BackendError",
    "BackendProtocol",
    "DocumentState",
    "Node",
    "NodeChanges",
    "OutlineApi",
    "OutlineEngine",
    "RemoteBackend",
    "SqliteBackend",
]
