"""Protocols for dependency injection in the outline engine."""

from typing import Any, Protocol, runtime_checkable

from outline_engine.models.node import CreateResult, DocumentState, NodeChanges, SearchResult


class BackendError(RuntimeError):
    """A persistence backend call failed (transport, storage or rejected request)."""


@runtime_checkable
class ApiProtocol(Protocol):
    """Protocol for HTTP transports used by the remote backend."""

    def call(self, path: str, args: dict[str, Any]) -> dict[str, Any]:
        """Invoke an API endpoint and return the JSON response."""
        ...


@runtime_checkable
class BackendProtocol(Protocol):
    """Protocol for persistence backends.

    Every mutating call returns the full authoritative ``DocumentState`` of the
    currently loaded document. Failures raise ``BackendError``.
    """

    async def load_document(self, doc_id: str | None = None) -> DocumentState:
        """Open a document (the default one when ``doc_id`` is None)."""
        ...

    async def create_node(
        self, parent_id: str | None, position: int, content: str
    ) -> CreateResult:
        """Create a bullet node and return its new id with the resulting state."""
        ...

    async def create_node_with_id(
        self,
        node_id: str,
        parent_id: str | None,
        position: int,
        content: str,
        node_type: str,
    ) -> DocumentState:
        """Recreate a node under a known id (undo/redo replay)."""
        ...

    async def update_node(self, node_id: str, changes: NodeChanges) -> DocumentState:
        """Apply partial field changes."""
        ...

    async def move_node(
        self, node_id: str, parent_id: str | None, position: int
    ) -> DocumentState:
        """Set a node's parent and position."""
        ...

    async def delete_node(self, node_id: str) -> DocumentState:
        """Delete a node and all of its descendants."""
        ...

    async def search(
        self, query: str, doc_id: str | None = None, limit: int = 50
    ) -> list[SearchResult]:
        """Full-text search, best matches first."""
        ...

    async def get_next_occurrence(self, rrule: str, date: str) -> str | None:
        """Resolve the next occurrence of a recurrence rule after ``date``."""
        ...

    async def reload_if_changed(self) -> DocumentState | None:
        """Return a fresh state if the document changed externally, else None."""
        ...
