"""Bundled persistence backend on SQLite with an FTS5 index."""

import json
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from outline_engine.config import DEFAULT_DOCUMENT_ID
from outline_engine.core.database.schema import migrate_schema
from outline_engine.core.recurrence import get_next_occurrence
from outline_engine.core.search.searcher import NODE_COLUMNS, row_to_node, search_nodes
from outline_engine.models.node import (
    CreateResult,
    Document,
    DocumentState,
    Node,
    NodeChanges,
    SearchResult,
)
from outline_engine.protocols import BackendError

DEFAULT_DOCUMENT_TITLE = "My Outline"

SAMPLE_OUTLINE: list[tuple[str, list[str]]] = [
    ("Welcome to Outline", []),
    (
        "Getting Started",
        [
            "Press Enter to create a new item",
            "Press Tab to indent",
            "Press Shift+Tab to outdent",
        ],
    ),
    (
        "Features",
        [
            "Hierarchical notes",
            "Rich text editing",
            "Cross-device sync (coming soon)",
        ],
    ),
]

# Fields whose empty value is stored as NULL.
_NULLABLE_TEXT = ("note", "date", "date_recurrence", "color")


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def open_database(db_path: Path | str) -> sqlite3.Connection:
    """Open (and create or migrate) an outline database."""
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    migrate_schema(conn)
    return conn


def insert_nodes(conn: sqlite3.Connection, document_id: str, nodes: list[Node]) -> None:
    conn.executemany(
        f"""INSERT OR REPLACE INTO nodes ({NODE_COLUMNS}, document_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            (
                n.id, n.parent_id, n.position, n.content, n.node_type,
                int(n.is_checked), int(n.collapsed), n.note, n.heading_level,
                n.date, n.date_recurrence, json.dumps(list(n.tags)), n.color,
                n.created_at or _now(), n.updated_at or _now(), document_id,
            )
            for n in nodes
        ],
    )


def sample_nodes() -> list[Node]:
    """Starter content for a brand-new default document."""
    nodes: list[Node] = []
    for position, (content, children) in enumerate(SAMPLE_OUTLINE):
        root = Node(id=_new_id(), parent_id=None, position=position, content=content)
        nodes.append(root)
        nodes.extend(
            Node(id=_new_id(), parent_id=root.id, position=i, content=text)
            for i, text in enumerate(children)
        )
    return nodes


def _column_value(name: str, value: Any) -> Any:
    if name in _NULLABLE_TEXT:
        return value or None
    if name == "heading_level":
        return value or None
    if name == "tags":
        return json.dumps(list(value))
    if name in ("is_checked", "collapsed"):
        return int(value)
    return value


class SqliteBackend:
    """Document store on a local SQLite database.

    One document is "loaded" at a time; every mutation returns that
    document's full node list. External writes by other connections are
    picked up by ``reload_if_changed``.
    """

    def __init__(self, db_path: Path | str, *, sample_data: bool = True) -> None:
        self.db_path = db_path
        self.conn = open_database(db_path)
        self.sample_data = sample_data
        self.document_id: str | None = None
        self._data_version: int | None = None

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Run statements as one transaction; storage errors become BackendError."""
        try:
            yield self.conn
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            msg = f"Database write failed: {e}"
            raise BackendError(msg) from e

    def _data_version_now(self) -> int:
        return self.conn.execute("PRAGMA data_version").fetchone()[0]

    def _require_document(self) -> str:
        if self.document_id is None:
            msg = "No document loaded"
            raise BackendError(msg)
        return self.document_id

    def _require_node(self, node_id: str) -> None:
        row = self.conn.execute(
            "SELECT 1 FROM nodes WHERE id = ? AND document_id = ?",
            (node_id, self._require_document()),
        ).fetchone()
        if row is None:
            msg = f"Node not found: {node_id}"
            raise BackendError(msg)

    def _state(self) -> DocumentState:
        rows = self.conn.execute(
            f"SELECT {NODE_COLUMNS} FROM nodes WHERE document_id = ? ORDER BY parent_id, position",
            (self._require_document(),),
        ).fetchall()
        return DocumentState(nodes=tuple(row_to_node(r) for r in rows))

    # --- Documents ---

    async def list_documents(self) -> list[Document]:
        rows = self.conn.execute(
            """SELECT d.id, d.title, COUNT(n.id)
               FROM documents d LEFT JOIN nodes n ON n.document_id = d.id
               GROUP BY d.id ORDER BY d.title"""
        ).fetchall()
        return [Document(id=r[0], title=r[1], node_count=r[2]) for r in rows]

    def get_document(self, doc_id: str) -> Document | None:
        row = self.conn.execute(
            """SELECT d.id, d.title, COUNT(n.id)
               FROM documents d LEFT JOIN nodes n ON n.document_id = d.id
               WHERE d.id = ? GROUP BY d.id""",
            (doc_id,),
        ).fetchone()
        return Document(id=row[0], title=row[1], node_count=row[2]) if row else None

    def create_document(self, title: str, *, doc_id: str | None = None) -> Document:
        """Create an empty document with a single blank root item."""
        doc_id = doc_id or _new_id()
        now = _now()
        with self._write() as conn:
            conn.execute(
                "INSERT INTO documents (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (doc_id, title, now, now),
            )
            insert_nodes(conn, doc_id, [Node(id=_new_id(), parent_id=None, position=0)])
        logger.info("Created document {!r} ({})", title, doc_id)
        return Document(id=doc_id, title=title, node_count=1)

    def _create_default_document(self) -> None:
        now = _now()
        nodes = sample_nodes() if self.sample_data else [Node(id=_new_id(), parent_id=None, position=0)]
        with self._write() as conn:
            conn.execute(
                "INSERT INTO documents (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (DEFAULT_DOCUMENT_ID, DEFAULT_DOCUMENT_TITLE, now, now),
            )
            insert_nodes(conn, DEFAULT_DOCUMENT_ID, nodes)
        logger.info("Created default document with {} nodes", len(nodes))

    # --- BackendProtocol ---

    async def load_document(self, doc_id: str | None = None) -> DocumentState:
        doc_id = doc_id or DEFAULT_DOCUMENT_ID
        if self.get_document(doc_id) is None:
            if doc_id != DEFAULT_DOCUMENT_ID:
                msg = f"Document not found: {doc_id}"
                raise BackendError(msg)
            self._create_default_document()
        self.document_id = doc_id
        self._data_version = self._data_version_now()
        return self._state()

    async def create_node(
        self, parent_id: str | None, position: int, content: str
    ) -> CreateResult:
        doc_id = self._require_document()
        if parent_id is not None:
            self._require_node(parent_id)
        node = Node(id=_new_id(), parent_id=parent_id, position=position, content=content)
        with self._write() as conn:
            insert_nodes(conn, doc_id, [node])
        return CreateResult(id=node.id, state=self._state())

    async def create_node_with_id(
        self,
        node_id: str,
        parent_id: str | None,
        position: int,
        content: str,
        node_type: str,
    ) -> DocumentState:
        doc_id = self._require_document()
        exists = self.conn.execute("SELECT 1 FROM nodes WHERE id = ?", (node_id,)).fetchone()
        if exists:
            return self._state()
        node = Node(
            id=node_id,
            parent_id=parent_id,
            position=position,
            content=content,
            node_type=node_type,  # type: ignore[arg-type]
        )
        with self._write() as conn:
            insert_nodes(conn, doc_id, [node])
        return self._state()

    async def update_node(self, node_id: str, changes: NodeChanges) -> DocumentState:
        self._require_node(node_id)
        values = changes.as_dict()
        assignments = [f"{name} = ?" for name in values]
        params = [_column_value(name, value) for name, value in values.items()]
        assignments.append("updated_at = ?")
        params.extend([_now(), node_id])
        with self._write() as conn:
            conn.execute(f"UPDATE nodes SET {', '.join(assignments)} WHERE id = ?", params)
        return self._state()

    async def move_node(
        self, node_id: str, parent_id: str | None, position: int
    ) -> DocumentState:
        self._require_node(node_id)
        if parent_id is not None:
            self._require_node(parent_id)
        with self._write() as conn:
            conn.execute(
                "UPDATE nodes SET parent_id = ?, position = ?, updated_at = ? WHERE id = ?",
                (parent_id, position, _now(), node_id),
            )
        return self._state()

    async def delete_node(self, node_id: str) -> DocumentState:
        self._require_node(node_id)
        with self._write() as conn:
            conn.execute(
                """WITH RECURSIVE subtree(id) AS (
                       SELECT ?
                       UNION ALL
                       SELECT n.id FROM nodes n JOIN subtree s ON n.parent_id = s.id
                   )
                   DELETE FROM nodes WHERE id IN (SELECT id FROM subtree)""",
                (node_id,),
            )
        return self._state()

    async def search(
        self, query: str, doc_id: str | None = None, limit: int = 50
    ) -> list[SearchResult]:
        try:
            results, _total = search_nodes(self.conn, query=query, document_id=doc_id, limit=limit)
        except sqlite3.OperationalError as e:
            msg = f"Search failed: {e}"
            raise BackendError(msg) from e
        return results

    async def get_next_occurrence(self, rrule: str, date: str) -> str | None:
        try:
            return get_next_occurrence(rrule, date)
        except ValueError as e:
            raise BackendError(str(e)) from e

    async def reload_if_changed(self) -> DocumentState | None:
        if self.document_id is None:
            return None
        version = self._data_version_now()
        if version == self._data_version:
            return None
        logger.debug("Database changed externally (data_version {} -> {})", self._data_version, version)
        self._data_version = version
        return self._state()
