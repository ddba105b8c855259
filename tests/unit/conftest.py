"""Shared test fixtures."""

import asyncio
import json
import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest

from outline_engine.backends.sqlite import SqliteBackend, insert_nodes, open_database
from outline_engine.models.node import Node

DYNALIST_DOC = {
    "file_id": "doc1",
    "title": "Notes",
    "version": 1,
    "nodes": [
        {
            "id": "root",
            "content": "Notes",
            "note": "",
            "created": 1000,
            "modified": 2000,
            "children": ["n1", "n2"],
        },
        {
            "id": "n1",
            "content": "Python is great for scripting",
            "note": "use type hints",
            "created": 1001,
            "modified": 2001,
            "children": ["n1a"],
        },
        {
            "id": "n1a",
            "content": "FastAPI for web services",
            "note": "",
            "checked": True,
            "created": 1002,
            "modified": 2002,
        },
        {
            "id": "n2",
            "content": "Rust is fast",
            "note": "memory safety",
            "heading": 2,
            "color": 4,
            "created": 1003,
            "modified": 2003,
        },
    ],
}

BACKUP = {
    "version": 1,
    "exported_at": "2024-01-01T00:00:00+00:00",
    "nodes": [
        {"id": "b1", "parent_id": None, "position": 0, "content": "Groceries #shopping"},
        {
            "id": "b2",
            "parent_id": "b1",
            "position": 0,
            "content": "Python cake recipe",
            "node_type": "checkbox",
            "is_checked": True,
        },
        {
            "id": "b3",
            "parent_id": "b1",
            "position": 1,
            "content": "Milk",
            "note": "oat",
            "date": "2024-01-15",
        },
    ],
}


OPML_DOC = """<?xml version="1.0" encoding="UTF-8"?>
<opml version="2.0">
  <head><title>Plans</title></head>
  <body>
    <outline text="Groceries" _note="weekly">
      <outline text="Milk" complete="true"/>
      <outline text="Pay rent !(2024-09-01 | 1m)" colorLabel="5"/>
    </outline>
    <outline text="Ideas" heading="2">
      <outline text="==bright== idea"/>
    </outline>
  </body>
</opml>
"""


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """A directory with one Dynalist file and one JSON backup."""
    source = tmp_path / "source"
    source.mkdir()
    (source / "notes.c.json").write_text(json.dumps(DYNALIST_DOC))
    (source / "backup.json").write_text(json.dumps(BACKUP))
    return source


@pytest.fixture
def sqlite_backend(tmp_path: Path) -> Iterator[SqliteBackend]:
    """A file-backed SQLite backend with the default document loaded."""
    backend = SqliteBackend(tmp_path / "outline.db")
    asyncio.run(backend.load_document())
    yield backend
    backend.close()


@pytest.fixture
def populated_db() -> Iterator[sqlite3.Connection]:
    """In-memory database with two documents and a handful of nodes."""
    conn = open_database(":memory:")
    now = "2024-01-01T00:00:00+00:00"
    conn.executemany(
        "INSERT INTO documents (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
        [("doc1", "Programming", now, now), ("doc2", "Snakes", now, now)],
    )
    insert_nodes(
        conn,
        "doc1",
        [
            Node(id="n1", parent_id=None, position=0, content="Python is great for scripting"),
            Node(id="n1a", parent_id="n1", position=0, content="FastAPI for web services"),
            Node(id="n2", parent_id=None, position=1, content="Rust is fast", note="memory safety"),
        ],
    )
    insert_nodes(
        conn,
        "doc2",
        [Node(id="s1", parent_id=None, position=0, content="The python snake lives in jungles")],
    )
    conn.commit()
    yield conn
    conn.close()
