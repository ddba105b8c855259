"""Tests for database schema."""

import sqlite3

import pytest

from outline_engine.core.database.schema import (
    SCHEMA_VERSION,
    create_schema,
    get_schema_version,
    migrate_schema,
    rebuild_fts,
    set_metadata,
)


def test_create_schema_creates_tables_and_fts() -> None:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    tables = {
        row[0]
        for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    }
    assert {"documents", "nodes", "nodes_fts", "metadata"} <= tables


def test_migrate_schema_on_empty_db_creates_schema_and_sets_version() -> None:
    conn = sqlite3.connect(":memory:")
    assert get_schema_version(conn) is None
    migrate_schema(conn)
    assert get_schema_version(conn) == SCHEMA_VERSION


def test_migrate_schema_is_idempotent() -> None:
    conn = sqlite3.connect(":memory:")
    migrate_schema(conn)
    migrate_schema(conn)
    assert get_schema_version(conn) == SCHEMA_VERSION


def test_migrate_schema_rejects_newer_version() -> None:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    set_metadata(conn, "schema_version", str(SCHEMA_VERSION + 1))
    with pytest.raises(RuntimeError, match="newer than supported"):
        migrate_schema(conn)


def test_fts_triggers_follow_updates_and_deletes() -> None:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    conn.execute(
        "INSERT INTO nodes (id, document_id, position, content, created_at, updated_at) "
        "VALUES ('a', 'd', 0, 'apple pie', '', '')"
    )

    def matches(term: str) -> int:
        return conn.execute(
            "SELECT COUNT(*) FROM nodes_fts WHERE nodes_fts MATCH ?", (term,)
        ).fetchone()[0]

    assert matches("apple") == 1
    conn.execute("UPDATE nodes SET content = 'banana bread', note = 'ripe' WHERE id = 'a'")
    assert matches("apple") == 0
    assert matches("ripe") == 1
    rebuild_fts(conn)
    assert matches("banana") == 1
    conn.execute("DELETE FROM nodes WHERE id = 'a'")
    assert matches("banana") == 0
