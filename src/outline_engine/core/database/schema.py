"""SQLite schema creation and migration for outline documents."""

import sqlite3

SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS nodes (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL,
    parent_id TEXT,
    position INTEGER NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    node_type TEXT NOT NULL DEFAULT 'bullet',
    is_checked INTEGER NOT NULL DEFAULT 0,
    collapsed INTEGER NOT NULL DEFAULT 0,
    note TEXT,
    heading_level INTEGER,
    date TEXT,
    date_recurrence TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    color TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (document_id) REFERENCES documents(id)
);

CREATE INDEX IF NOT EXISTS idx_nodes_parent ON nodes(document_id, parent_id, position);
CREATE INDEX IF NOT EXISTS idx_nodes_updated ON nodes(updated_at DESC);

CREATE VIRTUAL TABLE IF NOT EXISTS nodes_fts USING fts5(
    content, note,
    content='nodes',
    content_rowid='rowid',
    tokenize='porter unicode61'
);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_FTS_TRIGGERS_SQL = """\
CREATE TRIGGER IF NOT EXISTS nodes_ai AFTER INSERT ON nodes BEGIN
    INSERT INTO nodes_fts(rowid, content, note)
    VALUES (new.rowid, new.content, coalesce(new.note, ''));
END;

CREATE TRIGGER IF NOT EXISTS nodes_ad AFTER DELETE ON nodes BEGIN
    INSERT INTO nodes_fts(nodes_fts, rowid, content, note)
    VALUES ('delete', old.rowid, old.content, coalesce(old.note, ''));
END;

CREATE TRIGGER IF NOT EXISTS nodes_au AFTER UPDATE OF content, note ON nodes BEGIN
    INSERT INTO nodes_fts(nodes_fts, rowid, content, note)
    VALUES ('delete', old.rowid, old.content, coalesce(old.note, ''));
    INSERT INTO nodes_fts(rowid, content, note)
    VALUES (new.rowid, new.content, coalesce(new.note, ''));
END;
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables, indexes, and triggers."""
    conn.executescript(_SCHEMA_SQL)
    conn.executescript(_FTS_TRIGGERS_SQL)
    set_metadata(conn, "schema_version", str(SCHEMA_VERSION))
    conn.commit()


def get_metadata(conn: sqlite3.Connection, key: str) -> str | None:
    """Read a metadata value, or None if missing (or no metadata table yet)."""
    try:
        row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    except sqlite3.OperationalError:
        return None
    return row[0] if row else None


def set_metadata(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
        (key, value),
    )


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return the current schema version, or None if metadata table doesn't exist."""
    value = get_metadata(conn, "schema_version")
    return int(value) if value is not None else None


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Create or migrate the database schema to the latest version."""
    version = get_schema_version(conn)
    if version is None:
        create_schema(conn)
    elif version > SCHEMA_VERSION:
        msg = f"Database schema version {version} is newer than supported ({SCHEMA_VERSION})"
        raise RuntimeError(msg)


def rebuild_fts(conn: sqlite3.Connection) -> None:
    """Rebuild the full-text index from the nodes table."""
    conn.execute("INSERT INTO nodes_fts(nodes_fts) VALUES ('rebuild')")
    conn.commit()
