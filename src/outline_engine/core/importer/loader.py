"""Orchestrate importing JSON backups, Dynalist files and OPML outlines into SQLite."""

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from outline_engine.backends.sqlite import insert_nodes
from outline_engine.core.importer.json_reader import (
    parse_backup,
    parse_dynalist_document,
    with_fresh_ids,
)
from outline_engine.core.importer.opml import parse_opml
from outline_engine.models.node import Node


@dataclass(frozen=True)
class ImportStats:
    """Summary of an import operation."""

    documents_imported: int
    documents_skipped: int
    nodes_imported: int
    document_ids: tuple[str, ...] = ()


def read_import_file(path: Path) -> tuple[str, list[Node]]:
    """Read a backup, Dynalist or OPML file, returning (title, nodes)."""
    if path.suffix.lower() == ".opml":
        return parse_opml(path.read_bytes())
    data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    if path.name.endswith(".c.json") or "file_id" in data:
        return parse_dynalist_document(data)
    title = data.get("title") or path.stem
    return title, parse_backup(data)


def import_nodes(
    conn: sqlite3.Connection,
    nodes: list[Node],
    *,
    title: str,
    document_id: str | None = None,
) -> str:
    """Insert nodes into a new document, or append them to an existing one.

    Ids are always regenerated so repeated imports never collide.

    Returns:
        The id of the document the nodes went into.
    """
    now = datetime.now(UTC).isoformat()
    offset = 0
    if document_id is not None:
        row = conn.execute(
            "SELECT MAX(position) FROM nodes WHERE document_id = ? AND parent_id IS NULL",
            (document_id,),
        ).fetchone()
        exists = conn.execute("SELECT 1 FROM documents WHERE id = ?", (document_id,)).fetchone()
        if exists is None:
            msg = f"Document not found: {document_id}"
            raise ValueError(msg)
        offset = (row[0] + 1) if row and row[0] is not None else 0
    else:
        document_id = str(uuid.uuid4())
        conn.execute(
            "INSERT INTO documents (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (document_id, title, now, now),
        )
        if not nodes:
            nodes = [Node(id="blank", parent_id=None, position=0)]

    insert_nodes(conn, document_id, with_fresh_ids(nodes, root_offset=offset))
    conn.execute("UPDATE documents SET updated_at = ? WHERE id = ?", (now, document_id))
    return document_id


def import_path(
    conn: sqlite3.Connection,
    source: Path,
    *,
    document_id: str | None = None,
) -> ImportStats:
    """Import one file, or every ``*.json`` and ``*.opml`` file in a directory.

    Args:
        conn: SQLite connection (schema must already exist).
        source: A backup, .c.json or .opml file, or a directory of them.
        document_id: Append into this document instead of creating new ones.

    Returns:
        ImportStats with counts of imported/skipped documents.
    """
    if source.is_dir():
        files = sorted(
            p
            for pattern in ("*.json", "*.opml")
            for p in source.glob(pattern)
            if not p.name.startswith("_")
        )
    elif source.exists():
        files = [source]
    else:
        msg = f"No such file or directory: {source}"
        raise FileNotFoundError(msg)

    docs_imported = 0
    docs_skipped = 0
    total_nodes = 0
    doc_ids: list[str] = []

    for file_path in files:
        try:
            title, nodes = read_import_file(file_path)
        except (ValueError, KeyError) as e:
            logger.warning("Skipping {}: {}", file_path.name, e)
            docs_skipped += 1
            continue

        try:
            doc_id = import_nodes(conn, nodes, title=title, document_id=document_id)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Failed to import {}", file_path.name)
            docs_skipped += 1
            continue

        docs_imported += 1
        total_nodes += len(nodes)
        doc_ids.append(doc_id)
        logger.debug("Imported {} ({} nodes)", title, len(nodes))

    logger.info(
        "Import complete: {} imported, {} skipped, {} total nodes",
        docs_imported, docs_skipped, total_nodes,
    )
    return ImportStats(
        documents_imported=docs_imported,
        documents_skipped=docs_skipped,
        nodes_imported=total_nodes,
        document_ids=tuple(doc_ids),
    )
