"""FTS5 search over outline nodes."""

import json
import re
import sqlite3

from outline_engine.models.node import Node, SearchResult

NODE_COLUMNS = (
    "id, parent_id, position, content, node_type, is_checked, collapsed, note, "
    "heading_level, date, date_recurrence, tags, color, created_at, updated_at"
)


def _sanitize_fts_token(token: str) -> str:
    """Remove FTS5 special characters (whitelist approach)."""
    return re.sub(r"[^\w]", "", token, flags=re.UNICODE)


def _prepare_fts_query(query: str) -> str:
    """Convert user query to FTS5 query with prefix matching.

    - 3+ char words get * suffix for prefix matching
    - Quoted phrases are preserved as-is
    - FTS5 operators AND, OR, NOT are preserved
    """
    if not query.strip():
        return ""

    tokens: list[str] = []
    i = 0
    while i < len(query):
        if query[i] == '"':
            end = query.find('"', i + 1)
            if end == -1:
                tokens.append(query[i:] + '"')
                break
            tokens.append(query[i : end + 1])
            i = end + 1
        elif query[i].isspace():
            i += 1
        else:
            end = i
            while end < len(query) and not query[end].isspace() and query[end] != '"':
                end += 1
            word = query[i:end]
            i = end

            if word.upper() in ("AND", "OR", "NOT"):
                tokens.append(word.upper())
                continue

            sanitized = _sanitize_fts_token(word)
            if not sanitized:
                continue
            tokens.append(f"{sanitized}*" if len(sanitized) >= 3 else sanitized)

    # A dangling operator is a syntax error in FTS5.
    while tokens and tokens[-1] in ("AND", "OR", "NOT"):
        tokens.pop()
    while tokens and tokens[0] in ("AND", "OR"):
        tokens.pop(0)
    return " ".join(tokens)


def row_to_node(row: sqlite3.Row | tuple) -> Node:
    """Build a Node from a row selected with ``NODE_COLUMNS``."""
    return Node(
        id=row[0],
        parent_id=row[1],
        position=row[2],
        content=row[3],
        node_type=row[4],
        is_checked=bool(row[5]),
        collapsed=bool(row[6]),
        note=row[7],
        heading_level=row[8],
        date=row[9],
        date_recurrence=row[10],
        tags=tuple(json.loads(row[11] or "[]")),
        color=row[12],
        created_at=row[13],
        updated_at=row[14],
    )


def search_nodes(
    conn: sqlite3.Connection,
    *,
    query: str = "",
    document_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SearchResult], int]:
    """Search nodes using FTS5.

    Args:
        conn: Database connection.
        query: Search query text.
        document_id: Restrict to a specific document.
        limit: Max results to return.
        offset: Pagination offset.

    Returns:
        Tuple of (results, total_count).
    """
    fts_query = _prepare_fts_query(query)
    if not fts_query:
        return [], 0

    where_clauses = ["nodes_fts MATCH ?"]
    params: list[str | int] = [fts_query]

    if document_id:
        where_clauses.append("n.document_id = ?")
        params.append(document_id)

    where_sql = " AND ".join(where_clauses)

    count_sql = f"""
        SELECT COUNT(*)
        FROM nodes_fts
        JOIN nodes n ON n.rowid = nodes_fts.rowid
        WHERE {where_sql}
    """
    total = conn.execute(count_sql, params).fetchone()[0]

    columns = ", ".join(f"n.{c.strip()}" for c in NODE_COLUMNS.split(","))
    select_sql = f"""
        SELECT {columns},
               n.document_id,
               d.title as doc_title,
               snippet(nodes_fts, 0, '**', '**', '...', 32) as snippet,
               rank
        FROM nodes_fts
        JOIN nodes n ON n.rowid = nodes_fts.rowid
        JOIN documents d ON d.id = n.document_id
        WHERE {where_sql}
        ORDER BY rank
        LIMIT ? OFFSET ?
    """
    params.extend([limit, offset])

    rows = conn.execute(select_sql, params).fetchall()
    results = [
        SearchResult(
            node=row_to_node(row),
            document_id=row[15],
            document_title=row[16],
            snippet=row[17],
            score=-float(row[18]),
        )
        for row in rows
    ]
    return results, total
