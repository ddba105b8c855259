"""MCP server exposing outline reading, search and editing tools."""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from outline_engine.backends.factory import open_backend
from outline_engine.core.engine import OutlineEngine
from outline_engine.core.search.tags import strip_html
from outline_engine.core.tree.markdown import render_markdown
from outline_engine.core.tree.navigation import get_breadcrumbs, get_children, get_siblings
from outline_engine.models.node import Node


def _node_summary(node: Node) -> dict[str, Any]:
    return {
        "node_id": node.id,
        "content": strip_html(node.content),
        "type": node.node_type,
        "checked": node.is_checked,
        "note": node.note,
        "date": node.date,
    }


def _failure(engine: OutlineEngine, what: str) -> dict[str, Any]:
    error = engine.error or f"{what} is not possible here."
    engine.clear_error()
    return {"success": False, "error": error}


# --- Core functions (testable without MCP context) ---


async def outline_list_documents(engine: OutlineEngine) -> dict[str, Any]:
    """List documents known to the backend."""
    docs = await engine.backend.list_documents()  # type: ignore[attr-defined]
    return {
        "documents": [
            {"document_id": d.id, "title": d.title, "node_count": d.node_count} for d in docs
        ],
        "current": engine.document_id,
    }


async def outline_read_node(
    engine: OutlineEngine,
    *,
    node_id: str | None = None,
    max_depth: int | None = None,
    include_notes: bool = True,
) -> dict[str, Any]:
    """Render a node's subtree (or the whole document) as markdown.

    Args:
        node_id: Root of the subtree; None renders every root item.
        max_depth: Max levels below the root to include (None = unlimited).
        include_notes: Whether to include notes.
    """
    table = engine.table
    if node_id is not None and node_id not in table:
        return {"error": f"Node '{node_id}' not found."}
    markdown = render_markdown(
        table,
        node_ids=[node_id] if node_id else None,
        include_notes=include_notes,
        max_depth=max_depth,
    )
    output: dict[str, Any] = {"markdown": markdown}
    if node_id is not None:
        crumbs = get_breadcrumbs(table, node_id=node_id)
        output["node_id"] = node_id
        output["breadcrumbs"] = " > ".join(c.content[:40] for c in crumbs)
    return output


async def outline_get_node_context(
    engine: OutlineEngine, *, node_id: str, sibling_count: int = 3, child_limit: int = 20
) -> dict[str, Any]:
    """Show a node with its ancestors, neighbouring siblings and children."""
    table = engine.table
    node = table.get(node_id)
    if node is None:
        return {"error": f"Node '{node_id}' not found."}
    before, after = get_siblings(table, node_id=node_id, count=sibling_count)
    return {
        "node": _node_summary(node),
        "breadcrumbs": [
            {"node_id": c.node_id, "content": c.content}
            for c in get_breadcrumbs(table, node_id=node_id)
        ],
        "siblings_before": [_node_summary(n) for n in before],
        "siblings_after": [_node_summary(n) for n in after],
        "children": [
            _node_summary(n) for n in get_children(table, parent_id=node_id, limit=child_limit)
        ],
    }


async def outline_search(engine: OutlineEngine, *, query: str, limit: int = 20) -> dict[str, Any]:
    """Full-text search in the open document.

    Query syntax: Words are ANDed. Use "quoted phrases" for exact matches.
    Prefix matching is automatic for 3+ char words.
    """
    if not query.strip():
        return {"error": "No search query provided.", "results": [], "count": 0}
    limit = max(1, min(limit, 50))
    results = await engine.search(query, limit=limit)
    if engine.error:
        return {**_failure(engine, "Search"), "results": [], "count": 0}
    serialized = []
    for r in results:
        crumbs = get_breadcrumbs(engine.table, node_id=r.node.id)
        serialized.append(
            {
                **_node_summary(r.node),
                "snippet": r.snippet,
                "breadcrumbs": " > ".join(c.content[:40] for c in crumbs),
            }
        )
    return {"results": serialized, "count": len(serialized)}


async def outline_add_node(
    engine: OutlineEngine,
    *,
    content: str,
    parent_id: str | None = None,
    after_id: str | None = None,
    note: str | None = None,
    checkbox: bool = False,
) -> dict[str, Any]:
    """Add an item as the last child of ``parent_id`` or right after ``after_id``."""
    if after_id is not None:
        new_id = await engine.add_sibling_after(after_id, content)
    else:
        new_id = await engine.add_child(parent_id, content)
    if new_id is None:
        return _failure(engine, "Adding an item")
    if note:
        await engine.update_note(new_id, note)
    if checkbox:
        await engine.toggle_node_type(new_id)
    return {"success": True, "node_id": new_id}


async def outline_edit_node(
    engine: OutlineEngine,
    *,
    node_id: str,
    content: str | None = None,
    note: str | None = None,
    checked: bool | None = None,
) -> dict[str, Any]:
    """Edit an item's content, note or checked state."""
    node = engine.get_node(node_id)
    if node is None:
        return {"success": False, "error": f"Node '{node_id}' not found."}
    if content is None and note is None and checked is None:
        return {"success": False, "error": "No fields to update."}
    if content is not None and not await engine.update_content(node_id, content):
        if engine.error:
            return _failure(engine, "Editing")
    if note is not None and not await engine.update_note(node_id, note):
        return _failure(engine, "Editing the note")
    if checked is not None and node.is_checked != checked:
        if node.node_type != "checkbox" and not await engine.toggle_node_type(node_id):
            return _failure(engine, "Changing the item type")
        if not await engine.toggle_checkbox(node_id):
            return _failure(engine, "Toggling the checkbox")
    return {"success": True, "node_id": node_id}


async def outline_move_node(
    engine: OutlineEngine,
    *,
    node_id: str,
    action: str,
    parent_id: str | None = None,
    index: int | None = None,
) -> dict[str, Any]:
    """Restructure: action is indent, outdent, up, down or reparent."""
    mutator = engine.mutator
    if action == "indent":
        ok = await mutator.indent(node_id)
    elif action == "outdent":
        ok = await mutator.outdent(node_id)
    elif action == "up":
        ok = await mutator.swap_with_previous(node_id)
    elif action == "down":
        ok = await mutator.swap_with_next(node_id)
    elif action == "reparent":
        ok = await mutator.move_to(node_id, parent_id, index)
    else:
        return {"success": False, "error": f"Unknown action '{action}'."}
    if not ok:
        return _failure(engine, f"'{action}'")
    node = engine.get_node(node_id)
    return {
        "success": True,
        "node_id": node_id,
        "parent_id": node.parent_id if node else None,
    }


async def outline_delete_node(engine: OutlineEngine, *, node_id: str) -> dict[str, Any]:
    """Delete an item with its subtree."""
    if not await engine.delete_node(node_id):
        return _failure(engine, "Deleting")
    return {"success": True, "focused_id": engine.focused_id}


async def outline_undo(engine: OutlineEngine) -> dict[str, Any]:
    description = engine.undo_log.undo_description
    if not await engine.undo():
        return _failure(engine, "Undo")
    return {"success": True, "undone": description}


async def outline_redo(engine: OutlineEngine) -> dict[str, Any]:
    description = engine.undo_log.redo_description
    if not await engine.redo():
        return _failure(engine, "Redo")
    return {"success": True, "redone": description}


# --- Server lifecycle ---


@dataclass
class ServerContext:
    """Shared state for MCP tool calls."""

    engine: OutlineEngine
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the backend and load the document on startup, close on shutdown."""
    backend = open_backend()
    engine = OutlineEngine(backend)
    try:
        if not await engine.load(os.environ.get("OUTLINE_DOCUMENT") or None):
            logger.error("Cannot open document: {}", engine.error)
        yield ServerContext(engine=engine)
    finally:
        await engine.flush_pending_edits()
        backend.close()


mcp_server = FastMCP(
    "outline",
    instructions="""\
The outline is a tree of items (bullets, checkboxes, headings) with optional notes.

1. Use outline_search_tool to find items, then outline_read_node_tool to read
   the subtree below a result; the detail usually lives in the children.
2. outline_get_node_context_tool shows siblings and the ancestor path.
3. Edits are undoable with outline_undo_tool.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


async def _engine(ctx: ServerContext) -> OutlineEngine:
    """Pick up external changes before serving a tool call."""
    await ctx.engine.check_and_reload()
    return ctx.engine


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def outline_list_documents_tool(ctx: Context) -> dict[str, Any]:
    """List all outline documents."""
    server = _ctx(ctx)
    async with server.lock:
        return await outline_list_documents(await _engine(server))


@mcp_server.tool()
async def outline_read_node_tool(
    ctx: Context,
    node_id: str | None = None,
    max_depth: int | None = None,
    include_notes: bool = True,
) -> dict[str, Any]:
    """Read an item and its subtree as markdown (omit node_id for the whole document).

    Args:
        node_id: Item to read.
        max_depth: Max levels below the item (None = unlimited).
        include_notes: Whether to include notes.
    """
    server = _ctx(ctx)
    async with server.lock:
        return await outline_read_node(
            await _engine(server),
            node_id=node_id,
            max_depth=max_depth,
            include_notes=include_notes,
        )


@mcp_server.tool()
async def outline_get_node_context_tool(
    ctx: Context, node_id: str, sibling_count: int = 3
) -> dict[str, Any]:
    """Show an item with its ancestors, neighbouring siblings and children."""
    server = _ctx(ctx)
    async with server.lock:
        return await outline_get_node_context(
            await _engine(server), node_id=node_id, sibling_count=sibling_count
        )


@mcp_server.tool()
async def outline_search_tool(ctx: Context, query: str, limit: int = 20) -> dict[str, Any]:
    """Full-text search in the open document.

    Args:
        query: Search text. Words are ANDed; "quoted phrases" match exactly.
        limit: Max results (1-50).
    """
    server = _ctx(ctx)
    async with server.lock:
        return await outline_search(await _engine(server), query=query, limit=limit)


@mcp_server.tool()
async def outline_add_node_tool(
    ctx: Context,
    content: str,
    parent_id: str | None = None,
    after_id: str | None = None,
    note: str | None = None,
    checkbox: bool = False,
) -> dict[str, Any]:
    """Add an item.

    Args:
        content: Text of the new item.
        parent_id: Append as the last child of this item (omit for root level).
        after_id: Insert right after this item instead.
        note: Optional note.
        checkbox: Create a checkbox instead of a bullet.
    """
    server = _ctx(ctx)
    async with server.lock:
        return await outline_add_node(
            await _engine(server),
            content=content,
            parent_id=parent_id,
            after_id=after_id,
            note=note,
            checkbox=checkbox,
        )


@mcp_server.tool()
async def outline_edit_node_tool(
    ctx: Context,
    node_id: str,
    content: str | None = None,
    note: str | None = None,
    checked: bool | None = None,
) -> dict[str, Any]:
    """Edit an item's content, note, or checked state.

    Args:
        node_id: Item to edit.
        content: New content text.
        note: New note text (empty string clears it).
        checked: New checked state.
    """
    server = _ctx(ctx)
    async with server.lock:
        return await outline_edit_node(
            await _engine(server), node_id=node_id, content=content, note=note, checked=checked
        )


@mcp_server.tool()
async def outline_move_node_tool(
    ctx: Context,
    node_id: str,
    action: str,
    parent_id: str | None = None,
    index: int | None = None,
) -> dict[str, Any]:
    """Restructure the outline.

    Args:
        node_id: Item to move.
        action: "indent", "outdent", "up", "down" or "reparent".
        parent_id: New parent for "reparent" (omit for root level).
        index: Position among the new siblings for "reparent" (default last).
    """
    server = _ctx(ctx)
    async with server.lock:
        return await outline_move_node(
            await _engine(server), node_id=node_id, action=action, parent_id=parent_id, index=index
        )


@mcp_server.tool()
async def outline_delete_node_tool(ctx: Context, node_id: str) -> dict[str, Any]:
    """Delete an item and everything below it."""
    server = _ctx(ctx)
    async with server.lock:
        return await outline_delete_node(await _engine(server), node_id=node_id)


@mcp_server.tool()
async def outline_undo_tool(ctx: Context) -> dict[str, Any]:
    """Undo the last edit made through this server."""
    server = _ctx(ctx)
    async with server.lock:
        return await outline_undo(await _engine(server))


@mcp_server.tool()
async def outline_redo_tool(ctx: Context) -> dict[str, Any]:
    """Redo the last undone edit."""
    server = _ctx(ctx)
    async with server.lock:
        return await outline_redo(await _engine(server))


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from outline_engine.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
