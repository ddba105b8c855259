"""CLI for outline documents (browse, edit, import/export, MCP server)."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from loguru import logger

from outline_engine.backends.factory import database_path, open_backend
from outline_engine.backends.sqlite import SqliteBackend
from outline_engine.core.engine import OutlineEngine
from outline_engine.core.importer.json_reader import dump_backup
from outline_engine.core.importer.loader import import_path
from outline_engine.core.importer.opml import dump_opml
from outline_engine.core.search.tags import strip_html
from outline_engine.core.tree.markdown import render_markdown
from outline_engine.logging_config import configure_logging
from outline_engine.models.node import TreeNode

app = typer.Typer(help="Outline: a hierarchical outliner for the terminal.")

T = TypeVar("T")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Database directory"),
]
DocumentOption = Annotated[
    str | None,
    typer.Option("--document", "-D", help="Document title or id (default document if omitted)"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _with_engine(
    data_dir: Path | None,
    document: str | None,
    action: Callable[[OutlineEngine], Awaitable[T]],
) -> T:
    """Open the backend, load the document and run ``action`` on the engine."""

    async def run() -> T:
        backend = open_backend(data_dir)
        try:
            doc_id = await _resolve_document(backend, document) if document else None
            engine = OutlineEngine(backend)
            if not await engine.load(doc_id):
                logger.error("Cannot open document: {}", engine.error)
                raise typer.Exit(1)
            result = await action(engine)
            await engine.flush_pending_edits()
            return result
        finally:
            backend.close()

    return asyncio.run(run())


async def _resolve_document(backend: Any, document: str) -> str:
    """Resolve a document title or id to an id."""
    for doc in await backend.list_documents():
        if document in (doc.id, doc.title):
            return doc.id
    typer.echo(f"Document '{document}' not found.", err=True)
    raise typer.Exit(1)


def _check(engine: OutlineEngine, ok: object, what: str) -> None:
    if not ok:
        typer.echo(f"{what} failed: {engine.error or 'not possible here'}", err=True)
        raise typer.Exit(1)


def _tree_to_json(items: tuple[TreeNode, ...]) -> list[dict[str, Any]]:
    return [
        {
            **item.node.to_dict(),
            "depth": item.depth,
            "has_children": item.has_children,
            "children": _tree_to_json(item.children),
        }
        for item in items
    ]


@app.command(name="import")
def import_cmd(
    source: Path = typer.Argument(..., help="JSON backup, .c.json or .opml file, or a directory of them"),
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Import JSON backups, Dynalist files or OPML outlines into the database."""
    if not source.exists():
        logger.error("Source not found: {}", source)
        raise typer.Exit(1)

    backend = SqliteBackend(database_path(data_dir))
    try:
        doc_id = asyncio.run(_resolve_document(backend, document)) if document else None
        stats = import_path(backend.conn, source, document_id=doc_id)
        typer.echo(
            f"Imported {stats.documents_imported} documents "
            f"({stats.nodes_imported} nodes), "
            f"skipped {stats.documents_skipped}"
        )
    finally:
        backend.close()


@app.command()
def documents(data_dir: DataDirOption = None) -> None:
    """List all documents."""

    async def run() -> None:
        backend = open_backend(data_dir)
        try:
            docs = await backend.list_documents()
        finally:
            backend.close()
        typer.echo(f"{len(docs)} documents:\n")
        for doc in docs:
            typer.echo(f"  {doc.title} - {doc.node_count} nodes  [id={doc.id}]")

    asyncio.run(run())


@app.command()
def show(
    document: DocumentOption = None,
    filter_query: Annotated[
        str | None,
        typer.Option("--filter", "-f", help="Show only items with this #tag or @mention"),
    ] = None,
    hide_completed: bool = typer.Option(False, "--hide-completed", "-H", help="Hide checked items"),
    zoom: Annotated[
        str | None,
        typer.Option("--zoom", "-z", help="Show only the subtree of this node id"),
    ] = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    data_dir: DataDirOption = None,
) -> None:
    """Print the visible outline."""

    async def run(engine: OutlineEngine) -> None:
        engine.set_filter(filter_query)
        engine.set_hide_completed(hide_completed)
        if zoom and not engine.zoom_in(zoom):
            typer.echo(f"Node '{zoom}' not found.", err=True)
            raise typer.Exit(1)

        if output_json:
            typer.echo(json.dumps(_tree_to_json(engine.get_tree()), indent=2))
            return
        for crumb in engine.zoom_breadcrumbs():
            typer.echo(f"{'  ' * crumb.depth}> {crumb.content}")
        for item in engine.get_flat_list():
            node = item.node
            if node.node_type == "checkbox":
                marker = "[x]" if node.is_checked else "[ ]"
            elif node.collapsed and item.has_children:
                marker = "+"
            else:
                marker = "-"
            typer.echo(f"{'  ' * item.depth}{marker} {strip_html(node.content)}  [id={node.id}]")

    _with_engine(data_dir, document, run)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    document: DocumentOption = None,
    limit: int = typer.Option(10, "--limit", "-n", help="Max results"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    data_dir: DataDirOption = None,
) -> None:
    """Search for items matching a query."""

    async def run(engine: OutlineEngine) -> None:
        results = await engine.search(query, limit=limit)
        _check(engine, engine.error is None, "Search")
        if output_json:
            data = [
                {
                    "node_id": r.node.id,
                    "document": r.document_title,
                    "content": r.node.content,
                    "snippet": r.snippet,
                }
                for r in results
            ]
            typer.echo(json.dumps({"results": data, "count": len(data)}, indent=2))
            return
        typer.echo(f"Found {len(results)} results:\n")
        for r in results:
            typer.echo(f"  [{r.document_title}] {strip_html(r.node.content)[:80]}")
            typer.echo(f"    id={r.node.id}")

    _with_engine(data_dir, document, run)


@app.command()
def add(
    content: str = typer.Argument(..., help="Text of the new item"),
    parent: Annotated[
        str | None, typer.Option("--parent", "-p", help="Append as last child of this node")
    ] = None,
    after: Annotated[
        str | None, typer.Option("--after", "-a", help="Insert right after this node")
    ] = None,
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Add an item."""

    async def run(engine: OutlineEngine) -> None:
        if after:
            new_id = await engine.add_sibling_after(after, content)
        else:
            new_id = await engine.add_child(parent, content)
        _check(engine, new_id, "Add")
        typer.echo(new_id)

    _with_engine(data_dir, document, run)


@app.command()
def edit(
    node_id: str = typer.Argument(..., help="Node ID to edit"),
    content: Annotated[str | None, typer.Option("--content", "-c", help="New text")] = None,
    note: Annotated[
        str | None, typer.Option("--note", "-n", help="New note (empty string clears it)")
    ] = None,
    checked: Annotated[
        bool | None, typer.Option("--check/--uncheck", help="Set the checkbox state")
    ] = None,
    date: Annotated[
        str | None, typer.Option("--date", help="Due date YYYY-MM-DD (empty string clears it)")
    ] = None,
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Edit an item's text, note, checkbox or date."""

    async def run(engine: OutlineEngine) -> None:
        if engine.get_node(node_id) is None:
            typer.echo(f"Node '{node_id}' not found.", err=True)
            raise typer.Exit(1)
        if content is not None:
            _check(engine, await engine.update_content(node_id, content), "Edit")
        if note is not None:
            _check(engine, await engine.update_note(node_id, note), "Edit")
        if date is not None:
            _check(engine, await engine.set_date(node_id, date), "Edit")
        if checked is not None:
            node = engine.get_node(node_id)
            if node is not None and node.node_type != "checkbox":
                _check(engine, await engine.toggle_node_type(node_id), "Edit")
                node = engine.get_node(node_id)
            if node is not None and node.is_checked != checked:
                _check(engine, await engine.toggle_checkbox(node_id), "Edit")
        typer.echo(f"Updated {node_id}")

    _with_engine(data_dir, document, run)


def _structural(
    data_dir: Path | None,
    document: str | None,
    what: str,
    op: Callable[[OutlineEngine], Awaitable[bool]],
) -> None:
    async def run(engine: OutlineEngine) -> None:
        _check(engine, await op(engine), what)
        typer.echo(f"{what}: ok")

    _with_engine(data_dir, document, run)


@app.command()
def indent(
    node_id: str = typer.Argument(..., help="Node ID"),
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Make an item the last child of its previous sibling."""
    _structural(data_dir, document, "Indent", lambda e: e.mutator.indent(node_id))


@app.command()
def outdent(
    node_id: str = typer.Argument(..., help="Node ID"),
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Make an item the next sibling of its parent."""
    _structural(data_dir, document, "Outdent", lambda e: e.mutator.outdent(node_id))


@app.command(name="move-up")
def move_up(
    node_id: str = typer.Argument(..., help="Node ID"),
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Swap an item with its previous sibling."""
    _structural(data_dir, document, "Move up", lambda e: e.mutator.swap_with_previous(node_id))


@app.command(name="move-down")
def move_down(
    node_id: str = typer.Argument(..., help="Node ID"),
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Swap an item with its next sibling."""
    _structural(data_dir, document, "Move down", lambda e: e.mutator.swap_with_next(node_id))


@app.command()
def move(
    node_id: str = typer.Argument(..., help="Node ID"),
    parent: Annotated[
        str | None, typer.Option("--parent", "-p", help="New parent (omit for root level)")
    ] = None,
    index: Annotated[
        int | None, typer.Option("--index", "-i", help="Position among new siblings")
    ] = None,
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move an item under another parent."""
    _structural(data_dir, document, "Move", lambda e: e.mutator.move_to(node_id, parent, index))


@app.command()
def delete(
    node_id: str = typer.Argument(..., help="Node ID"),
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Delete an item and everything below it."""

    _structural(data_dir, document, "Delete", lambda e: e.delete_node(node_id))


@app.command()
def export(
    fmt: Annotated[
        str, typer.Option("--format", "-F", help="markdown, json or opml")
    ] = "markdown",
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write to file instead of stdout")
    ] = None,
    nodes: Annotated[
        list[str] | None, typer.Option("--node", help="Export only these subtrees")
    ] = None,
    skip_completed: bool = typer.Option(
        False, "--skip-completed", help="Leave out checked items"
    ),
    document: DocumentOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Export a document as markdown, a JSON backup or OPML."""
    if fmt not in ("markdown", "json", "opml"):
        typer.echo(f"Unknown format '{fmt}'.", err=True)
        raise typer.Exit(1)

    async def run(engine: OutlineEngine) -> str:
        if fmt == "json":
            return json.dumps(dump_backup(engine.table.nodes), indent=2)
        if fmt == "opml":
            docs = await engine.backend.list_documents()
            title = next((d.title for d in docs if d.id == engine.document_id), "Outline")
            return dump_opml(engine.table.nodes, title)
        return render_markdown(engine.table, node_ids=nodes or None, skip_completed=skip_completed)

    text = _with_engine(data_dir, document, run)
    if output:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(text)


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from outline_engine.mcp.server import run_mcp_server

    run_mcp_server()
