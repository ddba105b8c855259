"""Render node subtrees as markdown."""

import io
from collections.abc import Iterable

from outline_engine.core.search.tags import strip_html
from outline_engine.core.tree.index import NodeTable
from outline_engine.models.node import Node


def _bullet(node: Node) -> str:
    if node.is_checked:
        return "- [x] "
    if node.node_type == "checkbox":
        return "- [ ] "
    return "- "


def _write_node(
    out: io.StringIO,
    table: NodeTable,
    node: Node,
    depth: int,
    *,
    include_notes: bool,
    skip_completed: bool,
    max_depth: int | None,
) -> None:
    indent = "  " * depth
    lines = strip_html(node.content).strip().split("\n")
    out.write(f"{indent}{_bullet(node)}{lines[0]}\n")
    for line in lines[1:]:
        out.write(f"{indent}  {line}\n")

    if include_notes and node.note:
        for note_line in node.note.split("\n"):
            out.write(f"{indent}  {note_line}\n")

    if max_depth is not None and depth >= max_depth:
        return
    for child in table.children_of(node.id):
        if skip_completed and child.is_checked:
            continue
        _write_node(
            out,
            table,
            child,
            depth + 1,
            include_notes=include_notes,
            skip_completed=skip_completed,
            max_depth=max_depth,
        )


def render_markdown(
    table: NodeTable,
    *,
    node_ids: Iterable[str] | None = None,
    include_notes: bool = True,
    skip_completed: bool = False,
    max_depth: int | None = None,
) -> str:
    """Render the document, or the given subtrees, as indented markdown.

    Args:
        table: Node table of the document.
        node_ids: Roots to render, in order (None = every root item).
        include_notes: Whether to include node notes.
        skip_completed: Leave out checked descendants of the rendered roots.
        max_depth: Max levels below each root to include (None = unlimited).

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    if node_ids is None:
        roots = [n for n in table.root_nodes() if not (skip_completed and n.is_checked)]
    else:
        roots = [n for n in (table.get(i) for i in node_ids) if n is not None]

    out = io.StringIO()
    for root in roots:
        _write_node(
            out,
            table,
            root,
            0,
            include_notes=include_notes,
            skip_completed=skip_completed,
            max_depth=max_depth,
        )
    return out.getvalue()
