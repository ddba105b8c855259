"""Parse JSON backups and Dynalist .c.json files into nodes."""

import uuid
from collections import deque
from datetime import UTC, datetime
from typing import Any

from outline_engine.models.node import Node

BACKUP_VERSION = 1

# Dynalist color index -> color name.
DYNALIST_COLORS = {1: "red", 2: "orange", 3: "yellow", 4: "green", 5: "blue", 6: "purple"}


def _ms_to_iso(value: Any) -> str:
    if not isinstance(value, int | float):
        return ""
    return datetime.fromtimestamp(value / 1000, tz=UTC).isoformat()


def parse_backup(data: dict[str, Any]) -> list[Node]:
    """Read the nodes of a ``{"version": 1, "nodes": [...]}`` backup.

    Raises:
        ValueError: On an unsupported version or a node without an id.
    """
    version = data.get("version")
    if version != BACKUP_VERSION:
        msg = f"Unsupported backup version: {version!r}"
        raise ValueError(msg)
    nodes: list[Node] = []
    for raw in data.get("nodes", []):
        if not raw.get("id"):
            msg = f"Backup node without id: {raw!r}"
            raise ValueError(msg)
        nodes.append(Node.from_dict(raw))
    return nodes


def dump_backup(nodes: "list[Node] | tuple[Node, ...]") -> dict[str, Any]:
    """Serialize nodes into the backup format."""
    return {
        "version": BACKUP_VERSION,
        "exported_at": datetime.now(UTC).isoformat(),
        "nodes": [n.to_dict() for n in nodes],
    }


def parse_dynalist_document(data: dict[str, Any]) -> tuple[str, list[Node]]:
    """Parse a Dynalist document dict into its title and parent/position nodes.

    The synthetic ``root`` node is dropped; its children become root items.

    Args:
        data: Raw document data (as from a .c.json file).

    Returns:
        Tuple of (title, nodes in breadth-first order).
    """
    nodes_by_id = {n["id"]: n for n in data["nodes"]}
    result: list[Node] = []

    # BFS; position comes from the index in the parent's children array.
    root = nodes_by_id.pop("root")
    todo: deque[tuple[str, str | None, int]] = deque(
        (child_id, None, i) for i, child_id in enumerate(root.get("children", []))
    )
    while todo:
        node_id, parent_id, position = todo.popleft()
        raw = nodes_by_id.pop(node_id)
        checked = raw.get("checked")
        heading = raw.get("heading") or 0

        if heading:
            node_type = "heading"
        elif raw.get("checkbox") or checked is not None:
            node_type = "checkbox"
        else:
            node_type = "bullet"

        result.append(
            Node(
                id=node_id,
                parent_id=parent_id,
                position=position,
                content=raw.get("content", ""),
                node_type=node_type,
                is_checked=bool(checked),
                collapsed=bool(raw.get("collapsed", False)),
                note=raw.get("note") or None,
                heading_level=heading or None,
                color=DYNALIST_COLORS.get(raw.get("color") or 0),
                created_at=_ms_to_iso(raw.get("created")),
                updated_at=_ms_to_iso(raw.get("modified")),
            )
        )

        for i, child_id in enumerate(raw.get("children", [])):
            todo.append((child_id, node_id, i))

    if nodes_by_id:
        msg = f"Orphaned nodes: {sorted(nodes_by_id.keys())!r}"
        raise ValueError(msg)

    return data.get("title", "Untitled"), result


def with_fresh_ids(nodes: list[Node], *, root_offset: int = 0) -> list[Node]:
    """Give every node a new id (parent links follow) and shift root positions.

    Nodes whose parent is not part of ``nodes`` become root items.
    """
    mapping = {n.id: str(uuid.uuid4()) for n in nodes}
    result: list[Node] = []
    for node in nodes:
        parent_id = mapping.get(node.parent_id) if node.parent_id else None
        position = node.position + root_offset if parent_id is None else node.position
        result.append(
            Node.from_dict(
                {**node.to_dict(), "id": mapping[node.id], "parent_id": parent_id, "position": position}
            )
        )
    return result
