"""Tree navigation: breadcrumbs, siblings, children, cycle checks."""

from outline_engine.core.search.tags import strip_html
from outline_engine.core.tree.index import NodeTable
from outline_engine.models.node import Breadcrumb, Node


def get_breadcrumbs(table: NodeTable, *, node_id: str) -> tuple[Breadcrumb, ...]:
    """Get ancestor breadcrumbs for a node.

    Returns breadcrumbs in order from root to immediate parent (excludes the node itself).
    """
    ancestor_ids = list(reversed(table.ancestor_ids(node_id)))
    crumbs: list[Breadcrumb] = []
    for depth, ancestor_id in enumerate(ancestor_ids):
        ancestor = table.get(ancestor_id)
        if ancestor is None:
            continue
        crumbs.append(
            Breadcrumb(node_id=ancestor.id, content=strip_html(ancestor.content), depth=depth)
        )
    return tuple(crumbs)


def get_siblings(
    table: NodeTable,
    *,
    node_id: str,
    count: int = 3,
) -> tuple[tuple[Node, ...], tuple[Node, ...]]:
    """Get siblings before and after a node.

    Returns (siblings_before, siblings_after) tuples.
    """
    siblings = table.siblings_of(node_id)
    idx = table.index_in_parent(node_id)
    if idx < 0:
        return (), ()
    return siblings[max(0, idx - count) : idx], siblings[idx + 1 : idx + 1 + count]


def get_children(table: NodeTable, *, parent_id: str | None, limit: int = 50) -> tuple[Node, ...]:
    """Get direct children of a node, ordered by position."""
    return table.children_of(parent_id)[:limit]


def is_descendant_or_self(table: NodeTable, *, node_id: str, candidate_id: str | None) -> bool:
    """True if ``candidate_id`` is ``node_id`` or lies in its subtree.

    Walks the ancestor chain of the candidate toward the root.
    """
    check_id = candidate_id
    seen: set[str] = set()
    while check_id is not None and check_id not in seen:
        if check_id == node_id:
            return True
        seen.add(check_id)
        parent = table.get(check_id)
        check_id = parent.parent_id if parent else None
    return False
