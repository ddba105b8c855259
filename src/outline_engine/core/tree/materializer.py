"""Build the visible tree and its flattened projection from the node table."""

from dataclasses import dataclass

from loguru import logger

from outline_engine.core.search.tags import node_matches_filter
from outline_engine.core.tree.index import NodeTable
from outline_engine.models.node import FlatItem, Node, TreeNode


@dataclass(frozen=True)
class ViewSettings:
    """Inputs besides the node list that shape the visible tree."""

    filter_query: str | None = None
    hide_completed: bool = False
    zoom_root_id: str | None = None


def _matching_ids(table: NodeTable, filter_query: str) -> set[str]:
    """Ids of nodes matching the filter plus all of their ancestors."""
    visible: set[str] = set()
    for node in table.nodes:
        if node.id in visible or not node_matches_filter(node, filter_query):
            continue
        visible.add(node.id)
        visible.update(table.ancestor_ids(node.id))
    return visible


def _visible_children(
    table: NodeTable,
    parent_id: str | None,
    filtered_ids: set[str] | None,
    hide_completed: bool,
) -> list[Node]:
    children: list[Node] = list(table.children_of(parent_id))
    if hide_completed:
        children = [n for n in children if not n.is_checked]
    if filtered_ids is not None:
        children = [n for n in children if n.id in filtered_ids]
    return children


def build_tree(
    table: NodeTable,
    parent_id: str | None,
    depth: int,
    *,
    filtered_ids: set[str] | None = None,
    hide_completed: bool = False,
) -> tuple[TreeNode, ...]:
    """Recursively materialize the visible children of ``parent_id``.

    A collapsed node keeps ``has_children`` but gets no children, unless a
    filter is active, which expands everything so matches stay reachable.
    """
    result: list[TreeNode] = []
    for node in _visible_children(table, parent_id, filtered_ids, hide_completed):
        has_children = bool(_visible_children(table, node.id, filtered_ids, hide_completed))
        expand = has_children and (filtered_ids is not None or not node.collapsed)
        children = (
            build_tree(
                table,
                node.id,
                depth + 1,
                filtered_ids=filtered_ids,
                hide_completed=hide_completed,
            )
            if expand
            else ()
        )
        result.append(TreeNode(node=node, depth=depth, has_children=has_children, children=children))
    return tuple(result)


def flatten_tree(tree: tuple[TreeNode, ...]) -> tuple[FlatItem, ...]:
    """Pre-order linearization of a materialized tree."""
    result: list[FlatItem] = []
    stack = list(reversed(tree))
    while stack:
        item = stack.pop()
        result.append(FlatItem(node=item.node, depth=item.depth, has_children=item.has_children))
        stack.extend(reversed(item.children))
    return tuple(result)


class TreeMaterializer:
    """Memoized tree/flat-list builder.

    The cache key is the identity of the installed node tuple plus the
    filter, hide-completed flag and zoom root. Any change to one of those
    recomputes the whole projection on the next read.
    """

    def __init__(self, table: NodeTable) -> None:
        self.table = table
        self._cached_nodes: tuple[Node, ...] | None = None
        self._cached_settings: ViewSettings | None = None
        self._tree: tuple[TreeNode, ...] = ()
        self._flat: tuple[FlatItem, ...] = ()
        self.build_count = 0

    def _is_fresh(self, settings: ViewSettings) -> bool:
        return self._cached_nodes is self.table.nodes and self._cached_settings == settings

    def _rebuild(self, settings: ViewSettings) -> None:
        filtered_ids = (
            _matching_ids(self.table, settings.filter_query) if settings.filter_query else None
        )
        zoom_root = settings.zoom_root_id if settings.zoom_root_id in self.table else None
        self._tree = build_tree(
            self.table,
            zoom_root,
            0,
            filtered_ids=filtered_ids,
            hide_completed=settings.hide_completed,
        )
        self._flat = flatten_tree(self._tree)
        self._cached_nodes = self.table.nodes
        self._cached_settings = settings
        self.build_count += 1
        logger.debug(
            "Materialized tree: {} visible of {} nodes", len(self._flat), len(self.table)
        )

    def get_tree(self, settings: ViewSettings) -> tuple[TreeNode, ...]:
        if not self._is_fresh(settings):
            self._rebuild(settings)
        return self._tree

    def get_flat_list(self, settings: ViewSettings) -> tuple[FlatItem, ...]:
        if not self._is_fresh(settings):
            self._rebuild(settings)
        return self._flat

    def invalidate(self) -> None:
        self._cached_nodes = None
        self._cached_settings = None
