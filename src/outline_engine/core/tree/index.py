"""Node table with an incrementally maintained parent -> children index."""

from collections.abc import Iterator, Sequence

from loguru import logger

from outline_engine.config import FULL_REBUILD_RATIO
from outline_engine.models.node import Node, RebuildStats


def _sort_key(node: Node) -> tuple[int, str]:
    return node.position, node.id


class NodeTable:
    """Authoritative node list of the open document plus derived indexes.

    ``replace`` installs a new node list. The id map and sibling groups are
    either rebuilt from scratch, or only the groups whose membership or order
    changed are recomputed. Untouched groups keep their identity.
    """

    def __init__(self, *, full_rebuild_ratio: float = FULL_REBUILD_RATIO) -> None:
        self.full_rebuild_ratio = full_rebuild_ratio
        self._nodes: tuple[Node, ...] = ()
        self._by_id: dict[str, Node] = {}
        self._children: dict[str | None, tuple[Node, ...]] = {}
        self.last_rebuild = RebuildStats(strategy="unchanged")

    # --- Reads ---

    @property
    def nodes(self) -> tuple[Node, ...]:
        return self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def get(self, node_id: str | None) -> Node | None:
        if node_id is None:
            return None
        return self._by_id.get(node_id)

    def children_of(self, parent_id: str | None) -> tuple[Node, ...]:
        """Children of ``parent_id`` (None = roots), ordered by position."""
        return self._children.get(parent_id, ())

    def root_nodes(self) -> tuple[Node, ...]:
        return self._children.get(None, ())

    def has_children(self, node_id: str) -> bool:
        return bool(self._children.get(node_id))

    def parent_of(self, node_id: str) -> Node | None:
        node = self._by_id.get(node_id)
        return self.get(node.parent_id) if node else None

    def siblings_of(self, node_id: str) -> tuple[Node, ...]:
        """Siblings of a node, including itself."""
        node = self._by_id.get(node_id)
        if node is None:
            return ()
        return self.children_of(node.parent_id)

    def index_in_parent(self, node_id: str) -> int:
        """Index among siblings, or -1 if the node is unknown."""
        for i, sibling in enumerate(self.siblings_of(node_id)):
            if sibling.id == node_id:
                return i
        return -1

    def ancestor_ids(self, node_id: str) -> list[str]:
        """Ancestor ids from the immediate parent up to the root."""
        ancestors: list[str] = []
        seen = {node_id}
        current = self._by_id.get(node_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                logger.warning("Parent cycle detected at {}", current.parent_id)
                break
            ancestors.append(current.parent_id)
            seen.add(current.parent_id)
            current = self._by_id.get(current.parent_id)
        return ancestors

    def depth_of(self, node_id: str) -> int:
        return len(self.ancestor_ids(node_id))

    def descendants(self, node_id: str) -> list[Node]:
        """All descendants in pre-order, position-ascending."""
        result: list[Node] = []
        stack = list(reversed(self.children_of(node_id)))
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(self.children_of(node.id)))
        return result

    # --- Writes ---

    def clear(self) -> None:
        self._nodes = ()
        self._by_id = {}
        self._children = {}
        self.last_rebuild = RebuildStats(strategy="full")

    def replace(self, nodes: Sequence[Node]) -> RebuildStats:
        """Install a new authoritative node list and maintain the indexes."""
        new_nodes = tuple(nodes)
        if new_nodes is self._nodes:
            self.last_rebuild = RebuildStats(strategy="unchanged")
            return self.last_rebuild

        if not self._nodes:
            self._full_rebuild(new_nodes)
            return self.last_rebuild

        new_by_id = {n.id: n for n in new_nodes}
        affected, incoming, patched = self._diff(new_nodes, new_by_id)

        threshold = max(1, int(len(self._children) * self.full_rebuild_ratio))
        if len(affected) > threshold:
            self._full_rebuild(new_nodes)
            return self.last_rebuild

        for parent_id in affected:
            kept = [
                new_by_id[n.id]
                for n in self._children.get(parent_id, ())
                if n.id in new_by_id and new_by_id[n.id].parent_id == parent_id
            ]
            group = sorted(kept + incoming.get(parent_id, []), key=_sort_key)
            if group:
                self._children[parent_id] = tuple(group)
            else:
                self._children.pop(parent_id, None)

        for node in patched:
            if node.parent_id in affected:
                continue
            group = list(self._children.get(node.parent_id, ()))
            for i, old in enumerate(group):
                if old.id == node.id:
                    group[i] = node
                    break
            self._children[node.parent_id] = tuple(group)

        for removed_id in set(self._by_id) - set(new_by_id):
            self._children.pop(removed_id, None)

        self._nodes = new_nodes
        self._by_id = new_by_id
        self.last_rebuild = RebuildStats(
            strategy="surgical",
            affected_parents=frozenset(affected),
            patched_nodes=len(patched),
        )
        logger.debug(
            "Surgical index rebuild: {} affected parents, {} patched nodes",
            len(affected),
            len(patched),
        )
        return self.last_rebuild

    def _diff(
        self, new_nodes: tuple[Node, ...], new_by_id: dict[str, Node]
    ) -> tuple[set[str | None], dict[str | None, list[Node]], list[Node]]:
        """Compare against the installed list.

        Returns (affected parent ids, nodes entering each parent, nodes whose
        fields changed without affecting order).
        """
        affected: set[str | None] = set()
        incoming: dict[str | None, list[Node]] = {}
        patched: list[Node] = []

        for node in new_nodes:
            old = self._by_id.get(node.id)
            if old is None:
                affected.add(node.parent_id)
                incoming.setdefault(node.parent_id, []).append(node)
            elif old.parent_id != node.parent_id:
                affected.add(old.parent_id)
                affected.add(node.parent_id)
                incoming.setdefault(node.parent_id, []).append(node)
            elif old.position != node.position:
                affected.add(node.parent_id)
            elif old is not node and old != node:
                patched.append(node)

        for old_id, old in self._by_id.items():
            if old_id not in new_by_id:
                affected.add(old.parent_id)

        return affected, incoming, patched

    def _full_rebuild(self, new_nodes: tuple[Node, ...]) -> None:
        by_id: dict[str, Node] = {}
        groups: dict[str | None, list[Node]] = {}
        for node in new_nodes:
            by_id[node.id] = node
            groups.setdefault(node.parent_id, []).append(node)

        orphans = [pid for pid in groups if pid is not None and pid not in by_id]
        if orphans:
            logger.warning("Nodes reference missing parents: {}", sorted(orphans))

        self._nodes = new_nodes
        self._by_id = by_id
        self._children = {pid: tuple(sorted(g, key=_sort_key)) for pid, g in groups.items()}
        self.last_rebuild = RebuildStats(
            strategy="full", affected_parents=frozenset(self._children)
        )
        logger.debug("Full index rebuild: {} nodes, {} groups", len(new_nodes), len(groups))
