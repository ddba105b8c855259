"""Focused node plus multi-selection over the visible list."""

from collections.abc import Callable, Sequence

from outline_engine.core.tree.index import NodeTable

VisibleIds = Callable[[], Sequence[str]]


class SelectionManager:
    """Track the focused node and a set of selected node ids.

    An empty selection means "operate on the focused node". Range, sibling,
    child, select-all and invert operations only ever pick ids that are in
    the current visible list, as returned by ``visible_ids``.
    """

    def __init__(self, table: NodeTable, visible_ids: VisibleIds) -> None:
        self.table = table
        self._visible_ids = visible_ids
        self.focused_id: str | None = None
        self.selected_ids: set[str] = set()

    @property
    def has_selection(self) -> bool:
        return bool(self.selected_ids)

    def is_selected(self, node_id: str) -> bool:
        return node_id in self.selected_ids

    def focus(self, node_id: str | None) -> None:
        """Move focus without touching the selection."""
        self.focused_id = node_id

    def click(self, node_id: str) -> None:
        """Plain click: clear the selection and focus the node."""
        self.selected_ids.clear()
        self.focused_id = node_id

    def clear_selection(self) -> None:
        self.selected_ids.clear()

    def toggle_selection(self, node_id: str) -> None:
        """Flip membership of ``node_id`` and focus it."""
        if node_id in self.selected_ids:
            self.selected_ids.discard(node_id)
        else:
            self.selected_ids.add(node_id)
        self.focused_id = node_id

    def select_range(self, to_id: str) -> list[str]:
        """Select the visible nodes between the focused node and ``to_id``, inclusive."""
        visible = list(self._visible_ids())
        if to_id not in visible:
            return []
        end = visible.index(to_id)
        start = visible.index(self.focused_id) if self.focused_id in visible else end
        lo, hi = min(start, end), max(start, end)
        picked = visible[lo : hi + 1]
        self.selected_ids = set(picked)
        return picked

    def select_siblings(self) -> None:
        """Select the visible siblings of the focused node (itself included)."""
        if self.focused_id is None or self.focused_id not in self.table:
            return
        visible = set(self._visible_ids())
        self.selected_ids = {
            n.id for n in self.table.siblings_of(self.focused_id) if n.id in visible
        }

    def select_children(self) -> None:
        """Select the visible direct children of the focused node."""
        if self.focused_id is None:
            return
        visible = set(self._visible_ids())
        self.selected_ids = {
            n.id for n in self.table.children_of(self.focused_id) if n.id in visible
        }

    def select_all(self) -> None:
        self.selected_ids = set(self._visible_ids())

    def invert_selection(self) -> None:
        self.selected_ids = set(self._visible_ids()) - self.selected_ids

    def prune(self) -> None:
        """Drop ids that no longer exist; refocus if the focused node vanished."""
        self.selected_ids = {i for i in self.selected_ids if i in self.table}
        if self.focused_id is not None and self.focused_id not in self.table:
            self.focused_id = None

    def target_ids(self) -> list[str]:
        """Ids a bulk operation acts on, in visible order.

        Selected ids that are currently hidden are appended after the visible
        ones so bulk edits still reach them.
        """
        if not self.selected_ids:
            return [self.focused_id] if self.focused_id in self.table else []
        visible = list(self._visible_ids())
        ordered = [i for i in visible if i in self.selected_ids]
        hidden = sorted(i for i in self.selected_ids if i not in visible and i in self.table)
        return ordered + hidden

    def top_level_targets(self) -> list[str]:
        """Targets that have no selected ancestor, in visible order."""
        targets = self.target_ids()
        chosen = set(targets)
        return [
            node_id
            for node_id in targets
            if not any(a in chosen for a in self.table.ancestor_ids(node_id))
        ]
