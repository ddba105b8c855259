"""The outline document engine: one instance per open document."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from outline_engine.config import (
    DEFAULT_DOCUMENT_ID,
    FULL_REBUILD_RATIO,
    NOTE_DEBOUNCE_SECONDS,
    UNDO_CAPACITY,
)
from outline_engine.core.scheduler import DelayedTaskScheduler
from outline_engine.core.search.tags import (
    TagUsage,
    collect_tags,
    extract_hashtags,
    extract_wiki_links,
    strip_html,
)
from outline_engine.core.selection import SelectionManager
from outline_engine.core.tree.index import NodeTable
from outline_engine.core.tree.materializer import TreeMaterializer, ViewSettings
from outline_engine.core.tree.navigation import get_breadcrumbs, is_descendant_or_self
from outline_engine.core.undo import UndoLog, batch_applies
from outline_engine.core.write.bulk import BulkOperations
from outline_engine.core.write.mutator import StructuralMutator
from outline_engine.models.node import (
    Breadcrumb,
    DocumentState,
    FlatItem,
    Node,
    NodeChanges,
    SearchResult,
    TreeNode,
    restore_changes,
)
from outline_engine.models.undo import (
    BatchAction,
    CreateAction,
    DeleteAction,
    MoveAction,
    SwapAction,
    UndoAction,
    UndoEntry,
    UpdateAction,
)
from outline_engine.protocols import BackendError, BackendProtocol


@dataclass
class Operation:
    """Outcome of one scoped backend round trip."""

    description: str
    ok: bool = True


class OutlineEngine:
    """In-memory engine for one open outline document.

    Owns the node table, the memoized view projection, the selection and
    the undo log. Every mutation goes through ``operation()``, which keeps
    ``pending_operations`` balanced and turns ``BackendError`` into the
    ``error`` string. State returned by the backend is installed as-is.
    """

    def __init__(
        self,
        backend: BackendProtocol,
        *,
        undo_capacity: int = UNDO_CAPACITY,
        full_rebuild_ratio: float = FULL_REBUILD_RATIO,
        note_debounce: float = NOTE_DEBOUNCE_SECONDS,
    ) -> None:
        self.backend = backend
        self.table = NodeTable(full_rebuild_ratio=full_rebuild_ratio)
        self.materializer = TreeMaterializer(self.table)
        self.selection = SelectionManager(self.table, self.visible_ids)
        self.undo_log = UndoLog(undo_capacity)
        self.scheduler = DelayedTaskScheduler()
        self.mutator = StructuralMutator(self)
        self.bulk = BulkOperations(self)
        self.note_debounce = note_debounce

        self.document_id: str | None = None
        self.loading = False
        self.error: str | None = None
        self.pending_operations = 0
        self.last_saved_at: datetime | None = None

        self.filter_query: str | None = None
        self.hide_completed = False
        self.zoom_root_id: str | None = None
        self.dragged_id: str | None = None

    # --- Operation plumbing ---

    @property
    def is_saving(self) -> bool:
        return self.pending_operations > 0

    @property
    def focused_id(self) -> str | None:
        return self.selection.focused_id

    @asynccontextmanager
    async def operation(self, description: str) -> AsyncIterator[Operation]:
        """Scope one mutation: count it as pending and capture backend failures."""
        op = Operation(description)
        self.pending_operations += 1
        try:
            yield op
        except BackendError as e:
            op.ok = False
            self.error = str(e)
            logger.warning("{} failed: {}", description, e)
        finally:
            self.pending_operations -= 1
            self.last_saved_at = datetime.now(UTC)

    def apply(self, state: DocumentState) -> None:
        """Install an authoritative state returned by the backend."""
        self.table.replace(state.nodes)
        if self.zoom_root_id is not None and self.zoom_root_id not in self.table:
            logger.debug("Zoom root {} vanished, resetting zoom", self.zoom_root_id)
            self.zoom_root_id = None
        if self.dragged_id is not None and self.dragged_id not in self.table:
            self.dragged_id = None
        self.selection.prune()

    def _install(self, state: DocumentState) -> None:
        """Replace the whole document (load or external reload)."""
        self.scheduler.cancel_all()
        self.table.clear()
        self.materializer.invalidate()
        self.apply(state)
        self.undo_log.clear()
        self.selection.clear_selection()
        if self.selection.focused_id is None:
            roots = self.table.root_nodes()
            self.selection.focus(roots[0].id if roots else None)

    def record(self, description: str, undo: UndoAction, redo: UndoAction) -> None:
        self.undo_log.push(UndoEntry(description=description, undo=undo, redo=redo))

    def clear_error(self) -> None:
        self.error = None

    async def _shift_tail(
        self, tail: list[Node], parent_id: str | None, last_taken: int
    ) -> None:
        floor = last_taken
        for sibling in tail:
            if sibling.position > floor:
                break
            floor += 1
            self.apply(await self.backend.move_node(sibling.id, parent_id, floor))

    async def make_room(
        self,
        parent_id: str | None,
        index: int,
        *,
        count: int = 1,
        exclude_id: str | None = None,
    ) -> int:
        """Free ``count`` consecutive positions at sibling ``index``; return the first.

        Siblings from the insertion point on are shifted just enough to keep
        positions strictly increasing.
        """
        group = [n for n in self.table.children_of(parent_id) if n.id != exclude_id]
        index = max(0, min(index, len(group)))
        position = 0 if index == 0 else max(index, group[index - 1].position + 1)
        await self._shift_tail(group[index:], parent_id, position + count - 1)
        return position

    async def make_room_at(
        self, parent_id: str | None, position: int, *, exclude_id: str | None = None
    ) -> None:
        """Shift siblings that occupy ``position`` (and any they collide with) up by one."""
        tail = [
            n
            for n in self.table.children_of(parent_id)
            if n.id != exclude_id and n.position >= position
        ]
        await self._shift_tail(tail, parent_id, position)

    # --- Document lifecycle ---

    async def load(self, doc_id: str | None = None) -> bool:
        """Open a document from the backend, replacing everything in memory."""
        self.loading = True
        self.error = None
        try:
            async with self.operation("Load document") as op:
                state = await self.backend.load_document(doc_id)
                self.selection.focus(None)
                self.zoom_root_id = None
                self._install(state)
                self.document_id = doc_id or DEFAULT_DOCUMENT_ID
                logger.info("Loaded document {} ({} nodes)", self.document_id, len(self.table))
        finally:
            self.loading = False
        return op.ok

    async def check_and_reload(self) -> bool:
        """Install externally changed state, if any. Clears undo history."""
        async with self.operation("Reload document") as op:
            state = await self.backend.reload_if_changed()
            if state is None:
                return False
            self._install(state)
            logger.info("Reloaded document after external change ({} nodes)", len(self.table))
        return op.ok

    # --- Views ---

    @property
    def view_settings(self) -> ViewSettings:
        return ViewSettings(
            filter_query=self.filter_query,
            hide_completed=self.hide_completed,
            zoom_root_id=self.zoom_root_id,
        )

    def get_tree(self) -> tuple[TreeNode, ...]:
        return self.materializer.get_tree(self.view_settings)

    def get_flat_list(self) -> tuple[FlatItem, ...]:
        return self.materializer.get_flat_list(self.view_settings)

    def get_visible_nodes(self) -> list[Node]:
        return [item.node for item in self.get_flat_list()]

    def visible_ids(self) -> list[str]:
        return [item.node.id for item in self.get_flat_list()]

    def get_node(self, node_id: str) -> Node | None:
        return self.table.get(node_id)

    def has_children(self, node_id: str) -> bool:
        return self.table.has_children(node_id)

    def is_collapsed(self, node_id: str) -> bool:
        node = self.table.get(node_id)
        return node.collapsed if node else False

    def set_filter(self, query: str | None) -> None:
        self.filter_query = query or None

    def clear_filter(self) -> None:
        self.filter_query = None

    def toggle_hide_completed(self) -> None:
        self.hide_completed = not self.hide_completed

    def set_hide_completed(self, value: bool) -> None:
        self.hide_completed = value

    def zoom_in(self, node_id: str) -> bool:
        """Restrict the view to the subtree of ``node_id``."""
        if node_id not in self.table:
            return False
        self.zoom_root_id = node_id
        children = self.table.children_of(node_id)
        if children:
            self.selection.focus(children[0].id)
        return True

    def zoom_out(self) -> str | None:
        """Zoom to the parent of the current zoom root. Returns the new zoom root."""
        if self.zoom_root_id is None:
            return None
        previous = self.table.get(self.zoom_root_id)
        self.zoom_root_id = previous.parent_id if previous else None
        if previous is not None:
            self.selection.focus(previous.id)
        return self.zoom_root_id

    def zoom_to_root(self) -> None:
        self.zoom_root_id = None

    def zoom_breadcrumbs(self) -> tuple[Breadcrumb, ...]:
        """Root-to-zoom-root chain, zoom root included."""
        if self.zoom_root_id is None:
            return ()
        zoomed = self.table.get(self.zoom_root_id)
        if zoomed is None:
            return ()
        crumbs = get_breadcrumbs(self.table, node_id=zoomed.id)
        return (
            *crumbs,
            Breadcrumb(node_id=zoomed.id, content=strip_html(zoomed.content), depth=len(crumbs)),
        )

    # --- Focus / navigation ---

    def focus(self, node_id: str) -> None:
        self.selection.click(node_id)

    def move_to_previous(self) -> str | None:
        visible = self.visible_ids()
        if self.focused_id in visible:
            idx = visible.index(self.focused_id)
            if idx > 0:
                self.selection.focus(visible[idx - 1])
                return visible[idx - 1]
        return None

    def move_to_next(self) -> str | None:
        visible = self.visible_ids()
        if self.focused_id in visible:
            idx = visible.index(self.focused_id)
            if idx < len(visible) - 1:
                self.selection.focus(visible[idx + 1])
                return visible[idx + 1]
        return None

    # --- Tags / search ---

    def get_all_tags(self) -> dict[str, TagUsage]:
        return collect_tags(self.table.nodes)

    def get_nodes_with_tag(self, tag: str) -> list[Node]:
        return [n for n in self.table.nodes if tag in extract_hashtags(strip_html(n.content))]

    def get_backlinks(self, node_id: str) -> list[Node]:
        """Nodes whose content or note holds a wiki link to ``node_id``."""
        return [
            n
            for n in self.table.nodes
            if n.id != node_id and node_id in extract_wiki_links(f"{n.content} {n.note or ''}")
        ]

    async def search(self, query: str, limit: int = 50) -> list[SearchResult]:
        """Full-text search in the open document (navigation only)."""
        results: list[SearchResult] = []
        async with self.operation("Search"):
            results = await self.backend.search(query, self.document_id, limit)
        return results

    # --- Creation / deletion ---

    async def _create_at(
        self, parent_id: str | None, index: int, content: str, *, description: str
    ) -> str | None:
        new_id: str | None = None
        async with self.operation(description) as op:
            position = await self.make_room(parent_id, index)
            result = await self.backend.create_node(parent_id, position, content)
            self.apply(result.state)
            new_id = result.id
            self.selection.click(new_id)
            created = self.table.get(new_id)
            if created is not None:
                self.record(description, undo=DeleteAction(new_id), redo=CreateAction(created))
        return new_id if op.ok else None

    async def add_sibling_after(self, node_id: str, content: str = "") -> str | None:
        """Insert a new item right after ``node_id``; returns its id."""
        node = self.table.get(node_id)
        if node is None:
            return None
        index = self.table.index_in_parent(node_id)
        return await self._create_at(node.parent_id, index + 1, content, description="Add item")

    async def add_sibling_before(self, node_id: str, content: str = "") -> str | None:
        node = self.table.get(node_id)
        if node is None:
            return None
        index = self.table.index_in_parent(node_id)
        return await self._create_at(node.parent_id, index, content, description="Add item")

    async def add_child(self, node_id: str | None, content: str = "") -> str | None:
        """Append a new last child (``None`` appends a root item)."""
        parent = self.table.get(node_id)
        if node_id is not None and parent is None:
            return None
        index = len(self.table.children_of(node_id))
        new_id = await self._create_at(node_id, index, content, description="Add child")
        if new_id and parent is not None and parent.collapsed:
            await self.expand_node(parent.id)
        return new_id

    async def delete_node(self, node_id: str) -> bool:
        """Delete a node with its subtree and focus a neighbouring visible node.

        Refused when it would leave the document empty.
        """
        node = self.table.get(node_id)
        if node is None:
            return False
        subtree = [node, *self.table.descendants(node_id)]
        if len(self.table) - len(subtree) < 1:
            logger.debug("Refusing to delete the last node")
            return False

        removed = {n.id for n in subtree}
        visible = self.visible_ids()
        new_focus: str | None = None
        if node_id in visible:
            idx = visible.index(node_id)
            before = [i for i in visible[:idx] if i not in removed]
            after = [i for i in visible[idx + 1 :] if i not in removed]
            new_focus = before[-1] if before else (after[0] if after else None)

        async with self.operation("Delete item") as op:
            state = await self.backend.delete_node(node_id)
            self.apply(state)
            if new_focus is not None:
                self.selection.focus(new_focus)
            self.record(
                "Delete item",
                undo=BatchAction(tuple(CreateAction(n) for n in subtree)),
                redo=DeleteAction(node_id),
            )
        return op.ok

    # --- Field updates ---

    async def update_fields(
        self,
        node_id: str,
        changes: NodeChanges,
        *,
        description: str = "Edit item",
        record: bool = True,
    ) -> bool:
        """Apply field changes to one node, recording the inverse for undo."""
        node = self.table.get(node_id)
        if node is None or changes.is_empty():
            return False
        async with self.operation(description) as op:
            state = await self.backend.update_node(node_id, changes)
            self.apply(state)
            if record:
                before = NodeChanges.restoring(node, list(changes.as_dict()))
                self.record(
                    description,
                    undo=UpdateAction(node_id, before),
                    redo=UpdateAction(node_id, changes),
                )
        return op.ok

    async def update_content(self, node_id: str, content: str) -> bool:
        node = self.table.get(node_id)
        if node is None or node.content == content:
            return False
        return await self.update_fields(
            node_id, NodeChanges(content=content), description="Edit text"
        )

    async def update_note(self, node_id: str, note: str) -> bool:
        """Set the note; an empty string clears it."""
        return await self.update_fields(node_id, NodeChanges(note=note), description="Edit note")

    def schedule_note_update(self, node_id: str, note: str) -> None:
        """Debounce a note edit; a newer edit for the same node replaces it."""
        self.scheduler.schedule(
            f"note:{node_id}", self.note_debounce, lambda: self.update_note(node_id, note)
        )

    def schedule_content_update(self, node_id: str, content: str) -> None:
        self.scheduler.schedule(
            f"content:{node_id}",
            self.note_debounce,
            lambda: self.update_content(node_id, content),
        )

    async def flush_pending_edits(self) -> None:
        await self.scheduler.flush()

    async def toggle_checkbox(self, node_id: str) -> bool:
        """Flip a checkbox.

        Checking a recurring item with a date moves the date to the next
        occurrence and leaves the item unchecked.
        """
        node = self.table.get(node_id)
        if node is None:
            return False

        next_focus: str | None = None
        if not node.is_checked and self.hide_completed and self.focused_id == node_id:
            visible = self.visible_ids()
            idx = visible.index(node_id) if node_id in visible else -1
            if 0 <= idx < len(visible) - 1:
                next_focus = visible[idx + 1]
            elif idx > 0:
                next_focus = visible[idx - 1]

        if not node.is_checked and node.date_recurrence and node.date:
            next_date: str | None = None
            async with self.operation("Resolve recurrence") as op:
                next_date = await self.backend.get_next_occurrence(
                    node.date_recurrence, node.date
                )
            if not op.ok:
                return False
            if next_date:
                return await self.update_fields(
                    node_id, NodeChanges(date=next_date), description="Complete recurring item"
                )

        ok = await self.update_fields(
            node_id, NodeChanges(is_checked=not node.is_checked), description="Toggle checkbox"
        )
        if ok and next_focus is not None:
            self.selection.focus(next_focus)
        return ok

    async def toggle_node_type(self, node_id: str) -> bool:
        """Switch between bullet and checkbox."""
        node = self.table.get(node_id)
        if node is None:
            return False
        new_type = "bullet" if node.node_type == "checkbox" else "checkbox"
        changes = NodeChanges(
            node_type=new_type,
            is_checked=node.is_checked if new_type == "checkbox" else False,
        )
        return await self.update_fields(node_id, changes, description="Change item type")

    async def set_heading(self, node_id: str, level: int | None) -> bool:
        """Turn a node into a heading of ``level`` (1-6); ``None`` makes it a bullet."""
        if level is None:
            changes = NodeChanges(node_type="bullet", heading_level=0)
        else:
            changes = NodeChanges(node_type="heading", heading_level=max(1, min(6, level)))
        return await self.update_fields(node_id, changes, description="Set heading")

    async def set_date(self, node_id: str, date: str | None) -> bool:
        return await self.update_fields(
            node_id, NodeChanges(date=date or ""), description="Set date"
        )

    async def clear_date(self, node_id: str) -> bool:
        return await self.set_date(node_id, None)

    async def set_recurrence(self, node_id: str, rrule: str | None) -> bool:
        return await self.update_fields(
            node_id, NodeChanges(date_recurrence=rrule or ""), description="Set recurrence"
        )

    async def set_color(self, node_id: str, color: str | None) -> bool:
        return await self.update_fields(
            node_id, NodeChanges(color=color or ""), description="Set color"
        )

    # --- Collapse state (not recorded for undo) ---

    async def _set_collapsed(self, targets: list[tuple[str, bool]], description: str) -> bool:
        if not targets:
            return False
        async with self.operation(description) as op:
            state: DocumentState | None = None
            for node_id, collapsed in targets:
                state = await self.backend.update_node(node_id, NodeChanges(collapsed=collapsed))
            if state is not None:
                self.apply(state)
        return op.ok

    async def toggle_collapse(self, node_id: str) -> bool:
        node = self.table.get(node_id)
        if node is None or not self.table.has_children(node_id):
            return False
        return await self._set_collapsed([(node_id, not node.collapsed)], "Toggle collapse")

    async def collapse_node(self, node_id: str) -> bool:
        node = self.table.get(node_id)
        if node is None or node.collapsed or not self.table.has_children(node_id):
            return False
        return await self._set_collapsed([(node_id, True)], "Collapse")

    async def expand_node(self, node_id: str) -> bool:
        node = self.table.get(node_id)
        if node is None or not node.collapsed:
            return False
        return await self._set_collapsed([(node_id, False)], "Expand")

    async def collapse_all(self) -> bool:
        targets = [
            (n.id, True)
            for n in self.table.nodes
            if not n.collapsed and self.table.has_children(n.id)
        ]
        return await self._set_collapsed(targets, "Collapse all")

    async def expand_all(self) -> bool:
        targets = [(n.id, False) for n in self.table.nodes if n.collapsed]
        return await self._set_collapsed(targets, "Expand all")

    async def expand_to_level(self, level: int) -> bool:
        """Show ``level`` levels: level 1 shows only root items."""
        targets: list[tuple[str, bool]] = []
        for node in self.table.nodes:
            if not self.table.has_children(node.id):
                continue
            should_collapse = self.table.depth_of(node.id) + 1 >= level
            if node.collapsed != should_collapse:
                targets.append((node.id, should_collapse))
        return await self._set_collapsed(targets, "Expand to level")

    async def collapse_siblings(self, node_id: str) -> bool:
        targets = [
            (s.id, True)
            for s in self.table.siblings_of(node_id)
            if s.id != node_id and not s.collapsed and self.table.has_children(s.id)
        ]
        return await self._set_collapsed(targets, "Collapse siblings")

    # --- Drag and drop ---

    def start_drag(self, node_id: str) -> None:
        self.dragged_id = node_id

    def end_drag(self) -> None:
        self.dragged_id = None

    async def drop_on_node(self, target_id: str, *, as_child: bool = False) -> bool:
        """Drop the node captured by ``start_drag`` onto ``target_id``."""
        dragged = self.dragged_id
        self.dragged_id = None
        if dragged is None:
            return False
        return await self.mutator.drop(dragged, target_id, as_child=as_child)

    # --- Undo / redo ---

    @property
    def can_undo(self) -> bool:
        return self.undo_log.can_undo and not self.is_saving

    @property
    def can_redo(self) -> bool:
        return self.undo_log.can_redo and not self.is_saving

    async def undo(self) -> bool:
        if self.is_saving:
            logger.debug("Undo refused: {} operations pending", self.pending_operations)
            return False
        return await self.undo_log.undo(self.execute_action)

    async def redo(self) -> bool:
        if self.is_saving:
            logger.debug("Redo refused: {} operations pending", self.pending_operations)
            return False
        return await self.undo_log.redo(self.execute_action)

    async def execute_action(self, action: UndoAction) -> bool:
        """Run an undo/redo action against the backend. False if it is stale."""
        ok = False
        async with self.operation("Undo/redo") as op:
            ok = await self._run_action(action)
        return op.ok and ok

    async def _run_action(self, action: UndoAction) -> bool:
        if isinstance(action, BatchAction):
            parents = {n.id: n.parent_id for n in self.table.nodes}
            if not batch_applies(action, parents):
                logger.debug("Batch action is stale, nothing changed")
                return False
            for step in action.actions:
                if not await self._run_action(step):
                    return False
            return True

        if isinstance(action, CreateAction):
            node = action.node
            if node.id in self.table:
                return False
            if node.parent_id is not None and node.parent_id not in self.table:
                return False
            await self.make_room_at(node.parent_id, node.position)
            state = await self.backend.create_node_with_id(
                node.id, node.parent_id, node.position, node.content, node.node_type
            )
            self.apply(state)
            extra = restore_changes(node)
            if not extra.is_empty():
                self.apply(await self.backend.update_node(node.id, extra))
            return True

        if isinstance(action, DeleteAction):
            if action.node_id not in self.table:
                return False
            removed = 1 + len(self.table.descendants(action.node_id))
            if len(self.table) - removed < 1:
                return False
            self.apply(await self.backend.delete_node(action.node_id))
            return True

        if isinstance(action, UpdateAction):
            if action.node_id not in self.table:
                return False
            self.apply(await self.backend.update_node(action.node_id, action.changes))
            return True

        if isinstance(action, MoveAction):
            if action.node_id not in self.table:
                return False
            if action.parent_id is not None and action.parent_id not in self.table:
                return False
            if is_descendant_or_self(self.table, node_id=action.node_id, candidate_id=action.parent_id):
                return False
            await self.make_room_at(action.parent_id, action.position, exclude_id=action.node_id)
            self.apply(
                await self.backend.move_node(action.node_id, action.parent_id, action.position)
            )
            return True

        if isinstance(action, SwapAction):
            node = self.table.get(action.node_id)
            other = self.table.get(action.other_id)
            if node is None or other is None or node.parent_id != other.parent_id:
                return False
            self.apply(await self.backend.move_node(node.id, node.parent_id, action.position))
            self.apply(
                await self.backend.move_node(other.id, other.parent_id, action.other_position)
            )
            return True

        msg = f"Unknown undo action: {action!r}"
        raise TypeError(msg)
