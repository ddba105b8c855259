"""Operations applied to every selected node as one undoable step."""

from typing import TYPE_CHECKING

from loguru import logger

from outline_engine.models.node import NodeChanges, NodeType
from outline_engine.models.undo import (
    BatchAction,
    CreateAction,
    DeleteAction,
    MoveAction,
    UndoAction,
    UpdateAction,
)

if TYPE_CHECKING:
    from outline_engine.core.engine import OutlineEngine


class BulkOperations:
    """Selection-wide edits.

    Targets come from ``SelectionManager.target_ids`` (the focused node when
    nothing is selected). Every bulk edit records one undo entry and clears the
    selection afterwards.
    """

    def __init__(self, engine: "OutlineEngine") -> None:
        self.engine = engine

    async def delete_selected(self) -> bool:
        """Delete every selected subtree. Refused if nothing would be left."""
        engine = self.engine
        table = engine.table
        targets = engine.selection.top_level_targets()
        if not targets:
            return False
        subtrees = {t: [table.get(t), *table.descendants(t)] for t in targets}
        removed = {n.id for nodes in subtrees.values() for n in nodes if n is not None}
        if len(table) - len(removed) < 1:
            logger.debug("Refusing to delete every node")
            return False

        visible = engine.visible_ids()
        survivors = [i for i in visible if i not in removed]
        new_focus = None
        if targets[0] in visible:
            first = visible.index(targets[0])
            before = [i for i in visible[:first] if i not in removed]
            new_focus = before[-1] if before else (survivors[0] if survivors else None)

        description = f"Delete {len(targets)} items"
        async with engine.operation(description) as op:
            for target in reversed(targets):
                engine.apply(await engine.backend.delete_node(target))
            engine.selection.clear_selection()
            engine.selection.focus(new_focus)
            engine.record(
                description,
                undo=BatchAction(
                    tuple(
                        CreateAction(n)
                        for t in targets
                        for n in subtrees[t]
                        if n is not None
                    )
                ),
                redo=BatchAction(tuple(DeleteAction(t) for t in targets)),
            )
        return op.ok

    async def _move_each(self, description: str, order: list[str], plan) -> bool:
        """Run ``plan(node) -> (parent_id, index) | None`` for each id, in order."""
        engine = self.engine
        undo: list[UndoAction] = []
        redo: list[UndoAction] = []
        async with engine.operation(description) as op:
            for node_id in order:
                node = engine.table.get(node_id)
                target = plan(node) if node is not None else None
                if node is None or target is None:
                    continue
                parent_id, index = target
                position = await engine.make_room(parent_id, index, exclude_id=node_id)
                engine.apply(await engine.backend.move_node(node_id, parent_id, position))
                undo.insert(0, MoveAction(node_id, node.parent_id, node.position))
                redo.append(MoveAction(node_id, parent_id, position))
            if redo:
                engine.record(description, undo=BatchAction(tuple(undo)), redo=BatchAction(tuple(redo)))
            engine.selection.clear_selection()
        return op.ok and bool(redo)

    async def indent_selected(self) -> bool:
        """Indent each selected node under its previous sibling.

        A node whose previous sibling is a selected node that could not be
        indented stays put too, so consecutive runs move together.
        """
        table = self.engine.table
        targets = self.engine.selection.top_level_targets()
        stuck: set[str] = set()
        expand: list[str] = []

        def plan(node):
            idx = table.index_in_parent(node.id)
            previous = table.siblings_of(node.id)[idx - 1] if idx > 0 else None
            if previous is None or previous.id in stuck:
                stuck.add(node.id)
                return None
            if previous.collapsed:
                expand.append(previous.id)
            return previous.id, len(table.children_of(previous.id))

        ok = await self._move_each("Indent items", targets, plan)
        for parent_id in expand:
            await self.engine.expand_node(parent_id)
        return ok

    async def outdent_selected(self) -> bool:
        """Outdent each selected node, last first, keeping their relative order."""
        table = self.engine.table
        targets = self.engine.selection.top_level_targets()

        def plan(node):
            parent = table.get(node.parent_id)
            if parent is None:
                return None
            return parent.parent_id, table.index_in_parent(parent.id) + 1

        return await self._move_each("Outdent items", list(reversed(targets)), plan)

    async def _update_each(self, description: str, changes: dict[str, NodeChanges]) -> bool:
        engine = self.engine
        changes = {k: v for k, v in changes.items() if k in engine.table and not v.is_empty()}
        if not changes:
            return False
        undo: list[UndoAction] = []
        redo: list[UndoAction] = []
        async with engine.operation(description) as op:
            for node_id, change in changes.items():
                node = engine.table.get(node_id)
                engine.apply(await engine.backend.update_node(node_id, change))
                undo.append(UpdateAction(node_id, NodeChanges.restoring(node, list(change.as_dict()))))
                redo.append(UpdateAction(node_id, change))
            engine.record(description, undo=BatchAction(tuple(undo)), redo=BatchAction(tuple(redo)))
            engine.selection.clear_selection()
        return op.ok

    async def toggle_selected_checkboxes(self) -> bool:
        """Check all selected checkboxes, or uncheck them if all are checked."""
        table = self.engine.table
        boxes = [
            n
            for n in (table.get(i) for i in self.engine.selection.target_ids())
            if n is not None and n.node_type == "checkbox"
        ]
        if not boxes:
            return False
        checked = not all(n.is_checked for n in boxes)
        return await self._update_each(
            "Toggle checkboxes", {n.id: NodeChanges(is_checked=checked) for n in boxes}
        )

    async def set_selected_node_type(self, node_type: NodeType) -> bool:
        changes = {}
        for node_id in self.engine.selection.target_ids():
            node = self.engine.table.get(node_id)
            if node is None or node.node_type == node_type:
                continue
            heading_level = None
            if node_type == "heading" and not node.heading_level:
                heading_level = 1
            elif node_type != "heading" and node.heading_level:
                heading_level = 0
            changes[node_id] = NodeChanges(
                node_type=node_type,
                is_checked=False if node.is_checked else None,
                heading_level=heading_level,
            )
        return await self._update_each("Change item types", changes)

    async def set_selected_color(self, color: str | None) -> bool:
        changes = {
            node_id: NodeChanges(color=color or "")
            for node_id in self.engine.selection.target_ids()
        }
        return await self._update_each("Set color", changes)
