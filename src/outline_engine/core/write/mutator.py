"""Structural edits: indent, outdent, reorder, drop, split and merge."""

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from outline_engine.core.search.tags import strip_html
from outline_engine.core.tree.navigation import is_descendant_or_self
from outline_engine.models.node import DocumentState, MergeResult, Node, NodeChanges
from outline_engine.models.undo import (
    BatchAction,
    CreateAction,
    DeleteAction,
    MoveAction,
    SwapAction,
    UpdateAction,
)

if TYPE_CHECKING:
    from outline_engine.core.engine import OutlineEngine


class StructuralMutator:
    """Tree-shape mutations for an ``OutlineEngine``.

    Each operation validates against the current node table, calls the
    backend, installs the returned state and records one undo entry.
    """

    def __init__(self, engine: "OutlineEngine") -> None:
        self.engine = engine
        self._swap_lock = asyncio.Lock()

    async def _place(self, node_id: str, parent_id: str | None, index: int) -> DocumentState:
        """Move ``node_id`` to sibling ``index`` under ``parent_id``."""
        position = await self.engine.make_room(parent_id, index, exclude_id=node_id)
        return await self.engine.backend.move_node(node_id, parent_id, position)

    async def _relocate(
        self, node: Node, parent_id: str | None, index: int, description: str
    ) -> bool:
        engine = self.engine
        async with engine.operation(description) as op:
            engine.apply(await self._place(node.id, parent_id, index))
            moved = engine.table.get(node.id)
            if moved is not None:
                engine.record(
                    description,
                    undo=MoveAction(node.id, node.parent_id, node.position),
                    redo=MoveAction(node.id, moved.parent_id, moved.position),
                )
        return op.ok

    async def indent(self, node_id: str) -> bool:
        """Make the node the last child of its previous sibling."""
        table = self.engine.table
        node = table.get(node_id)
        idx = table.index_in_parent(node_id)
        if node is None or idx <= 0:
            return False
        new_parent = table.siblings_of(node_id)[idx - 1]
        index = len(table.children_of(new_parent.id))
        ok = await self._relocate(node, new_parent.id, index, "Indent")
        if ok and new_parent.collapsed:
            await self.engine.expand_node(new_parent.id)
        return ok

    async def outdent(self, node_id: str) -> bool:
        """Make the node the next sibling of its current parent."""
        table = self.engine.table
        node = table.get(node_id)
        if node is None or node.parent_id is None:
            return False
        parent = table.get(node.parent_id)
        if parent is None:
            return False
        parent_index = table.index_in_parent(parent.id)
        return await self._relocate(node, parent.parent_id, parent_index + 1, "Outdent")

    async def swap_with_previous(self, node_id: str) -> bool:
        return await self._swap(node_id, -1, "Move up")

    async def swap_with_next(self, node_id: str) -> bool:
        return await self._swap(node_id, 1, "Move down")

    async def _swap(self, node_id: str, offset: int, description: str) -> bool:
        # Swaps serialize: each one re-reads siblings after the previous landed.
        async with self._swap_lock:
            engine = self.engine
            node = engine.table.get(node_id)
            if node is None:
                return False
            siblings = engine.table.siblings_of(node_id)
            target = engine.table.index_in_parent(node_id) + offset
            if target < 0 or target >= len(siblings):
                return False
            other = siblings[target]

            async with engine.operation(description) as op:
                if node.position == other.position:
                    state = await self._place(node.id, node.parent_id, target)
                else:
                    engine.apply(
                        await engine.backend.move_node(node.id, node.parent_id, other.position)
                    )
                    state = await engine.backend.move_node(
                        other.id, other.parent_id, node.position
                    )
                engine.apply(state)
                moved = engine.table.get(node.id)
                displaced = engine.table.get(other.id)
                if moved is not None and displaced is not None:
                    engine.record(
                        description,
                        undo=SwapAction(node.id, node.position, other.id, other.position),
                        redo=SwapAction(node.id, moved.position, other.id, displaced.position),
                    )
            return op.ok

    async def move_to(
        self, node_id: str, new_parent_id: str | None, index: int | None = None
    ) -> bool:
        """Move a node under ``new_parent_id`` at ``index`` (default: last)."""
        table = self.engine.table
        node = table.get(node_id)
        if node is None:
            return False
        if new_parent_id is not None and new_parent_id not in table:
            return False
        if is_descendant_or_self(table, node_id=node_id, candidate_id=new_parent_id):
            logger.debug("Refusing to move {} into its own subtree", node_id)
            return False
        if index is None:
            index = len([n for n in table.children_of(new_parent_id) if n.id != node_id])
        return await self._relocate(node, new_parent_id, index, "Move item")

    async def drop(self, node_id: str, target_id: str, *, as_child: bool = False) -> bool:
        """Drop ``node_id`` after ``target_id``, or as its first child.

        Dropping onto itself or into its own subtree is rejected.
        """
        table = self.engine.table
        node = table.get(node_id)
        target = table.get(target_id)
        if node is None or target is None:
            return False
        if is_descendant_or_self(table, node_id=node_id, candidate_id=target_id):
            logger.debug("Rejected drop of {} onto {}", node_id, target_id)
            return False

        if as_child:
            parent_id, index = target_id, 0
        else:
            parent_id = target.parent_id
            group = [n.id for n in table.children_of(parent_id) if n.id != node_id]
            index = group.index(target_id) + 1
        return await self._relocate(node, parent_id, index, "Drag item")

    async def split_node(self, node_id: str, before: str, after: str) -> str | None:
        """Split at the cursor: keep ``before``, create a next sibling with ``after``.

        The original node's children move to the new sibling. Returns the new id.
        """
        engine = self.engine
        table = engine.table
        node = table.get(node_id)
        if node is None:
            return None
        children = table.children_of(node_id)
        index = table.index_in_parent(node_id)

        new_id: str | None = None
        async with engine.operation("Split item") as op:
            engine.apply(await engine.backend.update_node(node_id, NodeChanges(content=before)))
            position = await engine.make_room(node.parent_id, index + 1)
            result = await engine.backend.create_node(node.parent_id, position, after)
            new_id = result.id
            engine.apply(result.state)
            if node.node_type == "checkbox":
                engine.apply(
                    await engine.backend.update_node(new_id, NodeChanges(node_type="checkbox"))
                )
            for i, child in enumerate(children):
                engine.apply(await engine.backend.move_node(child.id, new_id, i))

            if engine.zoom_root_id == node_id:
                engine.zoom_root_id = node.parent_id
            engine.selection.click(new_id)

            created = table.get(new_id)
            if created is not None:
                engine.record(
                    "Split item",
                    undo=BatchAction(
                        (
                            *(MoveAction(c.id, node_id, c.position) for c in children),
                            DeleteAction(new_id),
                            UpdateAction(node_id, NodeChanges(content=node.content)),
                        )
                    ),
                    redo=BatchAction(
                        (
                            UpdateAction(node_id, NodeChanges(content=before)),
                            CreateAction(created),
                            *(MoveAction(c.id, new_id, i) for i, c in enumerate(children)),
                        )
                    ),
                )
        return new_id if op.ok else None

    async def merge_with_next_sibling(self, node_id: str) -> MergeResult | None:
        """Append the next sibling's content and children to this node."""
        table = self.engine.table
        node = table.get(node_id)
        siblings = table.siblings_of(node_id)
        idx = table.index_in_parent(node_id)
        if node is None or idx < 0 or idx >= len(siblings) - 1:
            return None
        return await self._merge(node, siblings[idx + 1])

    async def merge_with_previous(self, node_id: str) -> MergeResult | None:
        """Merge this node into the previous node in the visible list."""
        engine = self.engine
        node = engine.table.get(node_id)
        visible = engine.visible_ids()
        if node is None or node_id not in visible:
            return None
        idx = visible.index(node_id)
        if idx == 0:
            return None
        target = engine.table.get(visible[idx - 1])
        if target is None:
            return None
        return await self._merge(target, node)

    async def _merge(self, target: Node, source: Node) -> MergeResult | None:
        engine = self.engine
        table = engine.table
        cursor_pos = len(strip_html(target.content))
        merged = target.content + source.content
        children = table.children_of(source.id)
        if source.parent_id == target.id:
            insert_index = table.index_in_parent(source.id)
        else:
            insert_index = len(table.children_of(target.id))

        async with engine.operation("Merge items") as op:
            engine.apply(
                await engine.backend.update_node(target.id, NodeChanges(content=merged))
            )
            first = 0
            if children:
                first = await engine.make_room(
                    target.id, insert_index, count=len(children), exclude_id=source.id
                )
                for i, child in enumerate(children):
                    engine.apply(await engine.backend.move_node(child.id, target.id, first + i))
            engine.apply(await engine.backend.delete_node(source.id))
            engine.selection.click(target.id)
            engine.record(
                "Merge items",
                undo=BatchAction(
                    (
                        CreateAction(source),
                        *(MoveAction(c.id, source.id, c.position) for c in children),
                        UpdateAction(target.id, NodeChanges(content=target.content)),
                    )
                ),
                redo=BatchAction(
                    (
                        UpdateAction(target.id, NodeChanges(content=merged)),
                        *(MoveAction(c.id, target.id, first + i) for i, c in enumerate(children)),
                        DeleteAction(source.id),
                    )
                ),
            )
        return MergeResult(target_id=target.id, cursor_pos=cursor_pos) if op.ok else None
