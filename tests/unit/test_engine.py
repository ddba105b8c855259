"""Tests for OutlineEngine: lifecycle, views, field edits and undo."""

import asyncio

from outline_engine.config import DEFAULT_DOCUMENT_ID
from outline_engine.core.engine import OutlineEngine
from outline_engine.models.node import Node, NodeChanges
from outline_engine.models.undo import UpdateAction
from tests.unit.fakes import FakeBackend, open_engine, outline, shape


def test_load_focuses_first_root() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine(("A", ["A.1"]), "B")
        assert engine.focused_id == "A"
        assert engine.document_id == DEFAULT_DOCUMENT_ID
        assert not engine.loading
        assert engine.pending_operations == 0
        assert engine.last_saved_at is not None
        assert engine.visible_ids() == ["A", "A.1", "B"]

    asyncio.run(scenario())


def test_load_failure_sets_error() -> None:
    async def scenario() -> None:
        backend = FakeBackend(outline("A"))
        backend.fail_on.add("load_document")
        engine = OutlineEngine(backend)
        assert not await engine.load()
        assert engine.error == "load_document failed"
        assert engine.pending_operations == 0
        assert not engine.loading
        assert len(engine.table) == 0

    asyncio.run(scenario())


def test_add_sibling_after_shifts_and_undoes() -> None:
    async def scenario() -> None:
        engine, backend = await open_engine("A", "B")
        new_id = await engine.add_sibling_after("A", "x")
        assert new_id == "new-1"
        assert shape(engine) == ["A", "new-1", "B"]
        assert engine.focused_id == "new-1"

        assert await engine.undo()
        assert shape(engine) == ["A", "B"]
        assert await engine.redo()
        assert shape(engine) == ["A", "new-1", "B"]
        assert backend.nodes["new-1"].content == "x"

    asyncio.run(scenario())


def test_add_sibling_before_first() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A", "B")
        assert await engine.add_sibling_before("A") == "new-1"
        assert shape(engine) == ["new-1", "A", "B"]

    asyncio.run(scenario())


def test_add_child_expands_collapsed_parent() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine(("A", ["A.1"]), "B")
        assert await engine.collapse_node("A")
        assert engine.visible_ids() == ["A", "B"]

        assert await engine.add_child("A", "x") == "new-1"
        assert shape(engine) == [("A", ["A.1", "new-1"]), "B"]
        assert not engine.is_collapsed("A")
        assert engine.visible_ids() == ["A", "A.1", "new-1", "B"]
        assert len(engine.undo_log) == 1

    asyncio.run(scenario())


def test_add_child_unknown_parent() -> None:
    async def scenario() -> None:
        engine, backend = await open_engine("A")
        assert await engine.add_child("missing") is None
        assert "create_node" not in backend.call_names()

    asyncio.run(scenario())


def test_delete_last_node_is_refused() -> None:
    async def scenario() -> None:
        engine, backend = await open_engine("A", "B")
        assert await engine.delete_node("A")
        assert shape(engine) == ["B"]
        assert engine.focused_id == "B"

        assert not await engine.delete_node("B")
        assert shape(engine) == ["B"]
        assert backend.call_names().count("delete_node") == 1

    asyncio.run(scenario())


def test_delete_subtree_focuses_previous_and_undo_restores() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A", ("B", ["B.1", "B.2"]), "C")
        engine.focus("B")
        assert await engine.delete_node("B")
        assert shape(engine) == ["A", "C"]
        assert engine.focused_id == "A"

        assert await engine.undo()
        assert shape(engine) == ["A", ("B", ["B.1", "B.2"]), "C"]
        assert await engine.redo()
        assert shape(engine) == ["A", "C"]

    asyncio.run(scenario())


def test_update_content_undo_redo() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A")
        assert not await engine.update_content("A", "A")
        assert await engine.update_content("A", "changed")
        assert engine.get_node("A").content == "changed"
        assert engine.undo_log.undo_description == "Edit text"

        assert await engine.undo()
        assert engine.get_node("A").content == "A"
        assert await engine.redo()
        assert engine.get_node("A").content == "changed"

    asyncio.run(scenario())


def test_update_note_clears_with_empty_string() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A")
        assert await engine.update_note("A", "details")
        assert engine.get_node("A").note == "details"
        assert await engine.update_note("A", "")
        assert engine.get_node("A").note is None
        assert await engine.undo()
        assert engine.get_node("A").note == "details"

    asyncio.run(scenario())


def test_backend_failure_sets_error_and_skips_undo() -> None:
    async def scenario() -> None:
        engine, backend = await open_engine("A")
        backend.fail_on.add("update_node")
        assert not await engine.update_content("A", "x")
        assert engine.error == "update_node failed"
        assert engine.get_node("A").content == "A"
        assert not engine.can_undo
        assert engine.pending_operations == 0
        engine.clear_error()
        assert engine.error is None

    asyncio.run(scenario())


def test_undo_refused_while_operation_pending() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A", "B")
        await engine.update_content("A", "first")

        task = asyncio.create_task(engine.update_content("B", "second"))
        await asyncio.sleep(0)
        assert engine.pending_operations == 1
        assert engine.is_saving
        assert not engine.can_undo
        assert not await engine.undo()
        await task

        assert engine.pending_operations == 0
        assert engine.can_undo
        assert len(engine.undo_log) == 2

    asyncio.run(scenario())


def test_stale_undo_entry_is_kept() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A")
        engine.record(
            "Edit gone",
            undo=UpdateAction("gone", NodeChanges(content="a")),
            redo=UpdateAction("gone", NodeChanges(content="b")),
        )
        assert not await engine.undo()
        assert engine.can_undo
        assert engine.undo_log.undo_description == "Edit gone"

    asyncio.run(scenario())


def test_toggle_checkbox_and_node_type() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A")
        assert await engine.toggle_node_type("A")
        assert engine.get_node("A").node_type == "checkbox"
        assert await engine.toggle_checkbox("A")
        assert engine.get_node("A").is_checked
        assert await engine.toggle_node_type("A")
        node = engine.get_node("A")
        assert node.node_type == "bullet"
        assert not node.is_checked

    asyncio.run(scenario())


def test_checking_recurring_item_advances_date() -> None:
    async def scenario() -> None:
        backend = FakeBackend(
            [
                Node(
                    id="r",
                    parent_id=None,
                    position=0,
                    content="Water plants",
                    node_type="checkbox",
                    date="2024-01-15",
                    date_recurrence="FREQ=WEEKLY",
                )
            ]
        )
        engine = OutlineEngine(backend)
        await engine.load()
        assert await engine.toggle_checkbox("r")
        node = engine.get_node("r")
        assert node.date == "2024-01-22"
        assert not node.is_checked
        assert "get_next_occurrence" in backend.call_names()

        assert await engine.undo()
        assert engine.get_node("r").date == "2024-01-15"

    asyncio.run(scenario())


def test_checking_with_hide_completed_moves_focus() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A", "B", "C")
        engine.set_hide_completed(True)
        engine.focus("B")
        assert await engine.toggle_checkbox("B")
        assert engine.visible_ids() == ["A", "C"]
        assert engine.focused_id == "C"

        assert await engine.toggle_checkbox("C")
        assert engine.visible_ids() == ["A"]
        assert engine.focused_id == "A"

    asyncio.run(scenario())


def test_set_heading_clamps_level() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A")
        assert await engine.set_heading("A", 9)
        node = engine.get_node("A")
        assert node.node_type == "heading"
        assert node.heading_level == 6
        assert await engine.set_heading("A", None)
        node = engine.get_node("A")
        assert node.node_type == "bullet"
        assert node.heading_level is None

    asyncio.run(scenario())


def test_date_recurrence_and_color() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A")
        assert await engine.set_date("A", "2024-03-01")
        assert await engine.set_recurrence("A", "FREQ=DAILY")
        assert await engine.set_color("A", "red")
        node = engine.get_node("A")
        assert (node.date, node.date_recurrence, node.color) == ("2024-03-01", "FREQ=DAILY", "red")

        assert await engine.clear_date("A")
        assert await engine.set_color("A", None)
        node = engine.get_node("A")
        assert node.date is None
        assert node.color is None

    asyncio.run(scenario())


def test_zoom_in_and_out() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine(("A", ["A.1", ("A.2", ["x"])]), "B")
        assert not engine.zoom_in("missing")
        assert engine.zoom_in("A")
        assert engine.focused_id == "A.1"
        assert engine.visible_ids() == ["A.1", "A.2", "x"]

        assert engine.zoom_in("A.2")
        assert [c.node_id for c in engine.zoom_breadcrumbs()] == ["A", "A.2"]
        assert engine.zoom_out() == "A"
        assert engine.focused_id == "A.2"
        assert engine.zoom_out() is None
        assert engine.zoom_out() is None
        assert engine.visible_ids() == ["A", "A.1", "A.2", "x", "B"]

    asyncio.run(scenario())


def test_zoom_resets_when_root_disappears() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine(("A", ["A.1"]), "B")
        engine.zoom_in("A")
        assert await engine.delete_node("A")
        assert engine.zoom_root_id is None
        assert engine.visible_ids() == ["B"]

    asyncio.run(scenario())


def test_collapse_operations_are_not_undoable() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine(("A", ["A.1", ("A.2", ["x"])]), ("B", ["B.1"]))
        assert await engine.collapse_all()
        assert engine.visible_ids() == ["A", "B"]
        assert await engine.expand_all()
        assert engine.visible_ids() == ["A", "A.1", "A.2", "x", "B", "B.1"]

        assert await engine.expand_to_level(2)
        assert engine.visible_ids() == ["A", "A.1", "A.2", "B", "B.1"]

        assert await engine.toggle_collapse("A")
        assert engine.is_collapsed("A")
        assert not await engine.toggle_collapse("A.1")

        await engine.expand_all()
        assert await engine.collapse_siblings("B")
        assert engine.is_collapsed("A")
        assert not engine.is_collapsed("B")
        assert not engine.can_undo

    asyncio.run(scenario())


def test_filter_and_hide_completed_views() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine(("plan #project", ["step one", "step #project two"]), "other")
        engine.set_filter("#project")
        assert engine.visible_ids() == ["plan #project", "step #project two"]
        engine.clear_filter()
        await engine.toggle_checkbox("other")
        engine.toggle_hide_completed()
        assert "other" not in engine.visible_ids()

    asyncio.run(scenario())


def test_move_to_previous_and_next() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine(("A", ["A.1"]), "B")
        assert engine.move_to_previous() is None
        assert engine.move_to_next() == "A.1"
        assert engine.move_to_next() == "B"
        assert engine.move_to_next() is None
        assert engine.move_to_previous() == "A.1"

    asyncio.run(scenario())


def test_tags_and_search() -> None:
    async def scenario() -> None:
        engine, backend = await open_engine("#work call", "#home and #work")
        tags = engine.get_all_tags()
        assert tags["work"].count == 2
        assert [n.id for n in engine.get_nodes_with_tag("home")] == ["#home and #work"]

        results = await engine.search("call")
        assert [r.node.id for r in results] == ["#work call"]
        assert backend.calls[-1] == ("search", ("call", DEFAULT_DOCUMENT_ID, 50))

    asyncio.run(scenario())


def test_backlinks_follow_wiki_links() -> None:
    async def scenario() -> None:
        span = '<span data-wiki-link="" data-node-id="Target">Target</span> again'
        engine, _ = await open_engine("Target", ("see [[Target]]", [span]), "unrelated [[Other]]")
        assert [n.id for n in engine.get_backlinks("Target")] == ["see [[Target]]", span]
        assert engine.get_backlinks("missing") == []

    asyncio.run(scenario())


def test_check_and_reload_installs_external_state() -> None:
    async def scenario() -> None:
        engine, backend = await open_engine("A", "B")
        await engine.update_content("A", "edited")
        assert not await engine.check_and_reload()
        assert engine.can_undo

        backend.set_external(outline("X", "Y"))
        assert await engine.check_and_reload()
        assert shape(engine) == ["X", "Y"]
        assert not engine.can_undo
        assert engine.focused_id == "X"

    asyncio.run(scenario())


def test_debounced_note_flushes_latest_value() -> None:
    async def scenario() -> None:
        engine, backend = await open_engine("A", note_debounce=60)
        engine.schedule_note_update("A", "first")
        engine.schedule_note_update("A", "second")
        assert "update_node" not in backend.call_names()

        await engine.flush_pending_edits()
        assert engine.get_node("A").note == "second"
        assert backend.call_names().count("update_node") == 1

    asyncio.run(scenario())


def test_drag_and_drop() -> None:
    async def scenario() -> None:
        engine, _ = await open_engine("A", "B", "C")
        assert not await engine.drop_on_node("B")
        engine.start_drag("A")
        assert await engine.drop_on_node("C")
        assert shape(engine) == ["B", "C", "A"]
        assert engine.dragged_id is None

    asyncio.run(scenario())
