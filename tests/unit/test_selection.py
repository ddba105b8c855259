"""Tests for SelectionManager."""

from outline_engine.core.selection import SelectionManager
from outline_engine.core.tree.index import NodeTable
from tests.unit.fakes import outline


def _selection(visible: list[str] | None = None) -> tuple[SelectionManager, list[str]]:
    table = NodeTable()
    table.replace(outline(("A", [("A.1", ["A.1.a"]), "A.2"]), ("B", ["B.1"]), "C"))
    order = visible or ["A", "A.1", "A.1.a", "A.2", "B", "B.1", "C"]
    return SelectionManager(table, lambda: order), order


def test_select_range_spans_depths_inclusive() -> None:
    sel, order = _selection()
    sel.click(order[2])
    picked = sel.select_range(order[5])
    assert picked == ["A.1.a", "A.2", "B", "B.1"]
    assert sel.selected_ids == {"A.1.a", "A.2", "B", "B.1"}
    assert sel.focused_id == "A.1.a"


def test_select_range_backwards() -> None:
    sel, _ = _selection()
    sel.click("B")
    assert sel.select_range("A.1") == ["A.1", "A.1.a", "A.2", "B"]


def test_select_range_target_not_visible() -> None:
    sel, _ = _selection(["A", "B", "C"])
    sel.click("A")
    assert sel.select_range("A.1") == []
    assert not sel.has_selection


def test_toggle_and_click() -> None:
    sel, _ = _selection()
    sel.toggle_selection("A")
    sel.toggle_selection("C")
    assert sel.selected_ids == {"A", "C"}
    assert sel.focused_id == "C"
    sel.toggle_selection("A")
    assert sel.selected_ids == {"C"}
    sel.click("B")
    assert not sel.has_selection
    assert sel.focused_id == "B"


def test_select_siblings_and_children_only_visible() -> None:
    sel, _ = _selection(["A", "A.1", "A.2", "B", "C"])
    sel.focus("A.1")
    sel.select_siblings()
    assert sel.selected_ids == {"A.1", "A.2"}
    sel.focus("B")
    sel.select_children()
    assert sel.selected_ids == set()
    sel.focus("A")
    sel.select_children()
    assert sel.selected_ids == {"A.1", "A.2"}


def test_select_all_and_invert() -> None:
    sel, order = _selection()
    sel.toggle_selection("A")
    sel.invert_selection()
    assert sel.selected_ids == set(order) - {"A"}
    sel.select_all()
    assert sel.selected_ids == set(order)


def test_target_ids_fall_back_to_focus() -> None:
    sel, _ = _selection()
    assert sel.target_ids() == []
    sel.focus("B")
    assert sel.target_ids() == ["B"]


def test_target_ids_visible_order_then_hidden() -> None:
    sel, _ = _selection(["A", "B", "C"])
    sel.selected_ids = {"C", "A.1", "A"}
    assert sel.target_ids() == ["A", "C", "A.1"]


def test_top_level_targets_skip_selected_descendants() -> None:
    sel, _ = _selection()
    sel.selected_ids = {"A", "A.1.a", "B.1", "C"}
    assert sel.top_level_targets() == ["A", "B.1", "C"]


def test_prune_drops_missing_ids() -> None:
    sel, _ = _selection()
    sel.selected_ids = {"A", "gone"}
    sel.focus("gone")
    sel.prune()
    assert sel.selected_ids == {"A"}
    assert sel.focused_id is None
