"""Tests for domain models."""

import pytest

from outline_engine.models.node import (
    DocumentState,
    Node,
    NodeChanges,
    restore_changes,
)


def test_node_is_frozen() -> None:
    node = Node(id="a", parent_id=None, position=0, content="hello")
    with pytest.raises(AttributeError):
        node.content = "changed"  # type: ignore[misc]


def test_node_from_dict_ignores_unknown_keys_and_coerces() -> None:
    node = Node.from_dict(
        {
            "id": "a",
            "parent_id": None,
            "position": "3",
            "content": "x",
            "tags": ["work"],
            "is_checked": 1,
            "mystery": "ignored",
        }
    )
    assert node.position == 3
    assert node.tags == ("work",)
    assert node.is_checked is True


def test_node_to_dict_lists_tags() -> None:
    node = Node(id="a", parent_id="p", position=1, tags=("x", "y"))
    data = node.to_dict()
    assert data["tags"] == ["x", "y"]
    assert data["parent_id"] == "p"


def test_changes_as_dict_drops_unset_fields() -> None:
    changes = NodeChanges(content="new", is_checked=False)
    assert changes.as_dict() == {"content": "new", "is_checked": False}
    assert NodeChanges().is_empty()


def test_changes_empty_string_clears_optional_fields() -> None:
    node = Node(
        id="a",
        parent_id=None,
        position=0,
        note="n",
        date="2024-01-01",
        date_recurrence="FREQ=DAILY",
        color="red",
        heading_level=2,
    )
    cleared = NodeChanges(note="", date="", date_recurrence="", color="", heading_level=0).apply_to(node)
    assert cleared.note is None
    assert cleared.date is None
    assert cleared.date_recurrence is None
    assert cleared.color is None
    assert cleared.heading_level is None


def test_changes_apply_sets_updated_at() -> None:
    node = Node(id="a", parent_id=None, position=0)
    updated = NodeChanges(content="c").apply_to(node, updated_at="2024-01-01T00:00:00")
    assert updated.content == "c"
    assert updated.updated_at == "2024-01-01T00:00:00"


def test_restoring_turns_missing_values_into_clears() -> None:
    node = Node(id="a", parent_id=None, position=0, content="old")
    changes = NodeChanges.restoring(node, ["content", "note", "heading_level"])
    assert changes == NodeChanges(content="old", note="", heading_level=0)


def test_restore_changes_only_covers_non_default_fields() -> None:
    node = Node(id="a", parent_id=None, position=0, content="c", is_checked=True, note="n")
    assert restore_changes(node) == NodeChanges(is_checked=True, note="n")
    assert restore_changes(Node(id="b", parent_id=None, position=0)).is_empty()


def test_document_state_from_dict() -> None:
    state = DocumentState.from_dict(
        {"nodes": [{"id": "a", "parent_id": None, "position": 0, "content": "x"}]}
    )
    assert len(state.nodes) == 1
    assert state.to_dict()["nodes"][0]["content"] == "x"
