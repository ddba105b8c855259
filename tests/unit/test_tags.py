"""Tests for hashtag/mention extraction and tag collection."""

from outline_engine.core.search.tags import (
    collect_tags,
    extract_hashtags,
    extract_mentions,
    extract_wiki_links,
    node_matches_filter,
    strip_html,
)
from outline_engine.models.node import Node


def _node(node_id: str, content: str) -> Node:
    return Node(id=node_id, parent_id=None, position=0, content=content)


def test_extract_hashtags_requires_boundary() -> None:
    assert extract_hashtags("#todo buy milk #shop-list") == ["todo", "shop-list"]
    assert extract_hashtags("issue#12 and #1st") == []


def test_extract_mentions() -> None:
    assert extract_mentions("ask @alice and @bob_2") == ["alice", "bob_2"]
    assert extract_mentions("mail me@example.com") == []


def test_strip_html_decodes_entities_and_nbsp() -> None:
    assert strip_html("<i>a</i>&nbsp;&lt;b&gt;") == "a <b>"


def test_node_matches_filter_uses_plain_text() -> None:
    node = _node("a", "<span>#project</span> plan")
    assert node_matches_filter(node, "#project")
    assert not node_matches_filter(node, "#proj")
    assert not node_matches_filter(node, "project")


def test_collect_tags_counts_nodes() -> None:
    tags = collect_tags(
        [
            _node("a", "#work #home"),
            _node("b", "#work again #work"),
            _node("c", "nothing"),
        ]
    )
    assert set(tags) == {"work", "home"}
    assert tags["work"].count == 3
    assert tags["work"].node_ids == ["a", "b"]
    assert tags["home"].count == 1


def test_extract_wiki_links() -> None:
    content = 'see <span data-wiki-link="" data-node-id="n-1">Plan</span> and [[ n-2 ]]'
    assert extract_wiki_links(content) == ["n-1", "n-2"]
    assert extract_wiki_links("no links [here]") == []
