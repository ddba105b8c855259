"""Tests for the FTS5 search engine."""

import sqlite3

from outline_engine.core.search.searcher import _prepare_fts_query, search_nodes


def test_search_finds_matching_content(populated_db: sqlite3.Connection) -> None:
    results, total = search_nodes(populated_db, query="python")
    assert total == 2
    assert {r.node.id for r in results} == {"n1", "s1"}


def test_search_scoped_to_document(populated_db: sqlite3.Connection) -> None:
    results, total = search_nodes(populated_db, query="python", document_id="doc1")
    assert total == 1
    hit = results[0]
    assert hit.node.content == "Python is great for scripting"
    assert hit.document_id == "doc1"
    assert hit.document_title == "Programming"
    assert "**Python**" in hit.snippet


def test_search_matches_notes(populated_db: sqlite3.Connection) -> None:
    results, _ = search_nodes(populated_db, query="memory")
    assert [r.node.id for r in results] == ["n2"]


def test_search_pagination(populated_db: sqlite3.Connection) -> None:
    page1, total = search_nodes(populated_db, query="python", limit=1, offset=0)
    page2, _ = search_nodes(populated_db, query="python", limit=1, offset=1)
    assert total == 2
    assert len(page1) == 1
    assert len(page2) == 1
    assert page1[0].node.id != page2[0].node.id


def test_empty_query_returns_nothing(populated_db: sqlite3.Connection) -> None:
    assert search_nodes(populated_db, query="   ") == ([], 0)


def test_prepare_fts_query_prefixes_long_words() -> None:
    assert _prepare_fts_query("pyth is") == "pyth* is"


def test_prepare_fts_query_keeps_phrases_and_operators() -> None:
    assert _prepare_fts_query('"web services" or rust') == '"web services" OR rust*'


def test_prepare_fts_query_closes_unbalanced_quote() -> None:
    assert _prepare_fts_query('"open phrase') == '"open phrase"'


def test_prepare_fts_query_drops_dangling_operators() -> None:
    assert _prepare_fts_query("AND python NOT") == "python*"
    assert _prepare_fts_query("c++ (x)") == "c x"
