from __future__ import annotations

import pytest

from flamedash.errors import InvalidPattern
from flamedash.search import SearchIndex, compile_pattern, exact_name_pattern

from .conftest import tree_of


class TestSearchIndex:
    def test_coverage_sums_own_of_matches(self, small_tree):
        index = SearchIndex()
        index.compile(small_tree, "ba.")
        assert index.coverage_count == 5
        assert sorted(index.hits(small_tree)) == [3, 4]

    def test_ancestor_and_descendant_not_double_counted(self, small_tree):
        index = SearchIndex()
        index.compile(small_tree, "main|bar")
        assert index.coverage_count == 3

    def test_root_never_hit(self, small_tree):
        index = SearchIndex()
        index.compile(small_tree, ".*")
        assert not small_tree.root.hit
        assert index.coverage_count == 5

    def test_reapplying_is_idempotent(self, small_tree):
        index = SearchIndex()
        index.compile(small_tree, "foo")
        first = [n.hit for n in small_tree.nodes]
        index.refresh(small_tree)
        assert [n.hit for n in small_tree.nodes] == first
        assert index.coverage_count == 0

    def test_invalid_pattern_keeps_previous(self, small_tree):
        index = SearchIndex()
        index.compile(small_tree, "bar")
        with pytest.raises(InvalidPattern):
            index.compile(small_tree, "(")
        assert index.pattern.text == "bar"
        assert small_tree.nodes[3].hit
        assert index.coverage_count == 3

    def test_auto_pattern_has_no_coverage(self, small_tree):
        index = SearchIndex()
        index.apply(small_tree, exact_name_pattern("foo"))
        assert small_tree.nodes[2].hit
        assert not index.is_manual
        assert index.coverage_count is None

    def test_clear_resets_flags(self, small_tree):
        index = SearchIndex()
        index.compile(small_tree, "ba")
        index.clear(small_tree)
        assert not any(n.hit for n in small_tree.nodes)
        assert index.pattern is None


def test_exact_name_pattern_escapes():
    pattern = exact_name_pattern("f (a.py:1)")
    assert pattern.matches("f (a.py:1)")
    assert not pattern.matches("f (a.py:10)")


def test_compile_pattern_error_mentions_pattern():
    with pytest.raises(InvalidPattern) as exc:
        compile_pattern("[")
    assert exc.value.pattern == "["


def test_pattern_on_shared_prefix_tree():
    tree = tree_of(("main;foo;bar", 3), ("main;foo;baz", 2))
    index = SearchIndex()
    index.compile(tree, "ba.")
    assert index.coverage_count == 5
    assert [n.name for n in tree.nodes if n.hit] == ["bar", "baz"]
    assert index.coverage_count <= tree.total_count
