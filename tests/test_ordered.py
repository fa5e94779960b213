from __future__ import annotations

from flamedash.ordered import OrderedStacks, SortColumn, TableState
from flamedash.search import compile_pattern, exact_name_pattern


def _names(ordered):
    return [e.name for e in ordered.visible_entries()]


class TestOrderedStacks:
    def test_sorted_by_total_with_name_ties(self, small_tree):
        ordered = OrderedStacks()
        ordered.rebuild(small_tree)
        assert _names(ordered) == ["main", "bar", "foo", "baz"]

    def test_sorted_by_own(self, small_tree):
        ordered = OrderedStacks()
        ordered.rebuild(small_tree, column=SortColumn.OWN)
        assert _names(ordered) == ["bar", "baz", "foo", "main"]
        assert ordered.sorted_column is SortColumn.OWN

    def test_column_sticks_across_rebuilds(self, small_tree):
        ordered = OrderedStacks()
        ordered.rebuild(small_tree, column=SortColumn.OWN)
        ordered.rebuild(small_tree)
        assert ordered.sorted_column is SortColumn.OWN

    def test_manual_pattern_filters(self, small_tree):
        ordered = OrderedStacks()
        ordered.rebuild(small_tree, compile_pattern("ba"))
        assert _names(ordered) == ["bar", "baz"]
        assert not ordered.no_match_showing_all
        assert len(ordered.entries) == 4

    def test_no_match_shows_everything(self, small_tree):
        ordered = OrderedStacks()
        ordered.rebuild(small_tree, compile_pattern("zzz"))
        assert len(ordered.visible_entries()) == 4
        assert ordered.no_match_showing_all

    def test_auto_pattern_does_not_filter(self, small_tree):
        ordered = OrderedStacks()
        ordered.rebuild(small_tree, exact_name_pattern("foo"))
        assert len(ordered.visible_entries()) == 4

    def test_page(self, small_tree):
        ordered = OrderedStacks()
        ordered.rebuild(small_tree)
        assert [e.name for e in ordered.page(1, 2)] == ["bar", "foo"]
        assert ordered.page(10, 2) == []


class TestTableState:
    def test_clamp_scrolls_to_selection(self):
        table = TableState(selected=5)
        table.clamp(10, 3)
        assert (table.selected, table.offset) == (5, 3)

    def test_clamp_bounds_selection(self):
        table = TableState(selected=20, offset=15)
        table.clamp(10, 3)
        assert (table.selected, table.offset) == (9, 7)

    def test_empty_table(self):
        table = TableState(selected=4, offset=2)
        table.clamp(0, 3)
        assert (table.selected, table.offset) == (0, 0)

    def test_move_and_scroll(self):
        table = TableState()
        table.move(-1, 10, 3)
        assert table.selected == 0
        table.scroll(1, 10, 3)
        assert (table.selected, table.offset) == (3, 3)
        table.scroll(5, 10, 3)
        assert (table.selected, table.offset) == (9, 7)
