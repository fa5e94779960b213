from __future__ import annotations

import pytest

from flamedash.errors import InvalidPattern, UnknownStack
from flamedash.state import Direction, FlameGraphView, ViewKind

from .conftest import keys


@pytest.fixture
def view(small_tree):
    v = FlameGraphView(small_tree)
    v.set_frame_size(100, 10)
    return v


# ── Selection ──────────────────────────────────────────────


class TestMove:
    def test_down_follows_row_order(self, view):
        seen = []
        for _ in range(6):
            view.move(Direction.DOWN)
            seen.append(view.state.selected)
        assert seen == [1, 2, 3, 4, 4, 4]

    def test_up_stops_at_root(self, view):
        view.select(2)
        view.move(Direction.UP)
        view.move(Direction.UP)
        view.move(Direction.UP)
        assert view.state.selected == 0

    def test_left_and_right(self, view):
        view.move(Direction.RIGHT)
        view.move(Direction.RIGHT)
        assert view.state.selected == 2
        view.move(Direction.LEFT)
        assert view.state.selected == 1
        view.select(3)
        view.move(Direction.RIGHT)
        assert view.state.selected == 3

    def test_selection_highlights_same_name(self, view):
        view.select(2)
        assert view.tree.nodes[2].hit
        assert not view.search.is_manual
        view.select(0)
        assert view.search.pattern is None

    def test_select_unknown(self, view):
        with pytest.raises(UnknownStack):
            view.select(42)

    def test_selection_kept_visible(self, view):
        view.set_frame_size(100, 2)
        view.select(3)
        assert view.state.level_offset == 2
        view.select(0)
        assert view.state.level_offset == 0


# ── Zoom ──────────────────────────────────────────────────


class TestZoom:
    def test_zoom_on_selection(self, view):
        view.select(2)
        view.zoom()
        assert view.state.zoom_stack == [2]
        assert view.state.zoom.ancestors == (0, 1)
        assert view.zoom_total() == 3

    def test_zoom_moves_selection_into_subtree(self, view):
        view.select(3)
        view.zoom(4)
        assert view.state.selected == 4

    def test_zoom_highlights_new_selection(self, view):
        view.select(3)
        view.zoom(4)
        assert view.search_pattern.text == "^baz$"
        assert view.tree.nodes[4].hit
        assert not view.tree.nodes[3].hit

    def test_select_outside_zoom_clears_it(self, view):
        view.zoom(2)
        view.select(4)
        assert view.state.zoom is None
        assert 4 in [r.stack_id for r in view.visible_rows()]

    def test_select_on_zoom_path_keeps_it(self, view):
        view.zoom(2)
        view.select(1)
        assert view.state.zoom_stack == [2]
        view.select(3)
        assert view.state.zoom_stack == [2]

    def test_zoom_keeps_selection_inside(self, view):
        view.select(3)
        view.zoom(2)
        assert view.state.selected == 3

    def test_same_zoom_twice_is_noop(self, view):
        view.zoom(2)
        view.zoom(2)
        assert view.state.zoom_stack == [2]

    def test_unzoom_pops(self, view):
        view.zoom(1)
        view.zoom(2)
        view.unzoom()
        assert view.state.zoom_stack == [1]
        view.unzoom()
        view.unzoom()
        assert view.state.zoom is None

    def test_zoom_root_clears(self, view):
        view.zoom(2)
        view.zoom(0)
        assert view.state.zoom_stack == []
        assert view.zoom_total() is None

    def test_zoom_unknown(self, view):
        with pytest.raises(UnknownStack):
            view.zoom(17)
        assert view.state.zoom is None


# ── Search ──────────────────────────────────────────────


class TestSearch:
    def test_manual_search(self, view):
        view.set_search("ba")
        assert view.search.coverage_count == 5
        assert [e.name for e in view.ordered.visible_entries()] == ["bar", "baz"]

    def test_invalid_search_keeps_state(self, view):
        view.set_search("bar")
        with pytest.raises(InvalidPattern):
            view.set_search("(")
        assert view.search_pattern.text == "bar"

    def test_empty_search_clears(self, view):
        view.select(2)
        view.set_search("ba")
        view.set_search("")
        assert not view.search.is_manual
        assert view.tree.nodes[2].hit

    def test_search_selected(self, view):
        view.select(4)
        view.search_selected()
        assert view.search.is_manual
        assert view.search.coverage_count == 2

    def test_next_match_wraps(self, view):
        view.set_search("ba")
        assert view.next_match()
        assert view.state.selected == 3
        view.next_match()
        assert view.state.selected == 4
        view.next_match()
        assert view.state.selected == 3
        view.next_match(forward=False)
        assert view.state.selected == 4

    def test_next_match_leaves_zoom(self, view):
        view.zoom(2)
        view.set_search("baz")
        view.next_match()
        assert view.state.selected == 4
        assert view.state.zoom is None

    def test_next_match_without_manual_search(self, view):
        assert not view.next_match()


# ── Table ──────────────────────────────────────────────


class TestTableView:
    def test_moves_table_cursor(self, view):
        assert view.toggle_view() is ViewKind.TABLE
        view.move(Direction.DOWN)
        view.move(Direction.DOWN)
        assert view.table_selected_entry().name == "foo"
        assert view.state.selected == 0

    def test_scroll_by_page(self, view):
        view.toggle_view()
        view.set_frame_size(100, 2)
        view.scroll(1)
        assert view.state.table.offset == 2
        assert view.table_selected_entry().name == "foo"


class TestScroll:
    def test_scroll_down_needs_more_rows(self, view):
        view.set_frame_size(100, 2)
        view.scroll(1)
        assert view.state.level_offset == 2
        view.scroll(1)
        assert view.state.level_offset == 2
        view.scroll(-1)
        assert view.state.level_offset == 0


# ── Updates ──────────────────────────────────────────────


class TestUpdates:
    def test_replace_tree_keeps_ids(self, view):
        view.select(3)
        view.zoom(2)
        view.set_search("ba")
        newer = view.tree.copy()
        newer.insert_trace(keys("main;bat"), 4)
        view.replace_tree(newer)
        assert view.tree is newer
        assert view.state.selected == 3
        assert view.state.zoom_stack == [2]
        assert view.search.coverage_count == 9
        assert newer.nodes[5].hit

    def test_reset(self, view):
        view.select(3)
        view.zoom(2)
        view.set_search("ba")
        view.toggle_view()
        view.reset()
        assert view.state.selected == 0
        assert view.state.zoom is None
        assert view.search.pattern is None
        assert view.state.frame_width == 100
        assert view.state.view_kind is ViewKind.TABLE
