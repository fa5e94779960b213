from __future__ import annotations

import re

import pytest

from flamedash.app import Action, App
from flamedash.render import Screen, render, split_matches, stack_color, status_bars, text_color
from flamedash.settings import DARK
from flamedash.state import FlameGraphView

from .conftest import tree_of


@pytest.fixture
def app():
    return App(FlameGraphView(tree_of(("main;foo;bar", 3), ("main;baz", 2))), "trace.folded")


class TestRender:
    def test_flamegraph_rows(self, app):
        lines = render(app, 100, 20, DARK).lines()
        assert "[Flamegraph] | Top" in lines[0]
        assert "trace.folded" in lines[0]
        assert lines[2].startswith(" all")
        assert lines[3].startswith(" main")
        assert lines[4].startswith(" foo")
        assert lines[4][60:64] == " baz"
        assert lines[5].startswith(" bar")

    def test_help_bar(self, app):
        lines = render(app, 160, 20, DARK).lines()
        assert "[q: quit]" in lines[-1]
        assert "[/: search]" in lines[-1]

    def test_frame_size_follows_bars(self, app):
        render(app, 100, 20, DARK)
        # header, one status bar, help bar
        assert app.view.state.frame_height == 14
        assert app.view.state.frame_width == 100

    def test_table(self, app):
        app.handle(Action.TOGGLE_VIEW)
        lines = render(app, 100, 20, DARK).lines()
        assert "Total [▼]" in lines[2]
        assert lines[3].startswith("5 (100.00%)")
        assert lines[3].rstrip().endswith("main")

    def test_search_prompt_cursor(self, app):
        app.handle(Action.START_SEARCH)
        app.type_text("ba")
        screen = render(app, 100, 20, DARK)
        x, y = screen.cursor
        assert x == 2
        assert screen.lines()[y].startswith("ba")

    def test_narrow_frames_drawn_as_dot(self):
        tree = tree_of(("a", 40), ("b", 1))
        lines = render(App(FlameGraphView(tree), "x"), 41, 20, DARK).lines()
        # b gets exactly one column
        assert lines[3][40] == "."

    def test_more_rows_marker(self, app):
        lines = render(app, 100, 9, DARK).lines()
        assert "more ▼" in "".join(lines)


class TestStatusBars:
    def test_selected_bar(self, app):
        assert status_bars(app) == [("Selected", "all [5 samples, 100.00% of all]")]

    def test_match_bar(self, app):
        app.view.set_search("ba")
        bars = dict(status_bars(app))
        assert bars["Match"] == '"ba" [5 samples, 100.00% of all]'

    def test_table_no_match(self, app):
        app.view.set_search("zzz")
        app.handle(Action.TOGGLE_VIEW)
        bars = dict(status_bars(app))
        assert bars["Match"].endswith("(no match; showing all)")
        assert "Selected" not in bars


class TestColors:
    def test_selected_and_matched(self, app):
        tree = app.view.tree
        assert stack_color(tree.nodes[0], 0, None, DARK) == DARK["selected_stack"]
        tree.nodes[2].hit = True
        assert stack_color(tree.nodes[2], 0, None, DARK) == DARK["matched_bg"]

    def test_hot_palette_is_stable(self, app):
        node = app.view.tree.nodes[3]
        color = stack_color(node, 0, None, DARK)
        assert color == stack_color(node, 0, None, DARK)
        r, g, b = (int(color[i:i + 2], 16) for i in (1, 3, 5))
        assert r >= 205 and g <= 230 and b <= 55

    def test_text_contrast(self):
        assert text_color("#fafafa", DARK) == DARK["text_dark"]
        assert text_color("#0a2396", DARK) == DARK["text_light"]


def test_split_matches():
    assert split_matches("foobar", re.compile("o")) == [("f", False), ("o", True), ("o", True), ("bar", False)]
    assert split_matches("foobar", None) == [("foobar", False)]


def test_screen_clips():
    screen = Screen(5, 1)
    assert screen.put(3, 0, "abcdef", "#fff") == 9
    assert screen.lines() == ["   ab"]
