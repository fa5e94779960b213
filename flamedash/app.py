from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import FlameDashError, InvalidPattern
from .loader import load_records
from .ordered import SortColumn
from .sampler import SamplerBridge, SamplerState, SamplerStatus, SnapshotCell
from .state import Direction, FlameGraphView, ViewKind
from .tree import FlameTree, FrameKey, build_tree

logger = logging.getLogger(__name__)


class Action(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    ZOOM_IN = "zoom_in"
    ZOOM_OUT = "zoom_out"
    SCROLL_DOWN = "scroll_down"
    SCROLL_UP = "scroll_up"
    TOGGLE_VIEW = "toggle_view"
    START_SEARCH = "start_search"
    CONFIRM_SEARCH = "confirm_search"
    CANCEL_SEARCH = "cancel_search"
    SEARCH_SELECTED = "search_selected"
    NEXT_MATCH = "next_match"
    PREV_MATCH = "prev_match"
    SORT_TOTAL = "sort_total"
    SORT_OWN = "sort_own"
    TOGGLE_FREEZE = "toggle_freeze"
    RESET = "reset"
    QUIT = "quit"


_MOVES = {
    Action.UP: Direction.UP,
    Action.DOWN: Direction.DOWN,
    Action.LEFT: Direction.LEFT,
    Action.RIGHT: Direction.RIGHT,
}


@dataclass
class InputBuffer:
    """Text being typed into the search prompt."""
    text: str = ""
    cursor: int = 0

    def insert(self, s: str) -> None:
        self.text = self.text[:self.cursor] + s + self.text[self.cursor:]
        self.cursor += len(s)

    def backspace(self) -> None:
        if self.cursor > 0:
            self.text = self.text[:self.cursor - 1] + self.text[self.cursor:]
            self.cursor -= 1

    def move(self, delta: int) -> None:
        self.cursor = max(0, min(len(self.text), self.cursor + delta))


@dataclass
class StatusSummary:
    selected_name: str
    selected_total: int
    root_total: int
    zoom_total: Optional[int]
    pattern: Optional[str] = None
    coverage: Optional[int] = None
    no_match_showing_all: bool = False
    sampler: Optional[SamplerState] = None
    message: Optional[str] = None


def percent(count: int, total: Optional[int]) -> float:
    if not total:
        return 0.0
    return 100.0 * count / total


def count_stats(count: int, root_total: int, zoom_total: Optional[int]) -> str:
    out = f"[{count} samples, {percent(count, root_total):.2f}% of all"
    if zoom_total is not None:
        out += f", {percent(count, zoom_total):.2f}% of zoomed"
    return out + "]"


def format_duration(seconds: float) -> str:
    s = int(seconds)
    return f"{s // 3600:02d}:{(s // 60) % 60:02d}:{s % 60:02d}"


class App:
    """
    Dashboard controller: turns commands into View State changes and pulls
    new snapshots from a live sampler. Runs entirely on the UI thread.
    """

    def __init__(
        self,
        view: FlameGraphView,
        description: str,
        records: Optional[Sequence[Tuple[Sequence[FrameKey], int]]] = None,
        bridge: Optional[SamplerBridge] = None,
        debug: bool = False,
    ) -> None:
        self.view = view
        self.description = description
        self.records = records
        self.bridge = bridge
        self.debug = debug
        self.running = True
        self.freeze = False
        self.input_buffer: Optional[InputBuffer] = None
        self.transient_message: Optional[str] = None
        self.elapsed: Dict[str, float] = {}
        self._seq = 0
        self._generation = 0
        self._min_generation = 0

    # ----- construction -----

    @classmethod
    def from_file(cls, path: str, debug: bool = False) -> "App":
        """Load a folded trace file. TraceFileError propagates: no dashboard without a tree."""
        t0 = time.perf_counter()
        records = load_records(path)
        view = FlameGraphView(build_tree(records))
        app = cls(view, description=path, records=records, debug=debug)
        app.add_elapsed("load", time.perf_counter() - t0)
        return app

    @classmethod
    def from_bridge(cls, bridge: SamplerBridge, debug: bool = False) -> "App":
        return cls(FlameGraphView(FlameTree()), description=bridge.source.description, bridge=bridge, debug=debug)

    @property
    def is_live(self) -> bool:
        return self.bridge is not None

    @property
    def cell(self) -> Optional[SnapshotCell]:
        return self.bridge.cell if self.bridge else None

    def sampler_state(self) -> Optional[SamplerState]:
        return self.cell.state() if self.cell else None

    def add_elapsed(self, key: str, seconds: float) -> None:
        self.elapsed[key] = seconds

    # ----- snapshots -----

    def tick(self) -> bool:
        """Adopt the newest published snapshot unless frozen or older than a pending reset. Returns True if the tree changed."""
        if self.cell is None or self.freeze:
            return False
        snap = self.cell.latest()
        if snap is None or snap.seq == self._seq or snap.generation < self._min_generation:
            return False
        t0 = time.perf_counter()
        self._seq = snap.seq
        if snap.generation != self._generation:
            self._generation = snap.generation
            self.view.reset(snap.tree)
        else:
            self.view.replace_tree(snap.tree)
        self.add_elapsed("snapshot", time.perf_counter() - t0)
        return True

    # ----- commands -----

    def handle(self, action: Action) -> None:
        if self.input_buffer is not None:
            self._handle_search_prompt(action)
            return
        self.transient_message = None
        try:
            self._dispatch(action)
        except InvalidPattern as e:
            self.transient_message = str(e)
        except FlameDashError as e:
            logger.debug("Command %s failed: %s", action.value, e)
            self.transient_message = str(e)

    def _dispatch(self, action: Action) -> None:
        view = self.view
        if action in _MOVES:
            view.move(_MOVES[action])
        elif action is Action.ZOOM_IN:
            if view.state.view_kind is ViewKind.TABLE:
                self._jump_to_table_selection()
            else:
                view.zoom()
        elif action is Action.ZOOM_OUT:
            view.unzoom()
        elif action is Action.SCROLL_DOWN:
            view.scroll(1)
        elif action is Action.SCROLL_UP:
            view.scroll(-1)
        elif action is Action.TOGGLE_VIEW:
            view.toggle_view()
        elif action is Action.START_SEARCH:
            self.input_buffer = InputBuffer()
        elif action is Action.SEARCH_SELECTED:
            view.search_selected()
        elif action is Action.NEXT_MATCH:
            view.next_match(forward=True)
        elif action is Action.PREV_MATCH:
            view.next_match(forward=False)
        elif action is Action.SORT_TOTAL:
            view.sort(SortColumn.TOTAL)
        elif action is Action.SORT_OWN:
            view.sort(SortColumn.OWN)
        elif action is Action.TOGGLE_FREEZE:
            if self.is_live:
                self.freeze = not self.freeze
        elif action is Action.RESET:
            self.reset()
        elif action is Action.QUIT:
            self.quit()

    def _jump_to_table_selection(self) -> None:
        entry = self.view.table_selected_entry()
        if entry is None:
            return
        self.view.toggle_view()
        self.view.select(entry.stack_id)

    def _handle_search_prompt(self, action: Action) -> None:
        buf = self.input_buffer
        assert buf is not None
        if action is Action.CONFIRM_SEARCH:
            try:
                self.view.set_search(buf.text)
            except InvalidPattern as e:
                self.transient_message = str(e)
                return
            self.input_buffer = None
            self.transient_message = None
        elif action is Action.CANCEL_SEARCH:
            self.input_buffer = None
        elif action is Action.LEFT:
            buf.move(-1)
        elif action is Action.RIGHT:
            buf.move(1)
        elif action is Action.QUIT:
            self.quit()

    def type_text(self, text: str) -> None:
        if self.input_buffer is not None:
            self.input_buffer.insert(text)

    def backspace(self) -> None:
        if self.input_buffer is not None:
            self.input_buffer.backspace()

    def reset(self) -> None:
        if self.bridge is not None:
            # the view is already empty, so the first snapshot of the new generation just refills it
            self._generation = self._min_generation = self.bridge.request_reset()
            self.view.reset(FlameTree())
        else:
            self.view.reset(build_tree(self.records or []))
        self.transient_message = "Reset"

    def quit(self) -> None:
        self.running = False
        if self.bridge is not None:
            self.bridge.stop()

    # ----- status -----

    def status(self) -> StatusSummary:
        view = self.view
        node = view.selected
        pattern = view.search_pattern
        summary = StatusSummary(
            selected_name=node.name,
            selected_total=node.total,
            root_total=view.tree.total_count,
            zoom_total=view.zoom_total(),
            sampler=self.sampler_state(),
            message=self.transient_message,
        )
        if pattern is not None and pattern.is_manual:
            summary.pattern = pattern.text
            summary.coverage = view.search.coverage_count
            summary.no_match_showing_all = view.ordered.no_match_showing_all
        if summary.message is None and summary.sampler is not None:
            summary.message = self._sampler_message(summary.sampler)
        return summary

    def _sampler_message(self, state: SamplerState) -> Optional[str]:
        if state.status is SamplerStatus.ERROR:
            return f"Sampler error: {state.message}"
        if state.late is not None:
            return f"Sampling is {state.late:.1f}s behind schedule"
        return None

    def header_text(self) -> str:
        out = self.description
        state = self.sampler_state()
        if state is not None:
            out += " [Running]" if state.status is SamplerStatus.RUNNING else " [Exited]"
            out += f" [Duration: {format_duration(state.total_sampled_duration)}]"
            if self.freeze:
                out += " [Frozen; press 'z' again to unfreeze]"
        return out

    def help_tags(self) -> List[Tuple[str, str]]:
        tags: List[Tuple[str, str]] = []
        if self.input_buffer is not None:
            return [("enter", "search"), ("esc", "cancel")]
        if self.view.state.view_kind is ViewKind.FLAMEGRAPH:
            tags += [("hjkl", "move cursor"), ("f/b", "scroll"), ("enter/esc", "zoom"), ("/", "search"), ("#", "search like cursor")]
            if self.view.search.is_manual:
                tags.append(("n/N", "next/prev search"))
            if self.is_live:
                tags.append(("z", "unfreeze" if self.freeze else "freeze"))
        else:
            tags += [("j/k", "move cursor"), ("f/b", "scroll"), ("enter", "show"), ("1", "sort by total"), ("2", "sort by own"), ("/", "filter")]
        tags += [("r", "reset"), ("tab", "switch view"), ("q", "quit")]
        return tags
