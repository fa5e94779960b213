"""
Character-cell projection of the dashboard.

``render`` turns the App into a Screen: a list of coloured text segments on a
fixed grid of columns and rows. The Qt window only paints segments; every
decision about what goes where is made here.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

from . import APP_NAME, __version__
from .app import App, count_stats, percent
from .layout import LayoutRow, ZoomState
from .ordered import OrderedStacksEntry, SortColumn
from .state import ViewKind
from .tree import StackNode


@dataclass
class Segment:
    x: int
    y: int
    text: str
    fg: str
    bg: Optional[str] = None
    bold: bool = False


@dataclass
class Screen:
    width: int
    height: int
    segments: List[Segment] = field(default_factory=list)
    cursor: Optional[Tuple[int, int]] = None

    def put(self, x: int, y: int, text: str, fg: str, bg: Optional[str] = None, bold: bool = False) -> int:
        """Draw ``text`` clipped to the grid; returns the column after it."""
        if y < 0 or y >= self.height or x >= self.width or not text:
            return x + len(text)
        if x < 0:
            text = text[-x:]
            x = 0
        clipped = text[: max(0, self.width - x)]
        if clipped:
            self.segments.append(Segment(x, y, clipped, fg, bg, bold))
        return x + len(text)

    def lines(self) -> List[str]:
        """Plain text of the grid, later segments overwriting earlier ones."""
        grid = [[" "] * self.width for _ in range(self.height)]
        for s in self.segments:
            for i, ch in enumerate(s.text):
                grid[s.y][s.x + i] = ch
        return ["".join(row) for row in grid]


# -------------------------- Colors --------------------------

def _rgb(hex_color: str) -> Tuple[int, int, int]:
    h = hex_color.lstrip("#")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def _hex(r: int, g: int, b: int) -> str:
    return f"#{r:02x}{g:02x}{b:02x}"


def _hash_unit(name: str) -> float:
    digest = hashlib.md5(name.encode("utf-8", "replace")).digest()
    return int.from_bytes(digest[:8], "big") / float(1 << 64)


def stack_color(node: StackNode, selected: int, zoom: Optional[ZoomState], palette: Dict[str, str]) -> str:
    # roughly flamegraph.pl's "hot" palette
    if node.id == selected:
        return palette["selected_stack"]
    if node.hit:
        r, g, b = _rgb(palette["matched_bg"])
    else:
        v = _hash_unit(node.full_name)
        r, g, b = 205 + int(50 * v), int(230 * v), int(55 * v)
    if zoom is not None and zoom.is_ancestor(node.id):
        r, g, b = int(r / 2.5), int(g / 2.5), int(b / 2.5)
    return _hex(r, g, b)


def text_color(bg: str, palette: Dict[str, str]) -> str:
    r, g, b = _rgb(bg)
    luma = 0.2126 * r + 0.7152 * g + 0.0722 * b
    return palette["text_dark"] if luma > 128 else palette["text_light"]


def split_matches(text: str, regex: Optional[Pattern[str]]) -> List[Tuple[str, bool]]:
    """``text`` cut into (part, is_match) pieces."""
    if regex is None:
        return [(text, False)]
    out: List[Tuple[str, bool]] = []
    pos = 0
    for m in regex.finditer(text):
        if m.end() == m.start():
            continue
        if m.start() > pos:
            out.append((text[pos:m.start()], False))
        out.append((m.group(0), True))
        pos = m.end()
    if pos < len(text):
        out.append((text[pos:], False))
    return out or [(text, False)]


# -------------------------- Pieces --------------------------

def _draw_rule(screen: Screen, y: int, palette: Dict[str, str], title: str = "") -> None:
    screen.put(0, y, "─" * screen.width, palette["border"])
    if title:
        screen.put(0, y, f"{title} ", palette["title"], bold=True)


def _draw_header(app: App, screen: Screen, palette: Dict[str, str]) -> None:
    x = screen.put(0, 0, " ", palette["text"])
    for i, (label, kind) in enumerate((("Flamegraph", ViewKind.FLAMEGRAPH), ("Top", ViewKind.TABLE))):
        if i:
            x = screen.put(x, 0, " | ", palette["text"])
        if app.view.state.view_kind is kind:
            x = screen.put(x, 0, f"[{label}]", palette["title"], bold=True)
        else:
            x = screen.put(x, 0, label, palette["text"], bold=True)
    version = f"{APP_NAME} v{__version__} "
    vx = max(x + 1, screen.width - len(version))
    title = app.header_text()
    room = max(0, vx - x - 2)
    if len(title) > room:
        title = title[: max(0, room - 1)] + "…" if room else ""
    tx = x + 1 + max(0, (room - len(title)) // 2)
    screen.put(tx, 0, title, palette["text"], bold=True)
    screen.put(vx, 0, version, palette["text"], bold=True)
    _draw_rule(screen, 1, palette)


def status_bars(app: App) -> List[Tuple[str, str]]:
    if app.input_buffer is not None:
        return [("Search", app.input_buffer.text)]
    s = app.status()
    bars: List[Tuple[str, str]] = []
    if s.pattern is not None and s.coverage is not None:
        text = f'"{s.pattern}" {count_stats(s.coverage, s.root_total, s.zoom_total)}'
        if app.view.state.view_kind is ViewKind.TABLE and s.no_match_showing_all:
            text += " (no match; showing all)"
        bars.append(("Match", text))
    if app.view.state.view_kind is ViewKind.FLAMEGRAPH:
        bars.append(("Selected", f"{s.selected_name} {count_stats(s.selected_total, s.root_total, s.zoom_total)}"))
    if app.debug:
        timings = " ".join(f"{k}:{v * 1000:.2f}ms" for k, v in app.elapsed.items())
        bars.append(("Debug", timings))
    if s.message:
        bars.append(("Info", s.message))
    return bars


def _draw_flamegraph(app: App, screen: Screen, top: int, height: int, palette: Dict[str, str]) -> bool:
    view = app.view
    pattern = view.search_pattern
    # whole-name auto patterns colour the stack but don't mark text
    regex = pattern.regex if pattern is not None and pattern.is_manual else None
    rows = view.layout()
    for row in rows:
        _draw_stack(app, screen, row, top, regex, palette)
    view.has_more_rows = rows.has_more_rows
    if rows.has_more_rows:
        screen.put(screen.width - 7, top + height - 1, " more ▼", palette["title"], palette["bg"], bold=True)
    if view.state.level_offset > 0:
        screen.put(screen.width - 7, top, " more ▲", palette["title"], palette["bg"], bold=True)
    return rows.has_more_rows


def _draw_stack(app: App, screen: Screen, row: LayoutRow, top: int, regex: Optional[Pattern[str]], palette: Dict[str, str]) -> None:
    view = app.view
    node = view.tree.nodes[row.stack_id]
    bg = stack_color(node, view.state.selected, view.state.zoom, palette)
    fg = text_color(bg, palette)
    y = top + row.y
    end = row.x + row.width
    screen.put(row.x, y, " " * row.width, fg, bg)
    x = screen.put(row.x, y, " " if row.width > 1 else ".", fg, bg)
    parts = split_matches(node.name, regex if node.hit else None)
    for text, matched in parts:
        if x >= end:
            break
        text = text[: end - x]
        if matched:
            x = screen.put(x, y, text, palette["match_fg"], bg, bold=True)
        else:
            x = screen.put(x, y, text, fg, bg)


def _format_count(count: int, total: int) -> str:
    return f"{count} ({percent(count, total):.2f}%)  "


def _draw_table(app: App, screen: Screen, top: int, height: int, palette: Dict[str, str]) -> None:
    view = app.view
    ordered = view.ordered
    total = view.tree.total_count
    table = view.state.table
    rows: List[OrderedStacksEntry] = ordered.page(table.offset, height - 1)

    def label(name: str, col: SortColumn) -> str:
        return f"{name} [▼]" if ordered.sorted_column is col else name

    head_total = label("Total", SortColumn.TOTAL)
    head_own = label("Own", SortColumn.OWN)
    totals = [_format_count(e.total, total) for e in rows]
    owns = [_format_count(e.own, total) for e in rows]
    w_total = max([len(head_total) + 2] + [len(t) for t in totals])
    w_own = max([len(head_own) + 2] + [len(o) for o in owns])

    screen.put(0, top, " " * screen.width, palette["header_fg"], palette["header_bg"])
    screen.put(0, top, head_total, palette["header_fg"], palette["header_bg"], bold=True)
    screen.put(w_total, top, head_own, palette["header_fg"], palette["header_bg"], bold=True)
    screen.put(w_total + w_own, top, "Name", palette["header_fg"], palette["header_bg"], bold=True)

    pattern = view.search_pattern
    regex = pattern.regex if pattern is not None and pattern.is_manual else None
    for i, entry in enumerate(rows):
        y = top + 1 + i
        bg = palette["table_selected"] if table.offset + i == table.selected else None
        if bg:
            screen.put(0, y, " " * screen.width, palette["text"], bg)
        screen.put(0, y, totals[i], palette["text"], bg)
        screen.put(w_total, y, owns[i], palette["text"], bg)
        x = w_total + w_own
        for text, matched in split_matches(entry.name, regex):
            if matched:
                x = screen.put(x, y, text, palette["match_fg"], bg, bold=True)
            else:
                x = screen.put(x, y, text, palette["text"], bg)


def _draw_help(app: App, screen: Screen, y: int, palette: Dict[str, str]) -> None:
    _draw_rule(screen, y, palette)
    x = screen.put(0, y + 1, " ", palette["text"])
    for tag, desc in app.help_tags():
        x = screen.put(x, y + 1, "[", palette["text"])
        x = screen.put(x, y + 1, tag, palette["title"], bold=True)
        x = screen.put(x, y + 1, f": {desc}] ", palette["text"])


# -------------------------- Entry --------------------------

def render(app: App, width: int, height: int, palette: Dict[str, str]) -> Screen:
    screen = Screen(width=max(1, width), height=max(1, height))
    bars = status_bars(app)
    main_top = 2
    main_height = max(1, screen.height - main_top - 2 * len(bars) - 2)

    t0 = time.perf_counter()
    if app.view.state.view_kind is ViewKind.FLAMEGRAPH:
        app.view.set_frame_size(screen.width, main_height)
        _draw_flamegraph(app, screen, main_top, main_height, palette)
    else:
        app.view.set_frame_size(screen.width, main_height - 1)
        _draw_table(app, screen, main_top, main_height, palette)
    app.add_elapsed("render", time.perf_counter() - t0)

    _draw_header(app, screen, palette)
    y = main_top + main_height
    for title, text in bars:
        _draw_rule(screen, y, palette, title)
        screen.put(0, y + 1, text, palette["text"])
        y += 2
    if app.input_buffer is not None:
        screen.cursor = (app.input_buffer.cursor, y - 1)
    _draw_help(app, screen, y, palette)
    return screen
