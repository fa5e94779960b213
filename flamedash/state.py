from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .layout import LayoutRow, VisibleRows, ZoomState, compute_visible
from .ordered import OrderedStacks, OrderedStacksEntry, SortColumn, TableState
from .search import SearchIndex, SearchPattern, exact_name_pattern
from .tree import ROOT_ID, FlameTree, StackIdentifier, StackNode

logger = logging.getLogger(__name__)


class ViewKind(Enum):
    FLAMEGRAPH = "flamegraph"
    TABLE = "table"


class Direction(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


@dataclass
class ViewState:
    selected: StackIdentifier = ROOT_ID
    zoom_stack: List[StackIdentifier] = field(default_factory=list)
    zoom: Optional[ZoomState] = None
    level_offset: int = 0
    frame_width: int = 0
    frame_height: int = 0
    view_kind: ViewKind = ViewKind.FLAMEGRAPH
    table: TableState = field(default_factory=TableState)


class FlameGraphView:
    """
    A tree together with everything the reader does to it: zoom, selection,
    scrolling, search and the sorted table. All methods run on the reader's
    thread against a tree nobody else mutates.
    """

    def __init__(self, tree: Optional[FlameTree] = None) -> None:
        self.tree = tree if tree is not None else FlameTree()
        self.state = ViewState()
        self.search = SearchIndex()
        self.ordered = OrderedStacks()
        self.has_more_rows = False
        self.ordered.rebuild(self.tree)

    # ----- accessors -----

    @property
    def selected(self) -> StackNode:
        return self.tree.node(self.state.selected)

    @property
    def search_pattern(self) -> Optional[SearchPattern]:
        return self.search.pattern

    def zoom_total(self) -> Optional[int]:
        if self.state.zoom is None:
            return None
        return self.tree.node(self.state.zoom.stack_id).total

    def set_frame_size(self, width: int, height: int) -> None:
        self.state.frame_width = max(0, width)
        self.state.frame_height = max(0, height)
        self.state.table.clamp(len(self.ordered.visible_entries()), self.state.frame_height)

    def layout(self) -> VisibleRows:
        return compute_visible(
            self.tree,
            self.state.frame_width,
            self.state.frame_height,
            level_offset=self.state.level_offset,
            zoom=self.state.zoom,
        )

    def visible_rows(self) -> List[LayoutRow]:
        rows = self.layout()
        out = list(rows)
        self.has_more_rows = rows.has_more_rows
        return out

    def toggle_view(self) -> ViewKind:
        self.state.view_kind = ViewKind.TABLE if self.state.view_kind is ViewKind.FLAMEGRAPH else ViewKind.FLAMEGRAPH
        return self.state.view_kind

    # ----- zoom -----

    def _set_zoom_stack(self, stack: List[StackIdentifier]) -> None:
        self.state.zoom_stack = stack
        if stack:
            self.state.zoom = ZoomState.for_stack(self.tree, stack[-1])
        else:
            self.state.zoom = None

    def zoom(self, stack_id: Optional[StackIdentifier] = None) -> None:
        target = self.state.selected if stack_id is None else stack_id
        self.tree.node(target)
        if target == ROOT_ID:
            self._set_zoom_stack([])
            return
        if self.state.zoom_stack and self.state.zoom_stack[-1] == target:
            return
        self._set_zoom_stack(self.state.zoom_stack + [target])
        if not self.tree.is_descendant(self.state.selected, target):
            self.state.selected = target
            self._auto_search()
        self._ensure_selected_visible()

    def unzoom(self) -> None:
        if not self.state.zoom_stack:
            return
        self._set_zoom_stack(self.state.zoom_stack[:-1])
        self._ensure_selected_visible()

    # ----- selection -----

    def select(self, stack_id: StackIdentifier) -> None:
        self.tree.node(stack_id)
        zoom = self.state.zoom
        # a node outside the zoomed subtree is never drawn
        if zoom is not None and not zoom.on_path(stack_id) and not self.tree.is_descendant(stack_id, zoom.stack_id):
            self._set_zoom_stack([])
        self.state.selected = stack_id
        self._ensure_selected_visible()
        self._auto_search()

    def move(self, direction: Direction) -> None:
        if self.state.view_kind is ViewKind.TABLE:
            if direction in (Direction.UP, Direction.DOWN):
                self.state.table.move(
                    -1 if direction is Direction.UP else 1,
                    len(self.ordered.visible_entries()),
                    self.state.frame_height,
                )
            return

        node = self.selected
        if direction is Direction.LEFT:
            if node.parent is not None:
                self.select(node.parent)
        elif direction is Direction.RIGHT:
            if node.children:
                self.select(node.children[0])
        else:
            ids = [r.stack_id for r in self.visible_rows()]
            if not ids:
                return
            if node.id not in ids:
                self.select(ids[0])
                return
            i = ids.index(node.id) + (-1 if direction is Direction.UP else 1)
            if 0 <= i < len(ids):
                self.select(ids[i])

    def table_selected_entry(self) -> Optional[OrderedStacksEntry]:
        rows = self.ordered.visible_entries()
        if not rows:
            return None
        self.state.table.clamp(len(rows), self.state.frame_height)
        return rows[self.state.table.selected]

    def _ensure_selected_visible(self) -> None:
        height = self.state.frame_height
        if height <= 0:
            return
        level = self.selected.level
        if level < self.state.level_offset:
            self.state.level_offset = level
        elif level >= self.state.level_offset + height:
            self.state.level_offset = level - height + 1

    def scroll(self, pages: int) -> None:
        height = max(1, self.state.frame_height)
        if self.state.view_kind is ViewKind.TABLE:
            self.state.table.scroll(pages, len(self.ordered.visible_entries()), height)
            return
        if pages > 0:
            self.visible_rows()
            if not self.has_more_rows:
                return
        self.state.level_offset = max(0, self.state.level_offset + pages * height)

    # ----- sort -----

    def sort(self, column: SortColumn) -> None:
        self.ordered.rebuild(self.tree, self.search.pattern, column)
        self.state.table.clamp(len(self.ordered.visible_entries()), self.state.frame_height)

    # ----- search -----

    def set_search(self, text: str) -> None:
        """Apply a user-entered pattern. InvalidPattern leaves the previous search in place."""
        if not text:
            self.clear_search()
            return
        self.search.compile(self.tree, text, is_manual=True)
        self.ordered.rebuild(self.tree, self.search.pattern)
        self.state.table.reset()

    def search_selected(self) -> None:
        """Turn the selected node's exact name into a manual search."""
        node = self.selected
        if node.is_root:
            return
        self.set_search(exact_name_pattern(node.name).text)

    def clear_search(self) -> None:
        self.search.clear(self.tree)
        self.ordered.rebuild(self.tree)
        self.state.table.clamp(len(self.ordered.visible_entries()), self.state.frame_height)
        self._auto_search()

    def _auto_search(self) -> None:
        if self.search.is_manual:
            return
        node = self.selected
        if node.is_root:
            if self.search.pattern is not None:
                self.search.clear(self.tree)
            return
        self.search.apply(self.tree, exact_name_pattern(node.name))

    def next_match(self, forward: bool = True) -> bool:
        if not self.search.is_manual:
            return False
        order = {n.id: i for i, n in enumerate(self.tree.walk())}
        hits = sorted(self.search.hits(self.tree), key=order.__getitem__)
        if not hits:
            return False
        cur = order.get(self.state.selected, -1)
        if forward:
            after = [h for h in hits if order[h] > cur]
            target = after[0] if after else hits[0]
        else:
            before = [h for h in hits if order[h] < cur]
            target = before[-1] if before else hits[-1]
        self.select(target)
        return True

    # ----- updates -----

    def replace_tree(self, tree: FlameTree) -> None:
        """Swap in a newer tree of the same session; ids held by the view stay valid."""
        self.tree = tree
        if self.state.selected not in tree:
            self.state.selected = ROOT_ID
        stack = [s for s in self.state.zoom_stack if s in tree]
        self._set_zoom_stack(stack)
        self.search.refresh(tree)
        self.ordered.rebuild(tree, self.search.pattern)
        self.state.table.clamp(len(self.ordered.visible_entries()), self.state.frame_height)

    def reset(self, tree: Optional[FlameTree] = None) -> None:
        """Forget zoom, selection, scrolling and search; optionally start over on a new tree."""
        if tree is not None:
            self.tree = tree
        old = self.state
        self.state = ViewState(frame_width=old.frame_width, frame_height=old.frame_height, view_kind=old.view_kind)
        self.search.clear(self.tree)
        self.ordered.rebuild(self.tree, column=self.ordered.sorted_column)
        logger.debug("View reset (%d stacks)", len(self.tree))

