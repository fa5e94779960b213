from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .search import SearchPattern
from .tree import FlameTree, StackIdentifier


class SortColumn(Enum):
    TOTAL = "total"
    OWN = "own"


@dataclass
class OrderedStacksEntry:
    stack_id: StackIdentifier
    name: str
    own: int
    total: int
    visible: bool = True


@dataclass
class OrderedStacks:
    """Flat, sorted projection of the tree (one entry per non-root node) for the table view."""
    entries: List[OrderedStacksEntry] = field(default_factory=list)
    sorted_column: SortColumn = SortColumn.TOTAL
    # a manual pattern matched nothing, so every entry is shown
    no_match_showing_all: bool = False

    def rebuild(
        self,
        tree: FlameTree,
        pattern: Optional[SearchPattern] = None,
        column: Optional[SortColumn] = None,
    ) -> None:
        if column is not None:
            self.sorted_column = column
        entries = [
            OrderedStacksEntry(stack_id=n.id, name=n.name, own=n.own, total=n.total)
            for n in tree.nodes
            if not n.is_root
        ]
        if self.sorted_column is SortColumn.OWN:
            entries.sort(key=lambda e: (-e.own, e.name, e.stack_id))
        else:
            entries.sort(key=lambda e: (-e.total, e.name, e.stack_id))

        self.no_match_showing_all = False
        if pattern is not None and pattern.is_manual and pattern.text:
            flags = [pattern.matches(e.name) for e in entries]
            if any(flags):
                for e, ok in zip(entries, flags):
                    e.visible = ok
            else:
                self.no_match_showing_all = True
        self.entries = entries

    def visible_entries(self) -> List[OrderedStacksEntry]:
        return [e for e in self.entries if e.visible]

    def page(self, offset: int, height: int) -> List[OrderedStacksEntry]:
        rows = self.visible_entries()
        offset = max(0, offset)
        return rows[offset:offset + max(0, height)]


@dataclass
class TableState:
    """Cursor (``selected``) and first shown row (``offset``) of the table view."""
    selected: int = 0
    offset: int = 0

    def clamp(self, n_rows: int, height: int) -> None:
        height = max(1, height)
        if n_rows <= 0:
            self.selected = 0
            self.offset = 0
            return
        self.selected = max(0, min(self.selected, n_rows - 1))
        if self.selected < self.offset:
            self.offset = self.selected
        elif self.selected >= self.offset + height:
            self.offset = self.selected - height + 1
        self.offset = max(0, min(self.offset, max(0, n_rows - height)))

    def move(self, delta: int, n_rows: int, height: int) -> None:
        self.selected += delta
        self.clamp(n_rows, height)

    def scroll(self, pages: int, n_rows: int, height: int) -> None:
        step = max(1, height) * pages
        self.offset = max(0, self.offset + step)
        self.selected += step
        self.clamp(n_rows, height)

    def reset(self) -> None:
        self.selected = 0
        self.offset = 0
