"""
Flame graph layout.

A node gets its parent's horizontal budget scaled by ``total(node) /
total(parent)``, except on the zoom path where the zoomed child takes the
whole budget and its siblings get nothing. Widths are floored to whole
columns. Subtrees that are zero columns wide or start below the viewport are
never expanded, so the cost of a layout follows what is on screen rather than
the size of the tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterator, List, Optional, Sequence, Tuple

from .tree import ROOT_ID, FlameTree, StackIdentifier


class ZoomState:
    """The current zoom root plus its ancestor chain (true root first)."""

    def __init__(self, stack_id: StackIdentifier, ancestors: Sequence[StackIdentifier]) -> None:
        self.stack_id = stack_id
        self.ancestors: Tuple[StackIdentifier, ...] = tuple(ancestors)
        self._path: FrozenSet[StackIdentifier] = frozenset(self.ancestors) | {stack_id}

    @classmethod
    def for_stack(cls, tree: FlameTree, stack_id: StackIdentifier) -> "ZoomState":
        return cls(stack_id, tree.ancestors(stack_id))

    def on_path(self, stack_id: StackIdentifier) -> bool:
        return stack_id in self._path

    def is_ancestor(self, stack_id: StackIdentifier) -> bool:
        return stack_id != self.stack_id and stack_id in self._path

    def __repr__(self) -> str:
        return f"ZoomState(stack_id={self.stack_id}, ancestors={list(self.ancestors)})"


@dataclass(frozen=True)
class LayoutRow:
    x: int
    y: int
    width: int
    stack_id: StackIdentifier
    is_hit: bool


class VisibleRows:
    """
    Lazy depth-first sequence of LayoutRow.

    Single pass: iterate it once per redraw. ``has_more_rows`` becomes
    meaningful once the iterator is exhausted and tells whether some subtree
    with a non-zero width was cut off by the bottom edge.
    """

    def __init__(
        self,
        tree: FlameTree,
        width: int,
        height: int,
        level_offset: int = 0,
        zoom: Optional[ZoomState] = None,
    ) -> None:
        self.tree = tree
        self.height = height
        self.level_offset = max(0, level_offset)
        self.zoom = zoom
        self.has_more_rows = False
        self.visited = 0
        # (stack id, budget, x, y)
        self._work: List[Tuple[StackIdentifier, float, int, int]] = [(ROOT_ID, float(max(0, width)), 0, 0)]

    def __iter__(self) -> Iterator[LayoutRow]:
        return self

    def __next__(self) -> LayoutRow:
        nodes = self.tree.nodes
        while self._work:
            stack_id, budget, x, y = self._work.pop()
            self.visited += 1
            width = int(budget)
            if width <= 0:
                continue
            if y >= self.height:
                self.has_more_rows = True
                continue

            node = nodes[stack_id]
            emit = node.level >= self.level_offset
            if node.children:
                self._push_children(node.children, node.total, budget, x, y + 1 if emit else y)
            if emit:
                return LayoutRow(x=x, y=y, width=width, stack_id=stack_id, is_hit=node.hit)
        raise StopIteration

    def _push_children(
        self,
        children: List[StackIdentifier],
        parent_total: int,
        budget: float,
        x: int,
        y: int,
    ) -> None:
        zoomed: Optional[StackIdentifier] = None
        if self.zoom is not None:
            for c in children:
                if self.zoom.on_path(c):
                    zoomed = c
                    break

        nodes = self.tree.nodes
        items: List[Tuple[StackIdentifier, float, int, int]] = []
        x_offset = 0
        for c in children:
            if zoomed is not None:
                child_budget = budget if c == zoomed else 0.0
            elif parent_total > 0:
                child_budget = budget * (nodes[c].total / parent_total)
            else:
                child_budget = 0.0
            if int(child_budget) > 0:
                items.append((c, child_budget, x + x_offset, y))
            x_offset += int(child_budget)
        self._work.extend(reversed(items))


def compute_visible(
    tree: FlameTree,
    width: int,
    height: int,
    level_offset: int = 0,
    zoom: Optional[ZoomState] = None,
) -> VisibleRows:
    return VisibleRows(tree, width, height, level_offset=level_offset, zoom=zoom)


def layout_rows(
    tree: FlameTree,
    width: int,
    height: int,
    level_offset: int = 0,
    zoom: Optional[ZoomState] = None,
) -> Tuple[List[LayoutRow], bool]:
    rows = compute_visible(tree, width, height, level_offset, zoom)
    out = list(rows)
    return out, rows.has_more_rows
