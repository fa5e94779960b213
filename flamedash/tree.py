"""
Stack arena and aggregation.

Every node of the flame graph lives in a flat arena and is addressed by an
integer id. Ids are handed out in creation order, never reused and never
reassigned, and the tree only grows within a session: counts go up, nodes are
never removed. Zoom and selection state hold plain ids and therefore stay
valid while a live sampler keeps adding traces.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import UnknownStack

ROOT_ID = 0
ROOT_NAME = "all"

StackIdentifier = int


def short_path(path: str) -> str:
    if not path:
        return ""
    return PurePath(path).name or path


@dataclass(frozen=True)
class FrameKey:
    """Identity of one call-stack entry: (function, file, line)."""
    function: str
    file: str = ""
    line: int = 0
    short_file: str = field(default="", compare=False)

    @property
    def name(self) -> str:
        filename = self.short_file or self.file
        if self.line:
            return f"{self.function} ({filename}:{self.line})"
        if filename:
            return f"{self.function} ({filename})"
        return self.function

    @classmethod
    def from_location(cls, function: str, filename: str, line: int = 0, short_file: Optional[str] = None) -> "FrameKey":
        return cls(function=function, file=filename, line=int(line), short_file=short_file or short_path(filename))


@dataclass
class StackNode:
    id: StackIdentifier
    frame: Optional[FrameKey]
    parent: Optional[StackIdentifier]
    level: int
    full_name: str
    children: List[StackIdentifier] = field(default_factory=list)
    own: int = 0
    total: int = 0
    hit: bool = False

    @property
    def name(self) -> str:
        return self.frame.name if self.frame else ROOT_NAME

    @property
    def function(self) -> str:
        return self.frame.function if self.frame else ROOT_NAME

    @property
    def file(self) -> str:
        return self.frame.file if self.frame else ""

    @property
    def short_file(self) -> str:
        if not self.frame:
            return ""
        return self.frame.short_file or self.frame.file

    @property
    def line(self) -> int:
        return self.frame.line if self.frame else 0

    @property
    def is_root(self) -> bool:
        return self.parent is None


class FlameTree:
    def __init__(self) -> None:
        self.nodes: List[StackNode] = [
            StackNode(id=ROOT_ID, frame=None, parent=None, level=0, full_name="")
        ]
        # (parent id, frame) -> child id
        self._index: Dict[Tuple[StackIdentifier, FrameKey], StackIdentifier] = {}

    # ----- lookup -----

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, stack_id: object) -> bool:
        return isinstance(stack_id, int) and 0 <= stack_id < len(self.nodes)

    @property
    def root(self) -> StackNode:
        return self.nodes[ROOT_ID]

    @property
    def total_count(self) -> int:
        return self.root.total

    def get(self, stack_id: Optional[StackIdentifier]) -> Optional[StackNode]:
        if stack_id is None or stack_id not in self:
            return None
        return self.nodes[stack_id]

    def node(self, stack_id: StackIdentifier) -> StackNode:
        n = self.get(stack_id)
        if n is None:
            raise UnknownStack(stack_id)
        return n

    def children(self, stack_id: StackIdentifier) -> List[StackNode]:
        return [self.nodes[c] for c in self.node(stack_id).children]

    def child(self, stack_id: StackIdentifier, frame: FrameKey) -> Optional[StackNode]:
        cid = self._index.get((stack_id, frame))
        return self.nodes[cid] if cid is not None else None

    def ancestors(self, stack_id: StackIdentifier) -> List[StackIdentifier]:
        """Ids from the root down to the parent of ``stack_id`` (excluded)."""
        out: List[StackIdentifier] = []
        parent = self.node(stack_id).parent
        while parent is not None:
            out.append(parent)
            parent = self.nodes[parent].parent
        out.reverse()
        return out

    def is_descendant(self, stack_id: StackIdentifier, ancestor_id: StackIdentifier) -> bool:
        """True if ``stack_id`` lies in the subtree rooted at ``ancestor_id`` (inclusive)."""
        cur: Optional[StackIdentifier] = stack_id
        while cur is not None:
            if cur == ancestor_id:
                return True
            cur = self.nodes[cur].parent
        return False

    def walk(self, start: StackIdentifier = ROOT_ID) -> Iterator[StackNode]:
        """Depth-first pre-order, children in first-seen order."""
        stack = [start]
        while stack:
            n = self.node(stack.pop())
            yield n
            stack.extend(reversed(n.children))

    # ----- mutation -----

    def _child_or_new(self, parent: StackNode, frame: FrameKey) -> StackNode:
        cid = self._index.get((parent.id, frame))
        if cid is not None:
            return self.nodes[cid]
        full_name = f"{parent.full_name};{frame.name}" if parent.full_name else frame.name
        n = StackNode(id=len(self.nodes), frame=frame, parent=parent.id, level=parent.level + 1, full_name=full_name)
        self.nodes.append(n)
        self._index[(parent.id, frame)] = n.id
        parent.children.append(n.id)
        return n

    def insert_trace(self, frames: Sequence[FrameKey], weight: int = 1) -> Optional[StackIdentifier]:
        """
        Merge one stack (outermost frame first) into the tree.

        Returns the id of the leaf node, or None if ``frames`` is empty (nothing
        is counted then). The whole path is resolved before any count changes,
        so ``total == own + sum(child totals)`` holds between calls.
        """
        if weight < 0:
            raise ValueError(f"sample weight must be >= 0, got {weight}")
        if not frames:
            return None
        path = [self.root]
        for fr in frames:
            path.append(self._child_or_new(path[-1], fr))
        for n in path:
            n.total += weight
        path[-1].own += weight
        return path[-1].id

    def copy(self) -> "FlameTree":
        """Independent copy; ids are preserved."""
        out = FlameTree.__new__(FlameTree)
        out.nodes = [dataclasses.replace(n, children=list(n.children)) for n in self.nodes]
        out._index = dict(self._index)
        return out


TraceRecord = Tuple[Sequence[FrameKey], int]


class Aggregator:
    """
    The single writer of a FlameTree.

    Only the thread that owns the aggregator may call ``add``/``add_batch``/
    ``reset``; readers work on copies obtained from ``snapshot``.
    """

    def __init__(self, tree: Optional[FlameTree] = None) -> None:
        self.tree = tree if tree is not None else FlameTree()
        self.traces = 0

    def add(self, frames: Sequence[FrameKey], weight: int = 1) -> bool:
        if self.tree.insert_trace(frames, weight) is None:
            return False
        self.traces += 1
        return True

    def add_batch(self, records: Iterable[TraceRecord]) -> int:
        n = 0
        for frames, weight in records:
            if self.add(frames, weight):
                n += 1
        return n

    def reset(self) -> None:
        self.tree = FlameTree()
        self.traces = 0

    def snapshot(self) -> FlameTree:
        return self.tree.copy()


def build_tree(records: Iterable[TraceRecord]) -> FlameTree:
    agg = Aggregator()
    agg.add_batch(records)
    return agg.tree
