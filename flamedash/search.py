from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern

from .errors import InvalidPattern
from .tree import FlameTree, StackIdentifier


@dataclass(frozen=True)
class SearchPattern:
    regex: Pattern[str]
    is_manual: bool

    @property
    def text(self) -> str:
        return self.regex.pattern

    def matches(self, name: str) -> bool:
        return self.regex.search(name) is not None


def compile_pattern(text: str, is_manual: bool = True) -> SearchPattern:
    try:
        return SearchPattern(regex=re.compile(text), is_manual=is_manual)
    except re.error as e:
        raise InvalidPattern(text, str(e)) from e


def exact_name_pattern(name: str) -> SearchPattern:
    """Non-manual pattern matching exactly ``name``; used to highlight look-alikes of the cursor."""
    return SearchPattern(regex=re.compile(f"^{re.escape(name)}$"), is_manual=False)


class SearchIndex:
    """
    Current search pattern plus the ``hit`` flags it produces on a tree.

    Coverage is the sum of ``own`` over matched nodes. Own counts are
    disjoint, so a match on both an ancestor and its descendant is not
    counted twice. Only manual patterns produce coverage.
    """

    def __init__(self) -> None:
        self.pattern: Optional[SearchPattern] = None
        self._coverage: Optional[int] = None

    @property
    def coverage_count(self) -> Optional[int]:
        if self.pattern is None or not self.pattern.is_manual:
            return None
        return self._coverage

    @property
    def is_manual(self) -> bool:
        return self.pattern is not None and self.pattern.is_manual

    def compile(self, tree: FlameTree, text: str, is_manual: bool = True) -> SearchPattern:
        # raises before any state changes so the previous pattern survives
        pattern = compile_pattern(text, is_manual=is_manual)
        self.apply(tree, pattern)
        return pattern

    def apply(self, tree: FlameTree, pattern: SearchPattern) -> None:
        coverage = 0
        for n in tree.walk():
            n.hit = not n.is_root and pattern.matches(n.name)
            if n.hit:
                coverage += n.own
        self.pattern = pattern
        if pattern.is_manual:
            self._coverage = coverage

    def refresh(self, tree: FlameTree) -> None:
        """Re-apply the active pattern, e.g. after the tree was replaced."""
        if self.pattern is not None:
            self.apply(tree, self.pattern)

    def clear(self, tree: Optional[FlameTree] = None) -> None:
        if tree is not None:
            for n in tree.nodes:
                n.hit = False
        self.pattern = None
        self._coverage = None

    def hits(self, tree: FlameTree) -> List[StackIdentifier]:
        """Matched ids in depth-first order."""
        return [n.id for n in tree.walk() if n.hit]
