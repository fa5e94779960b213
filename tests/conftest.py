from __future__ import annotations

from typing import List

import pytest

from flamedash.tree import FlameTree, FrameKey, build_tree


def keys(stack: str) -> List[FrameKey]:
    return [FrameKey(function=name) for name in stack.split(";")]


def tree_of(*records) -> FlameTree:
    return build_tree((keys(stack), count) for stack, count in records)


@pytest.fixture
def small_tree() -> FlameTree:
    # ids: main=1, foo=2, bar=3, baz=4
    return tree_of(("main;foo;bar", 3), ("main;baz", 2))
