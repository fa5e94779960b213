from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .errors import TraceFileError
from .tree import FlameTree, FrameKey, build_tree

logger = logging.getLogger(__name__)

# "function (file:line)" / "function (file)"
_FRAME_RE = re.compile(r"^(?P<function>.+?) \((?P<file>[^()]*?)(?::(?P<line>\d+))?\)$")


def parse_frame(text: str) -> FrameKey:
    m = _FRAME_RE.match(text)
    if not m:
        return FrameKey(function=text)
    line = int(m.group("line")) if m.group("line") else 0
    if not m.group("file") and line == 0:
        return FrameKey(function=text)
    key = FrameKey(function=m.group("function"), file=m.group("file"), line=line)
    # only split the text if the pieces rebuild it exactly
    return key if key.name == text else FrameKey(function=text)


def parse_record(line: str) -> Optional[Tuple[List[FrameKey], int]]:
    """
    Parse ``frame;frame;...;frame count``. Returns None for blank lines and
    raises ValueError for malformed ones.
    """
    line = line.strip()
    if not line:
        return None
    parts = line.rsplit(None, 1)
    if len(parts) != 2:
        raise ValueError("expected '<stack> <count>'")
    stack, count_s = parts
    try:
        count = int(count_s)
    except ValueError:
        raise ValueError(f"sample count {count_s!r} is not an integer") from None
    if count < 0:
        raise ValueError(f"sample count {count} is negative")
    frames = [parse_frame(fr) for fr in stack.split(";") if fr]
    if not frames:
        raise ValueError("empty stack")
    return frames, count


def parse_records(lines: Iterable[str], path: str = "<input>") -> List[Tuple[List[FrameKey], int]]:
    out: List[Tuple[List[FrameKey], int]] = []
    for lineno, raw in enumerate(lines, start=1):
        try:
            rec = parse_record(raw)
        except ValueError as e:
            raise TraceFileError(path, str(e), lineno) from e
        if rec is not None:
            out.append(rec)
    return out


def load_records(path: str) -> List[Tuple[List[FrameKey], int]]:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise TraceFileError(path, e.strerror or str(e)) from e
    records = parse_records(text.splitlines(), path=path)
    logger.info("Read %d records from %s", len(records), path)
    return records


def load_tree(path: str) -> FlameTree:
    return build_tree(load_records(path))
