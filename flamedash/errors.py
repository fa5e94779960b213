from __future__ import annotations

from typing import Optional


class FlameDashError(Exception):
    """Base class for every error raised by flamedash."""


class InvalidPattern(FlameDashError):
    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class TraceFileError(FlameDashError):
    """A static trace file could not be read or contains a malformed record."""

    def __init__(self, path: str, reason: str, lineno: Optional[int] = None) -> None:
        where = f"{path}:{lineno}" if lineno is not None else path
        super().__init__(f"{where}: {reason}")
        self.path = path
        self.reason = reason
        self.lineno = lineno


class SamplerError(FlameDashError):
    pass


class UnknownStack(FlameDashError, KeyError):
    def __init__(self, stack_id: int) -> None:
        super().__init__(stack_id)
        self.stack_id = stack_id

    def __str__(self) -> str:
        return f"No stack with id {self.stack_id}"
