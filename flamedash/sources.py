"""
Where live stack traces come from.

A source yields ``Sample`` batches: one per sampling interval, each holding
one ``StackTrace`` per thread plus how late the interval was delivered.
Frames inside a trace are innermost first; synthesized frames are appended
at the end, which makes them the outermost entries once aggregated.
"""

from __future__ import annotations

import json
import logging
import os
import runpy
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import psutil

from .errors import SamplerError
from .tree import FrameKey, short_path

logger = logging.getLogger(__name__)


# -------------------------- Trace Model --------------------------

@dataclass
class Frame:
    name: str
    filename: str = ""
    short_filename: Optional[str] = None
    line: int = 0
    is_entry: bool = False

    def key(self, show_line_numbers: bool = True) -> FrameKey:
        return FrameKey(
            function=self.name,
            file=self.filename,
            line=self.line if show_line_numbers else 0,
            short_file=self.short_filename or short_path(self.filename),
        )


@dataclass
class ProcessInfo:
    pid: int
    command_line: str
    parent: Optional["ProcessInfo"] = None

    def to_frame(self) -> Frame:
        return Frame(name=f'process {self.pid}:"{self.command_line}"', is_entry=True)

    def chain(self) -> List["ProcessInfo"]:
        """This process followed by its ancestors, oldest last."""
        out: List[ProcessInfo] = []
        cur: Optional[ProcessInfo] = self
        while cur is not None:
            out.append(cur)
            cur = cur.parent
        return out

    @classmethod
    def from_pid(cls, pid: int, max_depth: int = 32) -> Optional["ProcessInfo"]:
        try:
            proc: Optional[psutil.Process] = psutil.Process(pid)
        except psutil.Error:
            return None
        chain: List[ProcessInfo] = []
        while proc is not None and len(chain) < max_depth:
            try:
                cmd = " ".join(proc.cmdline()) or proc.name()
                chain.append(cls(pid=proc.pid, command_line=cmd))
                proc = proc.parent()
            except psutil.Error:
                break
        for child, parent in zip(chain, chain[1:]):
            child.parent = parent
        return chain[0] if chain else None

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> Optional["ProcessInfo"]:
        if not d:
            return None
        return cls(pid=int(d["pid"]), command_line=str(d.get("command_line", "")), parent=cls.from_dict(d.get("parent")))


@dataclass
class StackTrace:
    thread_id: int
    frames: List[Frame] = field(default_factory=list)
    thread_name: Optional[str] = None
    active: bool = True
    owns_gil: bool = False
    process_info: Optional[ProcessInfo] = None

    def format_threadid(self) -> str:
        return f"{self.thread_id:#x}"

    def thread_frame(self) -> Frame:
        tid = self.format_threadid()
        if self.thread_name:
            return Frame(name=f"thread ({tid}): {self.thread_name}", is_entry=True)
        return Frame(name=f"thread ({tid})", is_entry=True)


@dataclass
class Sample:
    traces: List[StackTrace]
    late: Optional[float] = None  # seconds behind schedule
    sampling_errors: List[Tuple[int, str]] = field(default_factory=list)


# -------------------------- Schedule --------------------------

class Schedule:
    """
    Fixed-rate ticks. Each tick yields None when on time, else how many seconds
    the tick is behind its ideal time. Ticks are not skipped when running late.
    """

    def __init__(
        self,
        rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"sampling rate must be > 0, got {rate}")
        self.interval = 1.0 / rate
        self.clock = clock
        self.sleep = sleep

    def __iter__(self) -> Iterator[Optional[float]]:
        start = self.clock()
        n = 0
        while True:
            n += 1
            due = start + n * self.interval
            now = self.clock()
            if now < due:
                self.sleep(due - now)
                yield None
            else:
                yield now - due


# -------------------------- Sources --------------------------

class TraceSource:
    """Interface of a live stack-trace producer."""

    description = "source"

    def open(self) -> None:
        """Attach to the target. Raises SamplerError if that is impossible."""

    def samples(self) -> Iterator[Sample]:
        raise NotImplementedError

    def close(self) -> None:
        pass


# innermost Python frames that mean a thread is blocked rather than running
IDLE_FUNCTIONS = frozenset({
    "wait", "sleep", "select", "poll", "acquire", "accept", "recv", "recv_into",
    "readline", "join", "_wait_for_tstate_lock", "get", "run_forever", "_run_once",
})


def _is_idle(innermost: Optional[Frame]) -> bool:
    return innermost is not None and innermost.name in IDLE_FUNCTIONS


class ThreadSampler(TraceSource):
    """
    Samples the threads of this interpreter through sys._current_frames().

    Used to profile a script run in-process on a background thread; the
    source ends when ``target`` (if given) stops.
    """

    def __init__(
        self,
        rate: float,
        target: Optional[threading.Thread] = None,
        subprocesses: bool = False,
        max_depth: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rate = rate
        self.target = target
        self.subprocesses = subprocesses
        self.max_depth = max_depth
        self.clock = clock
        self.description = f"Script: {target.name}" if target else f"Process: {os.getpid()}"

    def _collect(self, ignore: Sequence[int], proc: Optional[ProcessInfo]) -> List[StackTrace]:
        names = {t.ident: t.name for t in threading.enumerate()}
        traces: List[StackTrace] = []
        for tid, frm in sys._current_frames().items():
            if tid in ignore:
                continue
            frames: List[Frame] = []
            depth = 0
            while frm is not None and depth < self.max_depth:
                code = frm.f_code
                frames.append(Frame(name=code.co_name, filename=code.co_filename, line=frm.f_lineno or 0))
                frm = frm.f_back
                depth += 1
            if frames:
                frames[-1].is_entry = True
            active = not _is_idle(frames[0] if frames else None)
            traces.append(StackTrace(
                thread_id=tid,
                frames=frames,
                thread_name=names.get(tid),
                active=active,
                # no direct view of the GIL holder; running threads are the candidates
                owns_gil=active,
                process_info=proc,
            ))
        return traces

    def samples(self) -> Iterator[Sample]:
        # the sampler thread itself and the UI thread
        ignore = [threading.get_ident(), threading.main_thread().ident or 0]
        proc = ProcessInfo.from_pid(os.getpid()) if self.subprocesses else None
        for late in Schedule(self.rate, clock=self.clock):
            if self.target is not None and not self.target.is_alive():
                return
            yield Sample(traces=self._collect(ignore, proc), late=late)


def run_script_thread(path: str, args: Sequence[str] = ()) -> threading.Thread:
    """Start ``path`` as ``__main__`` on a daemon thread (not started yet)."""
    script = str(Path(path).resolve())

    def target() -> None:
        saved = sys.argv[:]
        sys.argv = [script, *args]
        try:
            runpy.run_path(script, run_name="__main__")
        except SystemExit:
            pass
        except Exception:
            logger.exception("Script %s raised", script)
        finally:
            sys.argv = saved

    return threading.Thread(target=target, name=Path(script).name, daemon=True)


class PySpyDumpSource(TraceSource):
    """
    Attaches to another process by running ``py-spy dump --json`` once per interval.

    Each interval starts a subprocess, which takes tens of milliseconds, so the
    command line defaults to DEFAULT_RATE for this source instead of 100 Hz.
    """

    DEFAULT_RATE = 10

    def __init__(
        self,
        pid: int,
        rate: float,
        subprocesses: bool = False,
        executable: str = "py-spy",
        timeout: float = 10.0,
    ) -> None:
        self.pid = pid
        self.rate = rate
        self.subprocesses = subprocesses
        self.executable = executable
        self.timeout = timeout
        self.description = f"Process: {pid}"
        self._exe: Optional[str] = None

    def _command(self) -> List[str]:
        cmd = [self._exe or self.executable, "dump", "--pid", str(self.pid), "--json"]
        if self.subprocesses:
            cmd.append("--subprocesses")
        return cmd

    def _dump(self) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(self._command(), capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise SamplerError(f"py-spy dump timed out after {self.timeout:.0f}s") from e
        except OSError as e:
            raise SamplerError(f"Failed to run {self.executable}: {e}") from e

    def open(self) -> None:
        self._exe = shutil.which(self.executable)
        if self._exe is None:
            raise SamplerError(f"{self.executable} not found on PATH")
        if not psutil.pid_exists(self.pid):
            raise SamplerError(f"No process with pid {self.pid}")
        res = self._dump()
        if res.returncode != 0:
            raise SamplerError((res.stderr or res.stdout).strip() or f"py-spy exited with {res.returncode}")

    def samples(self) -> Iterator[Sample]:
        for late in Schedule(self.rate):
            res = self._dump()
            if res.returncode != 0:
                if not psutil.pid_exists(self.pid):
                    logger.info("Process %d exited", self.pid)
                    return
                raise SamplerError((res.stderr or res.stdout).strip() or f"py-spy exited with {res.returncode}")
            traces, errors = parse_dump(res.stdout)
            yield Sample(traces=traces, late=late, sampling_errors=[(self.pid, e) for e in errors])


def parse_dump(text: str) -> Tuple[List[StackTrace], List[str]]:
    """Decode ``py-spy dump --json`` output; undecodable thread entries are reported, not raised."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return [], [f"bad JSON: {e}"]
    if isinstance(data, dict):
        data = [data]
    traces: List[StackTrace] = []
    errors: List[str] = []
    for item in data if isinstance(data, list) else []:
        try:
            frames = [
                Frame(
                    name=str(f["name"]),
                    filename=str(f.get("filename", "")),
                    short_filename=f.get("short_filename"),
                    line=int(f.get("line") or 0),
                    is_entry=bool(f.get("is_entry", False)),
                )
                for f in item["frames"]
            ]
            traces.append(StackTrace(
                thread_id=int(item["thread_id"]),
                frames=frames,
                thread_name=item.get("thread_name"),
                active=bool(item.get("active", True)),
                owns_gil=bool(item.get("owns_gil", False)),
                process_info=ProcessInfo.from_dict(item.get("process_info")),
            ))
        except (KeyError, TypeError, ValueError) as e:
            errors.append(f"{type(e).__name__}: {e}")
    return traces, errors
