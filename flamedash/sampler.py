"""
Live sampling: the background bridge between a TraceSource and the reader.

The bridge thread is the only writer of its Aggregator. Every 250 ms it
copies the tree into a Snapshot and drops it into a SnapshotCell; the reader
picks up the newest one whenever it likes. The cell's lock is held only to
swap a reference or copy the small SamplerState record.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .errors import SamplerError
from .sources import Sample, StackTrace, TraceSource
from .tree import Aggregator, FlameTree, FrameKey

logger = logging.getLogger(__name__)

PUBLISH_INTERVAL_S = 0.25
LATE_THRESHOLD_S = 1.0
LATE_DEBOUNCE_S = 1.0


class SamplerStatus(Enum):
    RUNNING = "running"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class SamplerState:
    status: SamplerStatus = SamplerStatus.RUNNING
    message: str = ""
    total_sampled_duration: float = 0.0
    late: Optional[float] = None
    late_warnings: int = 0
    errors: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status is not SamplerStatus.RUNNING


@dataclass
class SamplerConfig:
    sampling_rate: int = 100
    duration: Optional[float] = None  # seconds; None = unlimited
    include_idle: bool = False
    gil_only: bool = False
    include_thread_ids: bool = False
    show_line_numbers: bool = True
    subprocesses: bool = False

    @property
    def max_intervals(self) -> Optional[int]:
        if self.duration is None:
            return None
        return max(1, int(self.duration * self.sampling_rate))


@dataclass(frozen=True)
class Snapshot:
    tree: FlameTree
    elapsed: float
    generation: int = 0
    seq: int = 0


class SnapshotCell:
    """Latest Snapshot and SamplerState, written by the bridge and read by the UI."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._state = SamplerState()

    def publish(self, snapshot: Snapshot) -> bool:
        with self._lock:
            if self._state.is_terminal:
                return False
            self._snapshot = snapshot
            return True

    def latest(self) -> Optional[Snapshot]:
        with self._lock:
            return self._snapshot

    def state(self) -> SamplerState:
        with self._lock:
            return self._state

    def update_state(self, **changes) -> SamplerState:
        with self._lock:
            if self._state.is_terminal:
                return self._state
            self._state = dataclasses.replace(self._state, **changes)
            return self._state


class SamplerBridge:
    def __init__(
        self,
        source: TraceSource,
        config: SamplerConfig,
        cell: Optional[SnapshotCell] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.config = config
        self.cell = cell if cell is not None else SnapshotCell()
        self.clock = clock
        self.aggregator = Aggregator()
        self.generation = 0
        self._seq = 0
        self._errors = 0
        self._stop = threading.Event()
        self._reset_lock = threading.Lock()
        self._requested_generation = 0
        self._thread: Optional[threading.Thread] = None

    # ----- control (any thread) -----

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="FlameDashSampler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 0.6) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def request_reset(self) -> int:
        """
        Ask the bridge to start over with an empty tree before its next batch.
        Returns the generation its snapshots will carry from then on.
        """
        with self._reset_lock:
            self._requested_generation += 1
            return self._requested_generation

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    # ----- bridge thread -----

    def run(self) -> None:
        logger.info("Sampling %s at %d Hz", self.source.description, self.config.sampling_rate)
        started = self.clock()
        try:
            self._loop(started)
        except SamplerError as e:
            logger.exception("Sampler stopped")
            self._finish(SamplerStatus.ERROR, str(e))
        except Exception as e:
            logger.exception("Sampler crashed")
            self._finish(SamplerStatus.ERROR, f"{type(e).__name__}: {e}")
        else:
            self._publish(started)
            self._finish(SamplerStatus.DONE)
        finally:
            self.source.close()

    def _finish(self, status: SamplerStatus, message: str = "") -> None:
        if status is SamplerStatus.DONE:
            logger.info("Sampler done after %d traces", self.aggregator.traces)
        self.cell.update_state(status=status, message=message)

    def _loop(self, started: float) -> None:
        self.source.open()
        max_intervals = self.config.max_intervals
        intervals = 0
        last_late: Optional[float] = None
        last_publish: Optional[float] = None

        for sample in self.source.samples():
            if self._stop.is_set():
                return
            if self._apply_reset():
                last_publish = None

            now = self.clock()
            last_late = self._handle_late(sample.late, now, last_late)

            intervals += 1
            if max_intervals is not None and intervals >= max_intervals:
                return

            self._ingest(sample)

            if last_publish is None or now - last_publish >= PUBLISH_INTERVAL_S:
                last_publish = now
                self._publish(started)

    def _handle_late(self, late: Optional[float], now: float, last_late: Optional[float]) -> Optional[float]:
        if late is None or late <= LATE_THRESHOLD_S:
            if self.cell.state().late is not None:
                self.cell.update_state(late=None)
            return last_late
        if last_late is None or now - last_late > LATE_DEBOUNCE_S:
            logger.warning("Sampling is %.2fs behind schedule", late)
            state = self.cell.state()
            self.cell.update_state(late=late, late_warnings=state.late_warnings + 1)
            return now
        return last_late

    def _ingest(self, sample: Sample) -> None:
        errors = len(sample.sampling_errors)
        for trace in sample.traces:
            try:
                frames = self.frames_for(trace)
            except (AttributeError, TypeError, ValueError) as e:
                errors += 1
                logger.warning("Skipping malformed trace: %s", e)
                continue
            if frames:
                self.aggregator.add(frames)
        if errors:
            self._errors += errors
            self.cell.update_state(errors=self._errors)

    def frames_for(self, trace: StackTrace) -> Optional[List[FrameKey]]:
        """Outermost-first frame keys for ``trace``, or None if the trace is filtered out."""
        cfg = self.config
        if not (cfg.include_idle or trace.active):
            return None
        if cfg.gil_only and not trace.owns_gil:
            return None
        frames = list(trace.frames)
        if cfg.include_thread_ids:
            frames.append(trace.thread_frame())
        if trace.process_info is not None:
            frames.extend(p.to_frame() for p in trace.process_info.chain())
        return [f.key(cfg.show_line_numbers) for f in reversed(frames)]

    def _apply_reset(self) -> bool:
        with self._reset_lock:
            wanted = self._requested_generation
        if wanted == self.generation:
            return False
        self.aggregator.reset()
        self.generation = wanted
        logger.info("Sampler reset (generation %d)", self.generation)
        return True

    def _publish(self, started: float) -> None:
        # a reset requested mid-batch must not leak the old tree
        self._apply_reset()
        self._seq += 1
        elapsed = self.clock() - started
        snap = Snapshot(tree=self.aggregator.snapshot(), elapsed=elapsed, generation=self.generation, seq=self._seq)
        if self.cell.publish(snap):
            self.cell.update_state(total_sampled_duration=elapsed)
