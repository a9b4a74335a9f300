"""
Dashboard state management and background worker threads.

This module provides the authoritative, thread-safe container snapshot and
the workers that keep it (and the metrics history) up to date without
blocking the UI.

Architecture:
  - DashboardState: container list + focused index guarded by one RLock
  - Worker threads: daemon threads sharing one cancellation Event
    - RefreshWorker: re-lists containers (5s default)
    - StatsWorker: samples the focused container (2s default)
    - LogsWorker: follows the log stream of one container on demand

Thread Safety:
  - Every DashboardState access happens under self._lock
  - The whole container list is swapped in one critical section; readers
    get immutable snapshots and never see a half-written list
  - Workers never touch the UI; they only write state and bump the version
  - RefreshWorker and StatsWorker write disjoint state (list vs. history),
    so their ticks may interleave in any order

Worker Lifecycle:
  - Start with Dashboard.start()
  - Stop by setting the shared Event (Dashboard.stop()); a worker issues no
    runtime call after that and drops the result of a call still in flight
  - A failing tick is logged and skipped; the last good state stays visible

State Update Pattern:
  1. Worker calls the backend (blocking, outside any lock)
  2. Worker pushes the result through a DashboardState/MetricsHistory method
  3. The version counter increments
  4. The UI loop sees a new version and re-renders from a snapshot
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, List, Optional, Sequence

from .backend import DockerBackend, RuntimeClientError
from .history import MetricsHistory
from .model import ContainerSnapshot, DashboardSnapshot

logger = logging.getLogger(__name__)


class DashboardState:
    """Thread-safe owner of the container list and the focused index."""

    def __init__(self, message_ttl: float = 3.0):
        self._lock = threading.RLock()
        self._containers: tuple = ()
        self._focused_index: Optional[int] = None
        self._version = 0
        self._message = ""
        self._is_error = False
        self._message_time = 0.0
        self.message_ttl = message_ttl

    def get_version(self) -> int:
        with self._lock:
            return self._version

    def _inc_version(self):
        # Assumes lock is held
        self._version += 1

    def request_redraw(self) -> None:
        """Signal the render loop that something it displays changed."""
        with self._lock:
            self._inc_version()

    def replace_containers(self, containers: Sequence[ContainerSnapshot]) -> None:
        with self._lock:
            self._containers = tuple(containers)
            self._clamp_focus_unlocked()
            self._inc_version()

    def _clamp_focus_unlocked(self) -> None:
        count = len(self._containers)
        if count == 0:
            self._focused_index = None
        elif self._focused_index is None:
            self._focused_index = 0
        else:
            self._focused_index = max(0, min(self._focused_index, count - 1))

    def set_focus(self, index: int) -> bool:
        """Focus the container at ``index``; out-of-range indexes are ignored."""
        with self._lock:
            if not 0 <= index < len(self._containers):
                return False
            if index != self._focused_index:
                self._focused_index = index
                self._inc_version()
            return True

    def move_focus(self, delta: int) -> bool:
        with self._lock:
            if not self._containers:
                return False
            current = self._focused_index or 0
            new_idx = max(0, min(current + delta, len(self._containers) - 1))
            if new_idx == self._focused_index:
                return False
            self._focused_index = new_idx
            self._inc_version()
            return True

    def focused_container(self) -> Optional[ContainerSnapshot]:
        with self._lock:
            if self._focused_index is None:
                return None
            return self._containers[self._focused_index]

    def containers(self) -> tuple:
        with self._lock:
            return self._containers

    def set_message(self, message: str) -> None:
        with self._lock:
            self._message = message
            self._is_error = False
            self._message_time = time.time()
            self._inc_version()

    def set_error(self, error_msg: str) -> None:
        """Set error message that will auto-clear after message_ttl seconds."""
        with self._lock:
            self._message = error_msg
            self._is_error = True
            self._message_time = time.time()
            self._inc_version()

    def snapshot(self) -> DashboardSnapshot:
        with self._lock:
            message, is_error = self._message, self._is_error
            if message and time.time() - self._message_time > self.message_ttl:
                message, is_error = "", False
            return DashboardSnapshot(
                containers=self._containers,
                focused_index=self._focused_index,
                version=self._version,
                message=message,
                is_error=is_error,
            )


class PeriodicWorker(threading.Thread):
    """Daemon thread running tick() every ``interval`` seconds until cancelled."""

    def __init__(self, interval: float, stop_event: threading.Event, name: str):
        super().__init__(daemon=True, name=name)
        self.interval = interval
        self.stop_event = stop_event
        self._wake = threading.Event()

    @property
    def running(self) -> bool:
        return not self.stop_event.is_set()

    def force_refresh(self) -> None:
        """Run the next tick now instead of at the end of the interval."""
        self._wake.set()

    def tick(self) -> None:
        raise NotImplementedError

    def run_once(self) -> bool:
        """Run one tick; returns False if it was skipped or failed."""
        if not self.running:
            return False
        try:
            self.tick()
            return True
        except Exception as e:
            logger.warning(f"{self.name} tick failed: {e}")
            return False

    def run(self) -> None:
        while self.running:
            self.run_once()
            self._wake.wait(self.interval)
            self._wake.clear()


class RefreshWorker(PeriodicWorker):
    def __init__(self, state: DashboardState, backend: DockerBackend,
                 history: MetricsHistory, stop_event: threading.Event,
                 interval: float = 5.0):
        super().__init__(interval, stop_event, name="RefreshWorker")
        self.state = state
        self.backend = backend
        self.history = history
        self._failing = False

    def tick(self) -> None:
        try:
            containers = self.backend.list_containers()
        except RuntimeClientError as e:
            # Reported once per outage, not on every poll
            if self.running and not self._failing:
                self.state.set_error(f"Failed to list containers: {e}")
            self._failing = True
            raise
        self._failing = False
        if not self.running:
            return
        self.state.replace_containers(containers)
        focused = self.state.focused_container()
        self.history.bind(focused.id if focused else None)


class StatsWorker(PeriodicWorker):
    def __init__(self, state: DashboardState, backend: DockerBackend,
                 history: MetricsHistory, stop_event: threading.Event,
                 interval: float = 2.0):
        super().__init__(interval, stop_event, name="StatsWorker")
        self.state = state
        self.backend = backend
        self.history = history
        self.paused = False

    def tick(self) -> None:
        if self.paused:
            return
        focused = self.state.focused_container()
        if focused is None:
            return
        stats = self.backend.get_stats(focused.id)
        if not self.running:
            return
        # Binding follows focus changes; a sample for any other id is dropped
        if self.history.record(focused.id, stats):
            self.state.request_redraw()


class LogsWorker(threading.Thread):
    """Follows the log stream of one container into a bounded line buffer."""

    def __init__(self, backend: DockerBackend, stop_event: threading.Event,
                 tail: int = 500, on_update: Optional[Callable[[], None]] = None):
        super().__init__(daemon=True, name="LogsWorker")
        self.backend = backend
        self.stop_event = stop_event
        self.tail = tail
        self.on_update = on_update
        self._lock = threading.Lock()
        self._target: Optional[str] = None
        self._opened_for: Optional[str] = None
        self._stream = None
        self._lines: deque = deque(maxlen=tail)
        self._changed = threading.Event()

    @property
    def target(self) -> Optional[str]:
        with self._lock:
            return self._target

    def follow(self, container_id: Optional[str]) -> None:
        """Switch the followed container; None stops following."""
        with self._lock:
            if container_id == self._target:
                return
            self._target = container_id
            self._opened_for = None
            self._lines.clear()
            stream = self._stream
        if stream is not None:
            stream.close()
        self._changed.set()

    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def close(self) -> None:
        with self._lock:
            stream = self._stream
        if stream is not None:
            stream.close()
        self._changed.set()

    def _notify(self) -> None:
        if self.on_update:
            self.on_update()

    def run(self) -> None:
        while not self.stop_event.is_set():
            self._changed.wait(0.5)
            self._changed.clear()
            with self._lock:
                target = self._target
                if target is None or target == self._opened_for:
                    continue
                self._opened_for = target
            self._follow_stream(target)

    def _follow_stream(self, target: str) -> None:
        try:
            stream = self.backend.stream_logs(target, self.tail)
        except Exception as e:
            logger.warning(f"Could not open log stream for {target}: {e}")
            with self._lock:
                if target == self._target:
                    self._lines.append(f"Error loading logs: {e}")
            self._notify()
            return

        with self._lock:
            if target != self._target or self.stop_event.is_set():
                stream.close()
                return
            self._stream = stream

        try:
            for line in stream:
                with self._lock:
                    if target != self._target:
                        break
                    self._lines.append(line)
                self._notify()
                if self.stop_event.is_set():
                    break
        except Exception as e:
            # Closing the stream from follow()/close() ends the read this way
            logger.debug(f"Log stream for {target} ended: {e}")
        finally:
            stream.close()
            with self._lock:
                if self._stream is stream:
                    self._stream = None
