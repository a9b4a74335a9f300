"""
Rolling CPU/RAM history for the focused container.

One MetricsHistory exists per dashboard. It is bound to the id of the
container currently driving the metrics panel; binding it to another id
discards everything recorded so far, so history never leaks from one
container to the next.

Each metric kind ("cpu", "mem") keeps a FIFO ring of the last ``capacity``
samples plus running average/maximum accumulators that cover every sample
since the last reset (not only the ones still in the ring).

Thread Safety:
  - StatsWorker appends from its thread, the UI renders from the event loop
  - A single narrow lock guards buffers and accumulators; chart rendering
    works on copies taken under that lock
"""

import threading
import time
from collections import deque
from typing import Dict, List, Optional

from .charts import ChartRenderer
from .model import ContainerStats

METRIC_KINDS = ("cpu", "mem")


class MetricsHistory:
    """Fixed-capacity per-metric sample history with render helpers."""

    def __init__(self, capacity: int = 30):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._unit_id: Optional[str] = None
        self._reset_unlocked()

    def _reset_unlocked(self) -> None:
        self._buffers: Dict[str, deque] = {k: deque(maxlen=self.capacity) for k in METRIC_KINDS}
        self._totals = {k: 0.0 for k in METRIC_KINDS}
        self._maxima = {k: 0.0 for k in METRIC_KINDS}
        self._kind_counts = {k: 0 for k in METRIC_KINDS}
        self._count = 0
        self._started_at = time.monotonic()
        self._last_stats: Optional[ContainerStats] = None

    @staticmethod
    def _check_kind(kind: str) -> None:
        if kind not in METRIC_KINDS:
            raise ValueError(f"Unknown metric kind: {kind}")

    @property
    def unit_id(self) -> Optional[str]:
        with self._lock:
            return self._unit_id

    def bind(self, unit_id: Optional[str]) -> bool:
        """Attach the history to a container; returns True if it was reset."""
        with self._lock:
            if unit_id == self._unit_id:
                return False
            self._unit_id = unit_id
            self._reset_unlocked()
            return True

    def reset(self) -> None:
        """Clear buffers and accumulators, keeping the bound container."""
        with self._lock:
            self._reset_unlocked()

    def append_sample(self, kind: str, value: float) -> None:
        self._check_kind(kind)
        with self._lock:
            self._append_unlocked(kind, value)

    def _append_unlocked(self, kind: str, value: float) -> None:
        # Values are stored as-is; out-of-range input is the caller's concern.
        self._buffers[kind].append(value)
        self._totals[kind] += value
        self._kind_counts[kind] += 1
        if value > self._maxima[kind]:
            self._maxima[kind] = value

    def record(self, unit_id: str, stats: ContainerStats) -> bool:
        """Store one stats sample if it belongs to the bound container."""
        with self._lock:
            if unit_id != self._unit_id:
                return False
            self._append_unlocked("cpu", stats.cpu_percent)
            self._append_unlocked("mem", stats.mem_percent)
            self._count += 1
            self._last_stats = stats
            return True

    def samples(self, kind: str) -> List[float]:
        self._check_kind(kind)
        with self._lock:
            return list(self._buffers[kind])

    def latest(self, kind: str) -> Optional[float]:
        self._check_kind(kind)
        with self._lock:
            buf = self._buffers[kind]
            return buf[-1] if buf else None

    @property
    def last_stats(self) -> Optional[ContainerStats]:
        with self._lock:
            return self._last_stats

    def render(self, kind: str, width: int) -> str:
        return ChartRenderer.sparkline(self.samples(kind), width)

    def render_bar(self, kind: str, width: int) -> str:
        latest = self.latest(kind)
        return ChartRenderer.bar(latest if latest is not None else 0.0, width)

    def render_chart(self, kind: str, height: int, width: int) -> str:
        return "\n".join(ChartRenderer.line_graph(self.samples(kind), height, width))

    def summary(self) -> Dict[str, float]:
        """Sample count, per-kind average/maximum and elapsed seconds."""
        with self._lock:
            result = {
                "samples": self._count,
                "elapsed": time.monotonic() - self._started_at,
            }
            for kind in METRIC_KINDS:
                n = self._kind_counts[kind]
                result[f"{kind}_avg"] = self._totals[kind] / n if n else 0.0
                result[f"{kind}_max"] = self._maxima[kind]
            return result
