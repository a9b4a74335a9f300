"""
Bulk-mode selection state.

SelectionSet is the multi-select state machine behind bulk mode: an enabled
flag plus the ids of the containers the user marked. Leaving bulk mode
always forgets the marked ids, so a new bulk session starts empty.

It is read by the render path and mutated from key handlers and from the
background thread that finishes a bulk run, hence its own lock.
"""

import threading
from typing import Iterable, Set, Tuple


class SelectionSet:
    """Thread-safe bulk-mode flag and selected container ids."""

    def __init__(self):
        self._lock = threading.Lock()
        self._enabled = False
        self._ids: Set[str] = set()

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def toggle(self) -> bool:
        """Flip bulk mode; returns the new state."""
        with self._lock:
            self._enabled = not self._enabled
            if not self._enabled:
                self._ids = set()
            return self._enabled

    def disable(self) -> None:
        with self._lock:
            self._enabled = False
            self._ids = set()

    def toggle_member(self, unit_id: str) -> bool:
        """Add or remove an id; ignored unless bulk mode is on.

        Returns True if the id is selected afterwards.
        """
        with self._lock:
            if not self._enabled:
                return False
            if unit_id in self._ids:
                self._ids.discard(unit_id)
                return False
            self._ids.add(unit_id)
            return True

    def select_all(self, unit_ids: Iterable[str]) -> None:
        with self._lock:
            if self._enabled:
                self._ids = set(unit_ids)

    def clear(self) -> None:
        with self._lock:
            self._ids = set()

    def is_selected(self, unit_id: str) -> bool:
        with self._lock:
            return unit_id in self._ids

    def members(self) -> Tuple[str, ...]:
        # Sorted for stable output; not the container list order.
        with self._lock:
            return tuple(sorted(self._ids))

    def count(self) -> int:
        with self._lock:
            return len(self._ids)
