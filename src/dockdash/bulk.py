"""
Bulk action execution for dashboard bulk mode.

BulkExecutor applies one lifecycle action to a set of selected containers,
one runtime call at a time. A failing container is counted and the batch
moves on; nothing is retried and a started batch always runs to the end,
so a single unreachable container never blocks actions on the others.

State machine:
  idle --run()--> running --(last item)--> done --acknowledge()--> idle

The executor only reports how the batch went. Clearing the selection and
leaving bulk mode is the caller's job.
"""

import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple

from .model import BULK_ACTIONS, BulkOperationResult, BulkProgress

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
DONE = "done"

# Bulk action -> runtime client method
ACTION_METHODS = {
    "start": "start_container",
    "stop": "stop_container",
    "restart": "restart_container",
    "remove": "remove_container",
}


class EmptySelectionError(ValueError):
    """A bulk action was requested with no container selected."""


class BulkInProgressError(RuntimeError):
    """A bulk action was requested while another one is still running."""


class BulkExecutor:
    """Sequential bulk action runner with observable progress."""

    def __init__(self):
        self._lock = threading.Lock()
        self._phase = IDLE
        self._progress: Optional[BulkProgress] = None
        self._result: Optional[BulkOperationResult] = None

    @property
    def phase(self) -> str:
        with self._lock:
            return self._phase

    @property
    def progress(self) -> Optional[BulkProgress]:
        with self._lock:
            return self._progress

    @property
    def result(self) -> Optional[BulkOperationResult]:
        with self._lock:
            return self._result

    @property
    def is_running(self) -> bool:
        return self.phase == RUNNING

    def acknowledge(self) -> None:
        """Dismiss a finished run's result."""
        with self._lock:
            if self._phase == DONE:
                self._phase = IDLE
                self._progress = None
                self._result = None

    def _begin(self, action: str, total: int) -> None:
        with self._lock:
            if self._phase == RUNNING:
                raise BulkInProgressError("A bulk operation is already running")
            self._phase = RUNNING
            self._result = None
            self._progress = BulkProgress(action=action, index=0, total=total, succeeded=0, failed=0)

    def run(self, ids: Sequence[str], action: str, client,
            on_progress: Optional[Callable[[BulkProgress], None]] = None) -> BulkOperationResult:
        """Apply ``action`` to every id in order and return the tally.

        Args:
            ids: Container ids to process; each is attempted exactly once
            action: One of start, stop, restart, remove
            client: Runtime client exposing the *_container methods
            on_progress: Called with a BulkProgress after every item

        Raises:
            ValueError: unknown action
            EmptySelectionError: no ids given
            BulkInProgressError: another run has not finished
        """
        if action not in BULK_ACTIONS:
            raise ValueError(f"Unknown bulk action: {action}")
        ids = list(ids)
        if not ids:
            raise EmptySelectionError("No containers selected")

        total = len(ids)
        self._begin(action, total)
        call = getattr(client, ACTION_METHODS[action])
        logger.info(f"Bulk {action} started for {total} containers")

        succeeded = 0
        failed = 0
        failures: List[Tuple[str, str]] = []
        try:
            for index, unit_id in enumerate(ids, start=1):
                try:
                    call(unit_id)
                    succeeded += 1
                except Exception as e:
                    failed += 1
                    failures.append((unit_id, str(e)))
                    logger.warning(f"Bulk {action} failed for {unit_id}: {e}")

                progress = BulkProgress(
                    action=action,
                    index=index,
                    total=total,
                    succeeded=succeeded,
                    failed=failed,
                    current_id=unit_id,
                )
                with self._lock:
                    self._progress = progress
                if on_progress:
                    try:
                        on_progress(progress)
                    except Exception as e:
                        logger.error(f"Bulk progress callback failed: {e}", exc_info=True)
        finally:
            result = BulkOperationResult(
                action=action,
                total=total,
                succeeded=succeeded,
                failed=failed,
                failures=tuple(failures),
            )
            with self._lock:
                self._result = result
                self._phase = DONE

        logger.info(f"Bulk {action} finished: {succeeded} succeeded, {failed} failed")
        return result
