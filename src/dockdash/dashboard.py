"""
Dashboard controller: ownership, key routing and background dispatch.

The Dashboard owns one of each core component and hands them by reference
to the workers at construction time:

  - DashboardState  (container list, focus, transient message)
  - SelectionSet    (bulk mode)
  - MetricsHistory  (focused container's CPU/RAM history)
  - BulkExecutor    (sequential bulk runs)
  - RefreshWorker / StatsWorker / LogsWorker sharing one stop Event

The display layer calls handle_key() for every keystroke. Pure state
changes happen right away; anything that talks to Docker is sent to a
background thread and reports back through DashboardState (message +
version bump), so the render loop never blocks on the runtime.

handle_key() returns the name of a UI flow the display layer must open
(a confirmation, a modal, quitting) or None when nothing else is needed.
"""

import datetime
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from .backend import DockerBackend, RuntimeClientError
from .bulk import DONE, BulkExecutor, BulkInProgressError, EmptySelectionError
from .config import ConfigManager
from .formatting import format_inspect
from .history import MetricsHistory
from .model import (
    BULK_ACTIONS, BulkOperationResult, BulkProgress, ContainerSnapshot,
    ContainerStats, DashboardSnapshot,
)
from .selection import SelectionSet
from .state import DashboardState, LogsWorker, RefreshWorker, StatsWorker

logger = logging.getLogger(__name__)

# UI flows returned by handle_key()
FLOW_QUIT = "quit"
FLOW_HELP = "help"
FLOW_BULK_MENU = "bulk_menu"
FLOW_CONFIRM_REMOVE = "confirm_remove"
FLOW_INSPECT = "inspect"
FLOW_LOGS = "logs"
FLOW_EXEC = "exec"
FLOW_CONFIRM_BULK = "confirm_bulk"

CONFIRM_BULK_ACTIONS = ("stop", "remove")

# Bulk menu entries: (label, choice)
BULK_MENU = (
    ("Start All", "start"),
    ("Stop All", "stop"),
    ("Restart All", "restart"),
    ("Remove All", "remove"),
    ("Export Logs", "export_logs"),
)

BULK_LABELS = {
    "start": "Started",
    "stop": "Stopped",
    "restart": "Restarted",
    "remove": "Removed",
}


def _spawn_thread(job: Callable[[], None]) -> None:
    threading.Thread(target=job, daemon=True).start()


@dataclass(frozen=True)
class DashboardView:
    """Everything one frame needs, read in one pass."""
    snapshot: DashboardSnapshot
    bulk_enabled: bool
    selected: FrozenSet[str]
    cpu_spark: str
    mem_spark: str
    cpu_bar: str
    mem_bar: str
    cpu_chart: str
    stats: Optional[ContainerStats]
    summary: Dict[str, float]
    stats_paused: bool
    bulk_phase: str
    bulk_progress: Optional[BulkProgress]
    bulk_result: Optional[BulkOperationResult]


class Dashboard:
    def __init__(self, backend: DockerBackend, config_manager: Optional[ConfigManager] = None,
                 spawn: Optional[Callable[[Callable[[], None]], None]] = None):
        self.backend = backend
        self.config_manager = config_manager or ConfigManager()
        cfg = self.config_manager.get_config()
        self.ui_config = cfg.ui
        self.docker_config = cfg.docker
        self._spawn = spawn or _spawn_thread

        self.state = DashboardState(message_ttl=cfg.ui.message_ttl)
        self.selection = SelectionSet()
        self.history = MetricsHistory(capacity=cfg.docker.history_capacity)
        self.bulk = BulkExecutor()

        self.stop_event = threading.Event()
        self.refresh_worker = RefreshWorker(
            self.state, backend, self.history, self.stop_event,
            interval=cfg.docker.refresh_interval,
        )
        self.stats_worker = StatsWorker(
            self.state, backend, self.history, self.stop_event,
            interval=cfg.docker.stats_interval,
        )
        self.logs_worker = LogsWorker(
            backend, self.stop_event, tail=cfg.docker.log_tail,
            on_update=self.state.request_redraw,
        )
        self._workers = (self.refresh_worker, self.stats_worker, self.logs_worker)

    # --- lifecycle ---

    def start(self) -> None:
        for worker in self._workers:
            worker.start()
        logger.info("Dashboard workers started")

    def stop(self, timeout: float = 1.0) -> None:
        self.stop_event.set()
        self.refresh_worker.force_refresh()
        self.stats_worker.force_refresh()
        self.logs_worker.close()
        for worker in self._workers:
            if worker.is_alive():
                worker.join(timeout)
        logger.info("Dashboard workers stopped")

    # --- key routing ---

    def handle_key(self, key: str) -> Optional[str]:
        # A finished bulk result stays on screen until the next key,
        # which is still handled as usual
        if self.bulk.phase == DONE:
            self.bulk.acknowledge()
            self.state.request_redraw()

        action = self.config_manager.action_for_key(key)
        if action is None:
            return None
        logger.debug(f"Key {key!r} -> {action}")

        if action == "quit":
            return FLOW_QUIT
        if action == "help":
            return FLOW_HELP
        if action == "up":
            self.move_focus(-1)
        elif action == "down":
            self.move_focus(1)
        elif action == "refresh":
            self.refresh_worker.force_refresh()
            self.state.set_message("Refreshing...")
        elif action == "bulk_mode":
            self.toggle_bulk()
        elif action == "leave_bulk":
            if self.selection.enabled:
                self.toggle_bulk()
        elif action == "select_toggle":
            self.toggle_selection()
        elif action == "select_all":
            self.select_all()
        elif action == "bulk_actions":
            if not self.selection.enabled:
                self.state.set_message("Press b to enter bulk mode first")
            elif self._check_selection():
                return FLOW_BULK_MENU
        elif action == "reset_stats":
            self.history.reset()
            self.state.set_message("Metrics history reset")
        elif action == "pause_stats":
            self.stats_worker.paused = not self.stats_worker.paused
            self.state.set_message("Metrics paused" if self.stats_worker.paused else "Metrics resumed")
        else:
            return self._handle_container_key(action)
        return None

    def _handle_container_key(self, action: str) -> Optional[str]:
        container = self.state.focused_container()
        if container is None:
            self.state.set_message("No container selected")
            return None

        if action == "start_stop":
            self.toggle_running(container)
        elif action == "restart":
            self.restart_focused(container)
        elif action == "delete":
            return FLOW_CONFIRM_REMOVE
        elif action == "inspect":
            return FLOW_INSPECT
        elif action == "logs":
            self.logs_worker.follow(container.id)
            return FLOW_LOGS
        elif action == "exec":
            if not container.is_running:
                self.state.set_error(f"{container.name} is not running")
                return None
            return FLOW_EXEC
        elif action == "health":
            self.check_health(container)
        elif action == "export_logs":
            self.export_logs([container])
        return None

    # --- focus and selection ---

    def move_focus(self, delta: int) -> None:
        if self.state.move_focus(delta):
            self._on_focus_changed()

    def set_focus(self, index: int) -> None:
        if self.state.set_focus(index):
            self._on_focus_changed()

    def _on_focus_changed(self) -> None:
        focused = self.state.focused_container()
        if self.history.bind(focused.id if focused else None):
            self.stats_worker.force_refresh()

    def toggle_bulk(self) -> bool:
        enabled = self.selection.toggle()
        self.state.set_message("Bulk mode ON" if enabled else "Bulk mode OFF")
        return enabled

    def toggle_selection(self) -> None:
        if not self.selection.enabled:
            self.state.set_message("Bulk mode is off (press b)")
            return
        container = self.state.focused_container()
        if container is None:
            return
        self.selection.toggle_member(container.id)
        self.state.request_redraw()

    def select_all(self) -> None:
        if not self.selection.enabled:
            return
        self.selection.select_all(c.id for c in self.state.containers())
        self.state.request_redraw()

    def selected_containers(self) -> List[ContainerSnapshot]:
        """Selected containers in list order (ids no longer listed are skipped)."""
        return [c for c in self.state.containers() if self.selection.is_selected(c.id)]

    # --- single container actions ---
    # Each takes the container captured when the user asked (a modal may have
    # been open since); None means "whatever is focused now".

    def _resolve(self, container: Optional[ContainerSnapshot]) -> Optional[ContainerSnapshot]:
        container = container or self.state.focused_container()
        if container is None:
            self.state.set_message("No container selected")
        return container

    def _run_action(self, label: str, func: Callable, *args, success: Optional[str] = None) -> None:
        def job():
            try:
                func(*args)
            except Exception as e:
                logger.error(f"{label} failed: {e}")
                self.state.set_error(f"{label} failed: {e}")
            else:
                if success:
                    self.state.set_message(success)
            finally:
                self.refresh_worker.force_refresh()
        self._spawn(job)

    def toggle_running(self, container: Optional[ContainerSnapshot] = None) -> None:
        container = self._resolve(container)
        if container is None:
            return
        if container.is_running:
            self.state.set_message(f"Stopping {container.name}...")
            self._run_action("Stop", self.backend.stop_container, container.id,
                             success=f"Stopped {container.name}")
        else:
            self.state.set_message(f"Starting {container.name}...")
            self._run_action("Start", self.backend.start_container, container.id,
                             success=f"Started {container.name}")

    def restart_focused(self, container: Optional[ContainerSnapshot] = None) -> None:
        container = self._resolve(container)
        if container is None:
            return
        self.state.set_message(f"Restarting {container.name}...")
        self._run_action("Restart", self.backend.restart_container, container.id,
                         success=f"Restarted {container.name}")

    def remove_focused(self, container: Optional[ContainerSnapshot] = None) -> None:
        container = self._resolve(container)
        if container is None:
            return
        self.state.set_message(f"Removing {container.name}...")
        self._run_action("Remove", self.backend.remove_container, container.id,
                         success=f"Removed {container.name}")

    def inspect_focused(self, on_result: Callable[[str, List[str]], None],
                        container: Optional[ContainerSnapshot] = None) -> None:
        """Fetch inspect details; ``on_result(title, lines)`` runs on the worker thread."""
        container = self._resolve(container)
        if container is None:
            return

        def job():
            try:
                lines = format_inspect(self.backend.inspect_container(container.id))
            except Exception as e:
                logger.error(f"Inspect failed: {e}")
                self.state.set_error(f"Inspect failed: {e}")
                return
            on_result(f"Inspect: {container.name}", lines)
        self._spawn(job)

    def exec_in_focused(self, command: str, on_result: Callable[[str, List[str]], None],
                        container: Optional[ContainerSnapshot] = None) -> None:
        container = self._resolve(container)
        if container is None:
            return
        command = command.strip()
        if not command:
            self.state.set_message("No command given")
            return

        def job():
            try:
                output = self.backend.exec_command(container.id, command)
            except Exception as e:
                logger.error(f"Exec failed: {e}")
                self.state.set_error(f"Exec failed: {e}")
                return
            on_result(f"{container.name}$ {command}", output.splitlines() or ["(no output)"])
        self._spawn(job)

    def check_health(self, container: Optional[ContainerSnapshot] = None) -> None:
        container = self._resolve(container)
        if container is None:
            return
        self.state.set_message(f"Checking health of {container.name}...")

        def job():
            try:
                health = self.backend.check_health(container.id)
            except Exception as e:
                self.state.set_error(f"Health check failed: {e}")
                return
            self.state.set_message(
                f"{container.name}: responsive={health['responsive']} "
                f"disk={health['disk_usage']} memory={health['memory_usage']}"
            )
        self._spawn(job)

    def export_logs(self, containers: Optional[Sequence[ContainerSnapshot]] = None) -> None:
        """Write the log tail of each container to ``<export_dir>/<name>_<stamp>.log``."""
        if containers is None:
            focused = self._resolve(None)
            containers = [focused] if focused else []
        containers = list(containers)
        if not containers:
            return
        export_dir = Path(self.docker_config.export_dir)
        self.state.set_message(f"Exporting logs of {len(containers)} containers...")

        def job():
            stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
            written = 0
            try:
                export_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                self.state.set_error(f"Export failed: {e}")
                return
            for c in containers:
                try:
                    lines = self.backend.get_logs(c.id, self.docker_config.log_tail)
                    path = export_dir / f"{c.name}_{stamp}.log"
                    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
                    written += 1
                except (RuntimeClientError, OSError) as e:
                    logger.warning(f"Log export failed for {c.name}: {e}")
            self.state.set_message(f"Exported logs of {written}/{len(containers)} containers to {export_dir}")
        self._spawn(job)

    # --- bulk ---

    def _check_selection(self) -> bool:
        if self.selection.count() == 0:
            self.state.set_message("No containers selected. Press SPACE to select containers.")
            return False
        return True

    def request_bulk(self, action: str) -> bool:
        """Validate a bulk request before any runtime call is made."""
        if action not in BULK_ACTIONS:
            self.state.set_error(f"Unknown bulk action: {action}")
            return False
        if self.bulk.is_running:
            self.state.set_message("A bulk operation is already running")
            return False
        return self._check_selection()

    def choose_bulk(self, action: str) -> Optional[str]:
        """Act on a bulk menu choice; stop and remove need confirming first."""
        if action == "export_logs":
            if self._check_selection():
                self.export_logs(self.selected_containers())
            return None
        if not self.request_bulk(action):
            return None
        if action in CONFIRM_BULK_ACTIONS:
            return FLOW_CONFIRM_BULK
        self.run_bulk(action)
        return None

    def run_bulk(self, action: str) -> bool:
        if not self.request_bulk(action):
            return False
        ids = self.selection.members()

        def job():
            try:
                result = self.bulk.run(ids, action, self.backend,
                                       on_progress=lambda _p: self.state.request_redraw())
            except (EmptySelectionError, BulkInProgressError) as e:
                self.state.set_error(str(e))
                return
            finally:
                self.refresh_worker.force_refresh()
            self.selection.disable()
            self.state.set_message(
                f"{BULK_LABELS[action]} {result.succeeded}/{result.total} containers"
                + (f", {result.failed} failed" if result.failed else "")
            )
        self._spawn(job)
        return True

    # --- rendering support ---

    def view(self) -> DashboardView:
        snapshot = self.state.snapshot()
        width = self.ui_config.graph_width
        # History bound to another container is never shown
        if snapshot.focused is None or self.history.unit_id != snapshot.focused.id:
            cpu_spark = mem_spark = cpu_bar = mem_bar = cpu_chart = ""
            stats = None
        else:
            cpu_spark = self.history.render("cpu", width)
            mem_spark = self.history.render("mem", width)
            cpu_bar = self.history.render_bar("cpu", width)
            mem_bar = self.history.render_bar("mem", width)
            cpu_chart = self.history.render_chart("cpu", self.ui_config.chart_height, width)
            stats = self.history.last_stats
        return DashboardView(
            snapshot=snapshot,
            bulk_enabled=self.selection.enabled,
            selected=frozenset(self.selection.members()),
            cpu_spark=cpu_spark,
            mem_spark=mem_spark,
            cpu_bar=cpu_bar,
            mem_bar=mem_bar,
            cpu_chart=cpu_chart,
            stats=stats,
            summary=self.history.summary(),
            stats_paused=self.stats_worker.paused,
            bulk_phase=self.bulk.phase,
            bulk_progress=self.bulk.progress,
            bulk_result=self.bulk.result,
        )
