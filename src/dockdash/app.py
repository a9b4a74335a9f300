"""Textual-based UI for dockdash."""

from __future__ import annotations

from typing import Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widget import Widget
from textual.widgets import Header, Input, OptionList, Static
from textual.widgets.option_list import Option
from rich.text import Text

from .backend import DockerBackend
from .bulk import DONE, RUNNING
from .config import ConfigManager
from .dashboard import (
    BULK_MENU, FLOW_BULK_MENU, FLOW_CONFIRM_BULK, FLOW_CONFIRM_REMOVE,
    FLOW_EXEC, FLOW_HELP, FLOW_INSPECT, FLOW_LOGS, FLOW_QUIT, Dashboard,
    DashboardView,
)
from .formatting import format_duration, format_ports

HELP_ACTIONS = [
    ("up", "Move focus up"),
    ("down", "Move focus down"),
    ("start_stop", "Start / stop container"),
    ("restart", "Restart container"),
    ("delete", "Remove container"),
    ("inspect", "Inspect container"),
    ("logs", "Follow logs"),
    ("exec", "Run a command in the container"),
    ("health", "Health check"),
    ("export_logs", "Export logs to file"),
    ("reset_stats", "Reset metrics history"),
    ("pause_stats", "Pause / resume metrics"),
    ("bulk_mode", "Toggle bulk mode"),
    ("select_toggle", "Select container (bulk mode)"),
    ("select_all", "Select all (bulk mode)"),
    ("bulk_actions", "Bulk actions menu"),
    ("leave_bulk", "Leave bulk mode"),
    ("refresh", "Refresh now"),
    ("help", "This help"),
    ("quit", "Quit"),
]


def _dialog(title: str, *body: Widget, hint: str, large: bool = False) -> Vertical:
    """Standard modal frame: bold title, body widgets, muted key hint."""
    return Vertical(
        Static(title, classes="modal_title", markup=False),
        *body,
        Static(hint, classes="modal_hint", markup=False),
        id="modal",
        classes="large" if large else "",
    )


class ConfirmScreen(ModalScreen[bool]):
    BINDINGS = [
        Binding("y,enter", "answer(True)", "Yes", show=False),
        Binding("n,escape", "answer(False)", "No", show=False),
    ]

    def __init__(self, question: str) -> None:
        super().__init__()
        self.question = question

    def compose(self) -> ComposeResult:
        yield _dialog(
            "Confirm",
            Static(self.question, classes="modal_body", markup=False),
            hint="[Enter/Y] Yes    [Esc/N] No",
        )

    def action_answer(self, answer: bool) -> None:
        self.dismiss(answer)


class CommandScreen(ModalScreen[Optional[str]]):
    """Prompt for a shell command; dismisses with None when cancelled."""

    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    def __init__(self, prompt: str) -> None:
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:
        yield _dialog(
            "Exec",
            Static(self.prompt, classes="modal_body", markup=False),
            Input(placeholder="e.g. ls -la /", id="command"),
            hint="[Enter] Run  [Esc] Cancel",
        )

    def on_mount(self) -> None:
        self.query_one("#command", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip() or None)

    def action_cancel(self) -> None:
        self.dismiss(None)


class BulkMenuScreen(ModalScreen[Optional[str]]):
    """Pick one bulk action; dismisses with the action name or None."""

    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    def __init__(self, count: int) -> None:
        super().__init__()
        self.count = count

    def compose(self) -> ComposeResult:
        options = [Option(label, id=choice) for label, choice in BULK_MENU]
        yield _dialog(
            f"Bulk Actions ({self.count} selected)",
            OptionList(*options, id="bulk_options"),
            hint="[Up/Down] Move  [Enter] Select  [Esc] Cancel",
        )

    def on_mount(self) -> None:
        self.query_one("#bulk_options", OptionList).focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self.dismiss(event.option.id)

    def action_cancel(self) -> None:
        self.dismiss(None)


class TextScreen(ModalScreen[None]):
    """Scrollable read-only text (help, inspect output, exec output)."""

    BINDINGS = [Binding("escape,q,enter", "dismiss", "Close", show=False)]

    def __init__(self, title: str, lines: list[str]) -> None:
        super().__init__()
        self.text_title = title
        self.lines = lines

    def compose(self) -> ComposeResult:
        yield _dialog(
            self.text_title,
            VerticalScroll(Static("\n".join(self.lines), markup=False), id="text_scroll"),
            hint="[Up/Down] Scroll  [Esc] Close",
            large=True,
        )


class LogsScreen(ModalScreen[None]):
    """Live view of the LogsWorker buffer for one container."""

    BINDINGS = [Binding("escape,q", "close", "Close", show=False)]

    def __init__(self, dashboard: Dashboard, title: str) -> None:
        super().__init__()
        self.dashboard = dashboard
        self.logs_title = title
        self._shown: tuple = ()

    def compose(self) -> ComposeResult:
        yield _dialog(
            self.logs_title,
            VerticalScroll(Static("Loading logs...", id="logs_body", markup=False), id="logs_scroll"),
            hint="[Up/Down] Scroll  [Esc] Close",
            large=True,
        )

    def on_mount(self) -> None:
        self.set_interval(0.5, self._refresh_lines)

    def _refresh_lines(self) -> None:
        lines = self.dashboard.logs_worker.lines()
        # Bounded buffer: length alone stops changing once it is full
        shown = (len(lines), lines[-1] if lines else None)
        if shown == self._shown:
            return
        self._shown = shown
        self.query_one("#logs_body", Static).update("\n".join(lines) or "(no logs)")
        self.query_one("#logs_scroll", VerticalScroll).scroll_end(animate=False)

    def action_close(self) -> None:
        self.dashboard.logs_worker.follow(None)
        self.dismiss(None)


class DashboardApp(App[None]):
    TITLE = "dockdash"
    SUB_TITLE = "Docker dashboard"

    CSS = """
    Screen {
      layout: vertical;
    }

    #main {
      layout: vertical;
      height: 1fr;
    }

    #top {
      height: 1fr;
    }

    #list {
      width: 55%;
      height: 1fr;
      border: round $accent;
      padding: 0 1;
      overflow: auto;
    }

    #side {
      width: 45%;
      height: 1fr;
    }

    #info {
      height: auto;
      border: round $accent;
      padding: 0 1;
    }

    #system {
      height: auto;
      border: round $accent;
      padding: 0 1;
    }

    #stats {
      height: 1fr;
      border: round $accent;
      padding: 0 1;
      overflow: auto;
    }

    Screen.narrow #list {
      width: 100%;
    }

    Screen.narrow #side {
      display: none;
    }

    #status {
      height: 1;
      padding: 0 1;
      background: $panel;
      color: $text;
    }

    #status.error {
      background: $error;
    }

    #hint {
      height: 1;
      padding: 0 1;
      color: $text-muted;
    }

    ModalScreen {
      align: center middle;
    }

    #bulk_options {
      height: auto;
      margin-bottom: 1;
    }

    #modal {
      width: 70;
      height: auto;
      border: round $accent;
      background: $surface;
      padding: 1 2;
      align: center middle;
    }

    #modal.large {
      width: 90%;
      height: 80%;
    }

    #text_scroll, #logs_scroll {
      height: 1fr;
    }

    .modal_title {
      text-style: bold;
      margin-bottom: 1;
    }

    .modal_body {
      margin-bottom: 1;
    }

    .modal_hint {
      color: $text-muted;
    }
    """

    def __init__(self, dashboard: Dashboard, log_path: str = "") -> None:
        super().__init__()
        self.dashboard = dashboard
        self.config_manager = dashboard.config_manager
        self.log_path = log_path
        self.scroll_offset = 0
        self._last_version = -1
        self._last_message = ""

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Vertical(
            Horizontal(
                Static("", id="list", markup=False),
                Vertical(
                    Static("", id="info", markup=False),
                    Static("", id="stats", markup=False),
                    Static("", id="system", markup=False),
                    id="side",
                ),
                id="top",
            ),
            id="main",
        )
        yield Static("", id="status", markup=False)
        yield Static("", id="hint", markup=False)

    def on_mount(self) -> None:
        self.dashboard.start()
        self.set_interval(self.dashboard.ui_config.redraw_interval, self._tick)
        self._apply_responsive_layout()
        self._render()

    def on_unmount(self) -> None:
        self.dashboard.stop()

    def on_resize(self, event: events.Resize) -> None:
        self._apply_responsive_layout()
        self._render()

    def _apply_responsive_layout(self) -> None:
        self.set_class(self.size.width < 100, "narrow")

    # --- rendering ---

    def _visible_range(self, count: int, focused: Optional[int]) -> range:
        """Rows that fit the list panel, scrolled so the focused row is shown."""
        list_height = max(1, self.query_one("#list", Static).size.height - 4)
        if focused is not None:
            if focused < self.scroll_offset:
                self.scroll_offset = focused
            elif focused >= self.scroll_offset + list_height:
                self.scroll_offset = focused - list_height + 1
        self.scroll_offset = max(0, min(self.scroll_offset, max(0, count - 1)))
        return range(self.scroll_offset, min(count, self.scroll_offset + list_height))

    def _render_list(self, view: DashboardView) -> Text:
        containers = view.snapshot.containers
        focused = view.snapshot.focused_index

        text = Text()
        text.append("      NAME                 STATUS               IMAGE\n\n", style="bold")
        rows = self._visible_range(len(containers), focused)
        for idx in rows:
            c = containers[idx]
            marker = ">" if idx == focused else " "
            checkbox = ("[x]" if c.id in view.selected else "[ ]") if view.bulk_enabled else "   "
            style = "green" if c.is_running else "dim"
            if idx == focused:
                style += " reverse"
            text.append(f"{marker} {checkbox} {c.name[:20]:20} {c.status[:20]:20} {c.image[:30]}\n", style=style)

        if not rows:
            text.append("(no containers)", style="dim")
        return text

    def _render_info(self, view: DashboardView) -> str:
        c = view.snapshot.focused
        if c is None:
            return "No container selected"
        return "\n".join(
            [
                f"ID: {c.short_id}",
                f"Name: {c.name}",
                f"Image: {c.image}",
                f"Status: {c.status}",
                f"Ports: {format_ports(c.ports)}",
                f"Created: {c.created}",
            ]
        )

    def _render_stats(self, view: DashboardView) -> str:
        if view.snapshot.focused is None:
            return ""
        title = "METRICS (paused)" if view.stats_paused else "METRICS"
        stats = view.stats
        if stats is None:
            return f"{title}\n\nWaiting for samples..."
        summary = view.summary
        lines = [
            title,
            "",
            f"CPU {stats.cpu_percent:5.1f}%  {view.cpu_spark}",
            f"          {view.cpu_bar}",
            f"MEM {stats.mem_percent:5.1f}%  {view.mem_spark}",
            f"          {view.mem_bar}",
            "",
            view.cpu_chart,
            "",
            f"Memory: {stats.mem_usage}",
            f"Net I/O: {stats.net_io}",
            f"Block I/O: {stats.block_io}",
            f"PIDs: {stats.pids}",
            "",
            f"Samples: {summary['samples']}  Elapsed: {format_duration(summary['elapsed'])}",
            f"CPU avg {summary['cpu_avg']:.1f}% max {summary['cpu_max']:.1f}%",
            f"MEM avg {summary['mem_avg']:.1f}% max {summary['mem_max']:.1f}%",
        ]
        return "\n".join(lines)

    def _render_system(self, view: DashboardView) -> str:
        snap = view.snapshot
        docker_state = "connected" if self.dashboard.backend.client is not None else "unavailable"
        return "\n".join(
            [
                f"Containers: {len(snap.containers)} total, {snap.running_count} running",
                f"Docker: {docker_state}",
                f"Log: {self.log_path}",
            ]
        )

    def _render_status(self, view: DashboardView) -> str:
        parts = ["BULK ON" if view.bulk_enabled else "BULK OFF"]
        if view.bulk_enabled:
            parts.append(f"{len(view.selected)} selected")
        if view.bulk_phase == RUNNING and view.bulk_progress:
            p = view.bulk_progress
            parts.append(f"Bulk {p.action}: {p.index}/{p.total} ({p.failed} failed)")
        elif view.bulk_phase == DONE and view.bulk_result:
            r = view.bulk_result
            parts.append(f"Bulk {r.action} done: {r.succeeded} ok, {r.failed} failed (any key)")
        if view.snapshot.message:
            prefix = "ERROR: " if view.snapshot.is_error else ""
            parts.append(prefix + view.snapshot.message)
        return "  ".join(parts)

    def _render_hint(self) -> str:
        key = self.config_manager.get_key_binding
        if self.dashboard.selection.enabled:
            return (f"[{key('select_toggle')}] select  [{key('select_all')}] all  "
                    f"[{key('bulk_actions')}] actions  [{key('leave_bulk')}] leave  [{key('quit')}] quit")
        return (f"[{key('start_stop')}] start/stop  [{key('restart')}] restart  [{key('delete')}] remove  "
                f"[{key('logs')}] logs  [{key('bulk_mode')}] bulk  [{key('help')}] help  [{key('quit')}] quit")

    def _render(self) -> None:
        view = self.dashboard.view()
        self._last_version = view.snapshot.version
        self._last_message = view.snapshot.message
        self.query_one("#list", Static).update(self._render_list(view))
        self.query_one("#info", Static).update(self._render_info(view))
        self.query_one("#stats", Static).update(self._render_stats(view))
        self.query_one("#system", Static).update(self._render_system(view))
        status = self.query_one("#status", Static)
        status.update(self._render_status(view))
        status.set_class(view.snapshot.is_error and bool(view.snapshot.message), "error")
        self.query_one("#hint", Static).update(self._render_hint())

    def _tick(self) -> None:
        # A shown message can expire without a version bump
        if self.dashboard.state.get_version() != self._last_version or self._last_message:
            self._render()

    # --- flows ---

    async def _confirm(self, question: str) -> bool:
        result = await self.push_screen_wait(ConfirmScreen(question))
        return bool(result)

    async def _input(self, prompt: str) -> Optional[str]:
        return await self.push_screen_wait(CommandScreen(prompt))

    def _show_text(self, title: str, lines: list[str]) -> None:
        self.push_screen(TextScreen(title, lines))

    def _show_text_from_thread(self, title: str, lines: list[str]) -> None:
        self.call_from_thread(self._show_text, title, lines)

    def _help_lines(self) -> list[str]:
        return [f"{self.config_manager.get_key_binding(action):>14}  {label}" for action, label in HELP_ACTIONS]

    async def _confirm_remove_flow(self) -> None:
        container = self.dashboard.state.focused_container()
        if container is None:
            return
        if await self._confirm(f"Remove container '{container.name}'? This cannot be undone."):
            self.dashboard.remove_focused(container)

    async def _exec_flow(self) -> None:
        container = self.dashboard.state.focused_container()
        if container is None:
            return
        command = await self._input(f"Command to run in {container.name}:")
        if command:
            self.dashboard.exec_in_focused(command, self._show_text_from_thread, container)

    async def _bulk_menu_flow(self) -> None:
        choice = await self.push_screen_wait(BulkMenuScreen(self.dashboard.selection.count()))
        if not choice:
            return
        flow = self.dashboard.choose_bulk(choice)
        if flow == FLOW_CONFIRM_BULK:
            count = self.dashboard.selection.count()
            if await self._confirm(f"{choice.capitalize()} {count} containers?"):
                self.dashboard.run_bulk(choice)

    def _run_flow(self, flow: str) -> None:
        if flow == FLOW_QUIT:
            self.exit()
        elif flow == FLOW_HELP:
            self._show_text("Help", self._help_lines())
        elif flow == FLOW_INSPECT:
            self.dashboard.inspect_focused(self._show_text_from_thread)
        elif flow == FLOW_LOGS:
            container = self.dashboard.state.focused_container()
            name = container.name if container else ""
            self.push_screen(LogsScreen(self.dashboard, f"Logs: {name}"))
        else:
            flows = {
                FLOW_CONFIRM_REMOVE: self._confirm_remove_flow,
                FLOW_EXEC: self._exec_flow,
                FLOW_BULK_MENU: self._bulk_menu_flow,
            }
            handler = flows.get(flow)
            if handler:
                self.run_worker(handler(), group="user-action", exclusive=True, thread=False)

    async def on_key(self, event: events.Key) -> None:
        # Modal screens own the keyboard while open
        if len(self.screen_stack) > 1:
            return
        flow = self.dashboard.handle_key(event.key)
        event.stop()
        if flow:
            self._run_flow(flow)
        self._render()


def run(config_manager: ConfigManager, log_path: str = "") -> None:
    backend = DockerBackend(stop_timeout=config_manager.get_config().docker.stop_timeout)
    dashboard = Dashboard(backend, config_manager)
    app = DashboardApp(dashboard, log_path=log_path)
    app.run()
