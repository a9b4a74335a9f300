import threading
import time
from unittest.mock import MagicMock

from dockdash.backend import RuntimeClientError
from dockdash.history import MetricsHistory
from dockdash.model import ContainerSnapshot, ContainerStats
from dockdash.state import DashboardState, LogsWorker, RefreshWorker, StatsWorker


def make_containers(n):
    return [
        ContainerSnapshot(id=f"id{i}", short_id=f"id{i}", name=f"c{i}",
                          image="redis", status="Up", state="running")
        for i in range(n)
    ]


def wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeStream:
    def __init__(self, lines):
        self._lines = lines
        self.closed = False

    def __iter__(self):
        return iter(self._lines)

    def close(self):
        self.closed = True


def test_refresh_worker_tick_updates_state_and_binds_history():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()
    backend.list_containers.return_value = make_containers(3)

    worker = RefreshWorker(state, backend, history, stop)
    assert worker.run_once() is True

    assert len(state.snapshot().containers) == 3
    assert history.unit_id == "id0"


def test_refresh_worker_keeps_last_good_state_on_failure():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()
    backend.list_containers.return_value = make_containers(2)
    worker = RefreshWorker(state, backend, history, stop)
    worker.run_once()

    backend.list_containers.side_effect = RuntimeClientError("daemon gone")
    assert worker.run_once() is False

    snap = state.snapshot()
    assert len(snap.containers) == 2
    assert snap.is_error is True
    assert "daemon gone" in snap.message


def test_stopped_worker_makes_no_runtime_calls():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()
    stop.set()

    assert RefreshWorker(state, backend, history, stop).run_once() is False
    assert StatsWorker(state, backend, history, stop).run_once() is False
    backend.list_containers.assert_not_called()
    backend.get_stats.assert_not_called()


def test_in_flight_list_result_is_dropped_after_stop():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()

    def list_and_cancel():
        stop.set()
        return make_containers(4)

    backend.list_containers.side_effect = list_and_cancel
    RefreshWorker(state, backend, history, stop).run_once()
    assert state.snapshot().containers == ()


def test_refresh_worker_loop_exits_when_cancelled():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()

    def list_and_cancel():
        stop.set()
        return []

    backend.list_containers.side_effect = list_and_cancel
    worker = RefreshWorker(state, backend, history, stop, interval=0.01)
    worker.start()
    worker.join(timeout=2)

    assert not worker.is_alive()
    assert backend.list_containers.call_count == 1


def test_stats_worker_records_focused_sample():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    state.replace_containers(make_containers(2))
    state.set_focus(1)
    history.bind("id1")
    backend = MagicMock()
    backend.get_stats.return_value = ContainerStats(cpu_percent=12.5, mem_percent=40.0)

    worker = StatsWorker(state, backend, history, stop)
    version = state.get_version()
    worker.run_once()

    backend.get_stats.assert_called_once_with("id1")
    assert history.samples("cpu") == [12.5]
    assert history.samples("mem") == [40.0]
    assert state.get_version() > version


def test_stats_worker_skips_without_focus_or_when_paused():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()
    worker = StatsWorker(state, backend, history, stop)

    worker.run_once()
    backend.get_stats.assert_not_called()

    state.replace_containers(make_containers(1))
    worker.paused = True
    worker.run_once()
    backend.get_stats.assert_not_called()


def test_stats_for_previous_focus_are_discarded():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    state.replace_containers(make_containers(2))
    backend = MagicMock()

    def slow_stats(container_id):
        # Focus moves while the call is in flight
        state.set_focus(1)
        history.bind("id1")
        return ContainerStats(cpu_percent=80.0)

    backend.get_stats.side_effect = slow_stats
    StatsWorker(state, backend, history, stop).run_once()

    assert history.unit_id == "id1"
    assert history.samples("cpu") == []


def test_focus_move_during_stats_tick_keeps_new_binding():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    state.replace_containers(make_containers(2))
    history.bind("id0")
    backend = MagicMock()
    backend.get_stats.return_value = ContainerStats(cpu_percent=77.0)
    read_focus = state.focused_container

    def focus_then_move():
        # Focus moves right after the worker reads it
        focused = read_focus()
        state.set_focus(1)
        history.bind("id1")
        return focused

    state.focused_container = focus_then_move
    StatsWorker(state, backend, history, stop).run_once()

    backend.get_stats.assert_called_once_with("id0")
    assert history.unit_id == "id1"
    assert history.samples("cpu") == []
    assert history.last_stats is None


def test_refresh_error_reported_once_per_outage():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()
    backend.list_containers.side_effect = RuntimeClientError("daemon gone")
    worker = RefreshWorker(state, backend, history, stop)

    worker.run_once()
    assert state.snapshot().is_error is True

    state.set_message("Restarted c0")
    worker.run_once()
    assert state.snapshot().message == "Restarted c0"

    backend.list_containers.side_effect = None
    backend.list_containers.return_value = make_containers(1)
    worker.run_once()
    backend.list_containers.side_effect = RuntimeClientError("down again")
    worker.run_once()
    assert "down again" in state.snapshot().message


def test_refresh_error_after_stop_is_not_shown():
    state, history, stop = DashboardState(), MetricsHistory(), threading.Event()
    backend = MagicMock()

    def fail_after_cancel():
        stop.set()
        raise RuntimeClientError("daemon gone")

    backend.list_containers.side_effect = fail_after_cancel
    RefreshWorker(state, backend, history, stop).run_once()

    snap = state.snapshot()
    assert snap.message == ""
    assert snap.is_error is False


def test_logs_worker_follows_stream():
    stop = threading.Event()
    backend = MagicMock()
    stream = FakeStream(["line 1", "line 2"])
    backend.stream_logs.return_value = stream
    on_update = MagicMock()

    worker = LogsWorker(backend, stop, tail=100, on_update=on_update)
    worker.start()
    worker.follow("abc")

    assert wait_for(lambda: worker.lines() == ["line 1", "line 2"])
    backend.stream_logs.assert_called_once_with("abc", 100)
    assert on_update.called

    stop.set()
    worker.close()
    worker.join(timeout=2)
    assert stream.closed


def test_logs_worker_reports_open_error():
    stop = threading.Event()
    backend = MagicMock()
    backend.stream_logs.side_effect = RuntimeClientError("no such container")

    worker = LogsWorker(backend, stop)
    worker.start()
    worker.follow("gone")

    assert wait_for(lambda: worker.lines() != [])
    assert worker.lines()[0].startswith("Error loading logs:")

    stop.set()
    worker.join(timeout=2)


def test_logs_worker_follow_none_clears_buffer():
    worker = LogsWorker(MagicMock(), threading.Event())
    worker.follow("a")
    assert worker.target == "a"
    worker.follow(None)
    assert worker.target is None
    assert worker.lines() == []
