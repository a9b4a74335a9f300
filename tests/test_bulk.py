from unittest.mock import MagicMock

import pytest

from dockdash.backend import RuntimeClientError
from dockdash.bulk import DONE, IDLE, RUNNING, BulkExecutor, BulkInProgressError, EmptySelectionError


def test_all_succeed():
    client = MagicMock()
    executor = BulkExecutor()

    result = executor.run(["a", "b", "c"], "stop", client)

    assert (result.total, result.succeeded, result.failed) == (3, 3, 0)
    assert [c.args[0] for c in client.stop_container.call_args_list] == ["a", "b", "c"]
    assert executor.phase == DONE


def test_failures_are_counted_and_batch_continues():
    client = MagicMock()
    client.restart_container.side_effect = [None, RuntimeClientError("boom"), None, RuntimeClientError("gone")]

    result = BulkExecutor().run(["a", "b", "c", "d"], "restart", client)

    assert (result.total, result.succeeded, result.failed) == (4, 2, 2)
    assert client.restart_container.call_count == 4
    assert result.failures == (("b", "boom"), ("d", "gone"))


def test_progress_reported_after_each_item():
    client = MagicMock()
    client.remove_container.side_effect = [None, ValueError("x")]
    seen = []
    executor = BulkExecutor()

    def on_progress(p):
        seen.append((p.index, p.succeeded, p.failed, p.current_id))
        assert executor.phase == RUNNING

    executor.run(["a", "b"], "remove", client, on_progress=on_progress)

    assert seen == [(1, 1, 0, "a"), (2, 1, 1, "b")]
    assert executor.progress.index == 2


def test_progress_callback_error_does_not_stop_batch():
    client = MagicMock()
    result = BulkExecutor().run(["a", "b"], "start", client,
                                on_progress=MagicMock(side_effect=RuntimeError("ui")))
    assert result.succeeded == 2


def test_empty_selection_rejected_before_runtime_calls():
    client = MagicMock()
    executor = BulkExecutor()
    with pytest.raises(EmptySelectionError):
        executor.run([], "start", client)
    client.start_container.assert_not_called()
    assert executor.phase == IDLE


def test_unknown_action_rejected():
    with pytest.raises(ValueError):
        BulkExecutor().run(["a"], "pause", MagicMock())


def test_run_while_running_is_rejected():
    executor = BulkExecutor()
    client = MagicMock()
    errors = []

    def nested(_progress):
        try:
            executor.run(["x"], "start", client)
        except BulkInProgressError as e:
            errors.append(e)

    executor.run(["a"], "stop", client, on_progress=nested)

    assert len(errors) == 1
    client.start_container.assert_not_called()


def test_acknowledge_returns_to_idle():
    executor = BulkExecutor()
    executor.run(["a"], "start", MagicMock())
    assert executor.result is not None

    executor.acknowledge()
    assert executor.phase == IDLE
    assert executor.result is None
    assert executor.progress is None

    # A new run is accepted straight after a finished one too
    executor.run(["a"], "start", MagicMock())
    executor.run(["b"], "start", MagicMock())
    assert executor.result.total == 1
