import pytest
from unittest.mock import MagicMock

from dockdash.backend import DockerBackend, LogStream, RuntimeClientError, parse_stats


@pytest.fixture
def mock_docker(mocker):
    # Mock the entire docker module
    mock_client = MagicMock()
    mocker.patch("docker.from_env", return_value=mock_client)
    return mock_client


def make_raw_container(cid, name, status="running", tags=("nginx:latest",), attrs=None):
    c = MagicMock()
    c.id = cid
    c.short_id = cid[:12]
    c.name = name
    c.status = status
    c.image.tags = list(tags)
    c.image.short_id = "sha256:xyz"
    c.attrs = attrs or {}
    return c


def test_list_containers(mock_docker):
    c1 = make_raw_container("long_id_1", "web", attrs={
        "Status": "Up 2 hours",
        "State": "running",
        "Ports": [{"PrivatePort": 80, "PublicPort": 8080, "Type": "tcp"}, {"IP": "::"}],
        "Created": 0,
    })
    c2 = make_raw_container("long_id_2", "db", status="exited", tags=())
    mock_docker.containers.list.return_value = [c1, c2]

    results = DockerBackend().list_containers()

    mock_docker.containers.list.assert_called_once_with(all=True)
    assert len(results) == 2
    assert results[0].name == "web"
    assert results[0].status == "Up 2 hours"
    assert results[0].is_running
    assert str(results[0].ports[0]) == "8080->80/tcp"
    assert len(results[0].ports) == 1
    assert results[0].created != ""

    assert results[1].image == "sha256:xyz"  # Fallback to short_id
    assert results[1].state == "exited"
    assert not results[1].is_running


def test_container_actions(mock_docker):
    mock_container = MagicMock()
    mock_docker.containers.get.return_value = mock_container

    backend = DockerBackend(stop_timeout=3)
    backend.start_container("123")
    mock_docker.containers.get.assert_called_with("123")
    mock_container.start.assert_called_once()

    backend.stop_container("123")
    mock_container.stop.assert_called_once_with(timeout=3)

    backend.restart_container("123")
    mock_container.restart.assert_called_once_with(timeout=3)

    backend.remove_container("123")
    mock_container.remove.assert_called_once_with(force=True, v=True)


def test_errors_become_runtime_client_error(mock_docker):
    mock_docker.containers.get.side_effect = Exception("No such container")
    backend = DockerBackend()

    with pytest.raises(RuntimeClientError) as exc_info:
        backend.start_container("missing")
    assert "No such container" in str(exc_info.value)
    assert exc_info.value.__cause__ is not None


def test_unreachable_daemon_is_not_fatal(mocker):
    mocker.patch("docker.from_env", side_effect=Exception("socket missing"))
    backend = DockerBackend()
    assert backend.client is None

    with pytest.raises(RuntimeClientError):
        backend.list_containers()


def test_get_stats_parses_payload(mock_docker):
    raw = {
        "cpu_stats": {"cpu_usage": {"total_usage": 400}, "system_cpu_usage": 2000, "online_cpus": 2},
        "precpu_stats": {"cpu_usage": {"total_usage": 200}, "system_cpu_usage": 1000},
        "memory_stats": {"usage": 256 * 1024 * 1024, "limit": 1024 * 1024 * 1024},
        "networks": {"eth0": {"rx_bytes": 1024, "tx_bytes": 2048}},
        "blkio_stats": {"io_service_bytes_recursive": [
            {"op": "Read", "value": 512},
            {"op": "Write", "value": 100},
        ]},
        "pids_stats": {"current": 7},
    }
    mock_docker.containers.get.return_value.stats.return_value = raw

    stats = DockerBackend().get_stats("abc")

    mock_docker.containers.get.return_value.stats.assert_called_once_with(stream=False)
    # (200 / 1000) * 2 cpus * 100
    assert stats.cpu_percent == pytest.approx(40.0)
    assert stats.mem_percent == pytest.approx(25.0)
    assert stats.mem_usage == "256.00 MB / 1.00 GB"
    assert stats.net_io == "↓ 1.00 KB / ↑ 2.00 KB"
    assert stats.block_io == "↓ 512 B / ↑ 100 B"
    assert stats.pids == 7


def test_parse_stats_empty_payload():
    stats = parse_stats({})
    assert stats.cpu_percent == 0.0
    assert stats.mem_percent == 0.0
    assert stats.pids == 0


def test_exec_command(mock_docker):
    container = mock_docker.containers.get.return_value
    container.exec_run.return_value = (0, b"hello\n")

    assert DockerBackend().exec_command("abc", "echo hello") == "hello\n"
    container.exec_run.assert_called_once_with(["/bin/sh", "-c", "echo hello"])


def test_exec_command_nonzero_exit(mock_docker):
    mock_docker.containers.get.return_value.exec_run.return_value = (127, b"sh: nope: not found")
    with pytest.raises(RuntimeClientError, match="127"):
        DockerBackend().exec_command("abc", "nope")


def test_check_health(mock_docker):
    container = mock_docker.containers.get.return_value
    container.exec_run.side_effect = [(0, b"alive"), (0, b"42%\n"), (1, b"")]

    health = DockerBackend().check_health("abc")

    assert health == {"responsive": "yes", "disk_usage": "42%", "memory_usage": "unknown"}


def test_inspect_uses_low_level_api(mock_docker):
    mock_docker.api.inspect_container.return_value = {"Id": "abc"}
    assert DockerBackend().inspect_container("abc") == {"Id": "abc"}


def test_log_stream_splits_chunks_into_lines():
    raw = MagicMock()
    raw.__iter__.return_value = iter([b"first li", b"ne\nsecond\r\nthi", b"rd"])
    stream = LogStream(raw)

    assert list(stream) == ["first line", "second", "third"]
    stream.close()
    raw.close.assert_called_once()


def test_get_logs(mock_docker):
    mock_docker.containers.get.return_value.logs.return_value = b"a\nb\n"
    assert DockerBackend().get_logs("abc", tail=10) == ["a", "b"]
