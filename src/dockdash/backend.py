"""
Docker API wrapper used by the dashboard workers and action handlers.

This module provides a high-level interface to the Docker operations the
dashboard needs via the docker-py library:
  - Listing containers and sampling the stats of one container
  - Lifecycle actions (start, stop, restart, remove)
  - Log streaming, exec, inspect and a small health check

Every method blocks and must be called off the UI thread.

Error Handling:
  - Any failure of the Docker daemon, transport or API is logged once and
    re-raised as RuntimeClientError (the original error is chained)
  - A missing daemon at startup is not fatal: the client is created lazily
    and each call retries the connection

Key Classes:
  - DockerBackend: API wrapper around a docker.DockerClient
  - RuntimeClientError: the single error type callers handle
"""

import datetime
import functools
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

import docker

from .formatting import format_bytes
from .model import ContainerSnapshot, ContainerStats, PortMapping

logger = logging.getLogger(__name__)


class RuntimeClientError(Exception):
    """A call to the container runtime failed."""


def runtime_call(func: Callable) -> Callable:
    """
    Decorator for Docker API methods that normalizes failures.

    Logs the failure with the method name and raises RuntimeClientError so
    callers only ever handle one error type.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except RuntimeClientError:
            raise
        except Exception as e:
            logger.error(f"Docker operation failed in {func.__name__}: {e}")
            raise RuntimeClientError(str(e)) from e
    return wrapper


class LogStream:
    """Closable line iterator over a docker log stream."""

    def __init__(self, raw):
        self._raw = raw
        self._pending = b""

    def __iter__(self) -> Iterator[str]:
        for chunk in self._raw:
            self._pending += chunk
            while b"\n" in self._pending:
                line, self._pending = self._pending.split(b"\n", 1)
                yield line.decode("utf-8", errors="replace").rstrip("\r")
        if self._pending:
            yield self._pending.decode("utf-8", errors="replace")
            self._pending = b""

    def close(self) -> None:
        close = getattr(self._raw, "close", None)
        if close:
            close()


class DockerBackend:
    def __init__(self, stop_timeout: int = 10):
        self.stop_timeout = stop_timeout
        try:
            self.client = docker.from_env()
        except Exception as e:
            logger.warning(f"Docker daemon not reachable at startup: {e}")
            self.client = None

    def _require_client(self):
        if self.client is None:
            try:
                self.client = docker.from_env()
            except Exception as e:
                raise RuntimeClientError(f"Docker daemon not reachable: {e}") from e
        return self.client

    def _get(self, container_id: str):
        return self._require_client().containers.get(container_id)

    @runtime_call
    def list_containers(self) -> List[ContainerSnapshot]:
        raw = self._require_client().containers.list(all=True)
        res = []
        for c in raw:
            attrs = c.attrs or {}
            image_tag = c.image.tags[0] if c.image.tags else (c.image.short_id or "unknown")
            state = attrs.get('State')
            if isinstance(state, dict):
                state = state.get('Status')
            res.append(ContainerSnapshot(
                id=c.id,
                short_id=c.short_id,
                name=c.name,
                image=image_tag,
                status=attrs.get('Status') or c.status,
                state=state or c.status,
                ports=_parse_ports(attrs.get('Ports')),
                created=_parse_created(attrs.get('Created')),
            ))
        return res

    @runtime_call
    def get_stats(self, container_id: str) -> ContainerStats:
        stats = self._get(container_id).stats(stream=False)
        return parse_stats(stats)

    # Actions
    @runtime_call
    def start_container(self, container_id: str) -> None:
        self._get(container_id).start()

    @runtime_call
    def stop_container(self, container_id: str) -> None:
        self._get(container_id).stop(timeout=self.stop_timeout)

    @runtime_call
    def restart_container(self, container_id: str) -> None:
        self._get(container_id).restart(timeout=self.stop_timeout)

    @runtime_call
    def remove_container(self, container_id: str) -> None:
        self._get(container_id).remove(force=True, v=True)

    @runtime_call
    def stream_logs(self, container_id: str, tail: int = 500) -> LogStream:
        raw = self._get(container_id).logs(stream=True, follow=True, timestamps=True, tail=tail)
        return LogStream(raw)

    @runtime_call
    def get_logs(self, container_id: str, tail: int = 500) -> List[str]:
        logs_bytes = self._get(container_id).logs(timestamps=True, tail=tail)
        return logs_bytes.decode('utf-8', errors='replace').splitlines()

    @runtime_call
    def exec_command(self, container_id: str, command: str) -> str:
        if not command.strip():
            raise RuntimeClientError("empty command")
        exit_code, output = self._get(container_id).exec_run(["/bin/sh", "-c", command])
        text = (output or b"").decode('utf-8', errors='replace')
        if exit_code != 0:
            raise RuntimeClientError(f"command exited with code {exit_code}: {text.strip()}")
        return text

    @runtime_call
    def inspect_container(self, container_id: str) -> Dict[str, Any]:
        return self._require_client().api.inspect_container(container_id)

    def check_health(self, container_id: str) -> Dict[str, str]:
        """Run a few shell probes inside the container."""
        checks = {}
        try:
            self.exec_command(container_id, "echo alive")
            checks["responsive"] = "yes"
        except RuntimeClientError:
            checks["responsive"] = "no"

        probes = {
            "disk_usage": "df -h / | tail -1 | awk '{print $5}'",
            "memory_usage": "free -h | grep Mem | awk '{print $3\"/\"$2}'",
        }
        for key, cmd in probes.items():
            try:
                checks[key] = self.exec_command(container_id, cmd).strip() or "unknown"
            except RuntimeClientError:
                checks[key] = "unknown"
        return checks


def _parse_ports(ports: Optional[List[Dict[str, Any]]]) -> tuple:
    if not ports:
        return ()
    res = []
    for p in ports:
        if 'PrivatePort' not in p:
            continue
        res.append(PortMapping(
            private_port=p['PrivatePort'],
            public_port=p.get('PublicPort'),
            protocol=p.get('Type', 'tcp'),
        ))
    return tuple(res)


def _parse_created(created: Any) -> str:
    # List calls report epoch seconds, inspect reports an ISO string.
    if isinstance(created, (int, float)):
        return datetime.datetime.fromtimestamp(created).strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(created, str):
        return created[:19].replace("T", " ")
    return ""


def parse_stats(stats: Dict[str, Any]) -> ContainerStats:
    """Compute percentages and I/O totals from a raw docker stats payload."""
    cpu_stats = stats.get('cpu_stats', {})
    precpu_stats = stats.get('precpu_stats', {})
    cpu_usage = cpu_stats.get('cpu_usage', {}).get('total_usage', 0)
    precpu_usage = precpu_stats.get('cpu_usage', {}).get('total_usage', 0)
    system_cpu_usage = cpu_stats.get('system_cpu_usage', 0)
    presystem_cpu_usage = precpu_stats.get('system_cpu_usage', 0)
    online_cpus = cpu_stats.get('online_cpus') or len(cpu_stats.get('cpu_usage', {}).get('percpu_usage') or []) or 1
    cpu_delta = cpu_usage - precpu_usage
    system_delta = system_cpu_usage - presystem_cpu_usage
    cpu_percent = 0.0
    if system_delta > 0.0 and cpu_delta > 0.0:
        cpu_percent = (cpu_delta / system_delta) * online_cpus * 100.0

    memory_stats = stats.get('memory_stats', {})
    mem_usage = memory_stats.get('usage', 0)
    mem_limit = memory_stats.get('limit', 0)
    mem_percent = (mem_usage / mem_limit) * 100.0 if mem_limit > 0 else 0.0

    net_rx = net_tx = 0
    for net in (stats.get('networks') or {}).values():
        net_rx += net.get('rx_bytes', 0)
        net_tx += net.get('tx_bytes', 0)

    blk_read = blk_write = 0
    for entry in (stats.get('blkio_stats', {}).get('io_service_bytes_recursive') or []):
        op = entry.get('op', '').lower()
        if op == 'read':
            blk_read += entry.get('value', 0)
        elif op == 'write':
            blk_write += entry.get('value', 0)

    return ContainerStats(
        cpu_percent=cpu_percent,
        mem_percent=mem_percent,
        mem_usage=f"{format_bytes(mem_usage)} / {format_bytes(mem_limit)}",
        net_io=f"↓ {format_bytes(net_rx)} / ↑ {format_bytes(net_tx)}",
        block_io=f"↓ {format_bytes(blk_read)} / ↑ {format_bytes(blk_write)}",
        pids=stats.get('pids_stats', {}).get('current', 0) or 0,
    )
