"""
Data models shared by the dashboard core, the Docker backend and the UI.

Container data produced by the backend is immutable (frozen dataclasses):
a refresh replaces the whole list instead of patching single entries.

Data Classes:
  - PortMapping: One published or exposed port of a container
  - ContainerSnapshot: One container as reported by a list call
  - ContainerStats: One metrics sample for a container
  - BulkProgress: Running tally emitted after each item of a bulk run
  - BulkOperationResult: Final tally of a bulk run
  - DashboardSnapshot: Read-only copy of DashboardState for rendering
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# Lifecycle actions accepted by the bulk executor
BULK_ACTIONS = ("start", "stop", "restart", "remove")


@dataclass(frozen=True)
class PortMapping:
    private_port: int
    public_port: Optional[int] = None
    protocol: str = "tcp"

    def __str__(self) -> str:
        if self.public_port:
            return f"{self.public_port}->{self.private_port}/{self.protocol}"
        return f"{self.private_port}/{self.protocol}"


@dataclass(frozen=True)
class ContainerSnapshot:
    id: str
    short_id: str
    name: str
    image: str
    status: str  # human readable, e.g. "Up 2 hours"
    state: str  # running, exited, paused, created, restarting, dead
    ports: Tuple[PortMapping, ...] = ()
    created: str = ""

    @property
    def is_running(self) -> bool:
        return self.state == "running"


@dataclass(frozen=True)
class ContainerStats:
    cpu_percent: float = 0.0
    mem_percent: float = 0.0
    mem_usage: str = "--"
    net_io: str = "--"
    block_io: str = "--"
    pids: int = 0


@dataclass(frozen=True)
class BulkProgress:
    action: str
    index: int  # number of items processed so far
    total: int
    succeeded: int
    failed: int
    current_id: str = ""


@dataclass(frozen=True)
class BulkOperationResult:
    action: str
    total: int
    succeeded: int
    failed: int
    failures: Tuple[Tuple[str, str], ...] = ()  # (container id, error message)


@dataclass(frozen=True)
class DashboardSnapshot:
    containers: Tuple[ContainerSnapshot, ...] = ()
    focused_index: Optional[int] = None
    version: int = 0
    message: str = ""
    is_error: bool = False

    @property
    def focused(self) -> Optional[ContainerSnapshot]:
        if self.focused_index is None:
            return None
        return self.containers[self.focused_index]

    @property
    def running_count(self) -> int:
        return sum(1 for c in self.containers if c.is_running)
