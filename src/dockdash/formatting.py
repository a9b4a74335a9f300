"""Formatting utilities for consistent output across backend and UI."""

from typing import Any, Dict, Iterable, List

from .model import PortMapping


def format_bytes(num: float) -> str:
    """Format a byte count with binary units.

    Returns:
        "512 B", "1.50 KB", "2.00 GB", ...
    """
    unit = 1024
    if num < unit:
        return f"{int(num)} B"
    value = float(num)
    for suffix in "KMGTPE":
        value /= unit
        if value < unit or suffix == "E":
            return f"{value:.2f} {suffix}B"
    return f"{value:.2f} EB"


def format_ports(ports: Iterable[PortMapping]) -> str:
    ports = list(ports)
    if not ports:
        return "none"
    return ", ".join(str(p) for p in ports)


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as H:MM:SS."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def format_inspect(attrs: Dict[str, Any]) -> List[str]:
    """Render the interesting parts of an inspect payload as text lines."""
    state = attrs.get('State') or {}
    config = attrs.get('Config') or {}
    network = attrs.get('NetworkSettings') or {}
    host = attrs.get('HostConfig') or {}

    lines = [
        "Basic Information",
        f"  ID:           {attrs.get('Id', '')[:12]}",
        f"  Name:         {attrs.get('Name', '').lstrip('/')}",
        f"  Image:        {config.get('Image', '')}",
        f"  Created:      {attrs.get('Created', '')}",
        f"  Status:       {state.get('Status', '')}",
        "",
        "State",
        f"  Running:      {state.get('Running', False)}",
        f"  Paused:       {state.get('Paused', False)}",
        f"  Restarting:   {state.get('Restarting', False)}",
        f"  PID:          {state.get('Pid', 0)}",
        f"  Exit Code:    {state.get('ExitCode', 0)}",
        f"  Started At:   {state.get('StartedAt', '')}",
        f"  Finished At:  {state.get('FinishedAt', '')}",
        "",
        "Network Settings",
        f"  IP Address:   {network.get('IPAddress', '')}",
        f"  Gateway:      {network.get('Gateway', '')}",
        f"  MAC Address:  {network.get('MacAddress', '')}",
        f"  Ports:        {network.get('Ports') or {}}",
        "",
        "Resource Limits",
        f"  Memory:       {(host.get('Memory') or 0) // (1024 * 1024)} MB",
        f"  CPU Shares:   {host.get('CpuShares') or 0}",
        "",
        "Mounts",
    ]
    for mount in attrs.get('Mounts') or []:
        lines.append(f"  {mount.get('Source', '')} -> {mount.get('Destination', '')} ({mount.get('Type', '')})")

    lines.append("")
    lines.append("Environment Variables")
    for env in config.get('Env') or []:
        lines.append(f"  {env}")

    labels = config.get('Labels') or {}
    if labels:
        lines.append("")
        lines.append("Labels")
        for key, value in labels.items():
            lines.append(f"  {key}: {value}")
    return lines
