"""
dockdash - A live terminal dashboard for Docker containers.

This package observes the containers of a Docker host, samples the metrics of
the focused container, and applies single or bulk lifecycle actions without
blocking the interface.

Features:
  - Container list refreshed in the background
  - Live CPU/RAM sparklines, bars and trend chart for the focused container
  - Bulk mode: multi-select and sequential start/stop/restart/delete
  - Logs, inspect, exec and health check for a single container

Main Components:
  - dashboard.py: Controller owning state, selection, history and workers
  - state.py: Thread-safe dashboard state and background workers
  - history.py: Rolling CPU/RAM history
  - selection.py: Bulk-mode selection
  - bulk.py: Sequential bulk action executor
  - backend.py: Docker API wrapper
  - app.py: Textual rendering and key routing

Usage:
  python -m dockdash

Dependencies:
  - docker>=7.0.0
  - textual
  - PyYAML
  - Python 3.10+
"""

import os
from pathlib import Path

__version__ = "0.1.0"


def get_log_path() -> str:
    """
    Get the log file path under the XDG data directory.

    Returns XDG_DATA_HOME/dockdash/logs/dockdash.log with fallback to /tmp.
    Creates directory if it doesn't exist.
    """
    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if not xdg_data_home:
        xdg_data_home = Path.home() / '.local' / 'share'
    else:
        xdg_data_home = Path(xdg_data_home)

    log_dir = xdg_data_home / 'dockdash' / 'logs'

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return str(log_dir / 'dockdash.log')
    except (PermissionError, OSError):
        return '/tmp/dockdash.log'
