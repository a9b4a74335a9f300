"""
YAML settings for dockdash.

Settings live in ~/.config/dockdash/config.yaml and are layered over the
dataclass defaults below, one section at a time:

  keybindings  Textual key name per dashboard action
  ui           redraw cadence, message lifetime, chart sizes
  docker       polling intervals, stop timeout, history/log sizes
  logging      level, file override, rotation

A missing file is created with the defaults. A broken file, or a value of
the wrong type, never stops the dashboard: the affected value (or the
whole file) falls back to its default and the problem is logged.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class KeyBindings:
    """Textual key names, one per action. Matching is case-sensitive."""
    quit: str = "q"
    help: str = "question_mark"
    up: str = "up"
    down: str = "down"
    start_stop: str = "s"
    restart: str = "r"
    delete: str = "d"
    inspect: str = "i"
    logs: str = "l"
    exec: str = "e"
    health: str = "h"
    export_logs: str = "x"
    reset_stats: str = "R"
    pause_stats: str = "p"
    bulk_mode: str = "b"
    select_toggle: str = "space"
    select_all: str = "A"
    bulk_actions: str = "a"
    leave_bulk: str = "backspace"
    refresh: str = "f5"


@dataclass
class UIConfig:
    redraw_interval: float = 0.25  # seconds between version checks
    message_ttl: float = 3.0
    graph_width: int = 30
    chart_height: int = 8


@dataclass
class DockerConfig:
    refresh_interval: float = 5.0
    stats_interval: float = 2.0
    stop_timeout: int = 10
    history_capacity: int = 30
    log_tail: int = 500
    export_dir: str = "./container-logs"


@dataclass
class LogConfig:
    level: str = "INFO"
    file_path: Optional[str] = None  # XDG data dir when unset
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class AppConfig:
    keybindings: KeyBindings = field(default_factory=KeyBindings)
    ui: UIConfig = field(default_factory=UIConfig)
    docker: DockerConfig = field(default_factory=DockerConfig)
    logging: LogConfig = field(default_factory=LogConfig)


# Values that must stay strictly positive
POSITIVE_SETTINGS = {
    "ui": ("redraw_interval", "graph_width", "chart_height"),
    "docker": ("refresh_interval", "stats_interval", "history_capacity", "log_tail"),
    "logging": ("max_size_mb",),
}

# Inclusive bounds for settings with a fixed range
BOUNDED_SETTINGS = {
    "docker": {"history_capacity": (30, 60)},
}


def _coerce(default: Any, value: Any) -> Any:
    """Convert a YAML value to the type of the default it replaces."""
    if default is None:
        return None if value is None else str(value)
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise TypeError(f"expected true/false, got {value!r}")
        return value
    if isinstance(default, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"expected a number, got {value!r}")
        return type(default)(value)
    return str(value)


class ConfigManager:
    """Loads, validates and saves the settings file."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else Path.home() / ".config" / "dockdash"
        self.config_file = self.config_dir / "config.yaml"
        self._config = AppConfig()

    def load_config(self) -> AppConfig:
        """Read the settings file (writing defaults on first run)."""
        if not self.config_file.exists():
            self._config = AppConfig()
            self.save_config()
            logger.info(f"Wrote default settings to {self.config_file}")
            return self._config

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Cannot read {self.config_file}: {e}; using defaults")
            self._config = AppConfig()
            return self._config

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            logger.error(f"{self.config_file} must contain a mapping; using defaults")
            self._config = AppConfig()
            return self._config

        self._config = self._apply(raw)
        logger.debug(f"Loaded settings from {self.config_file}")
        return self._config

    def save_config(self) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                yaml.safe_dump(asdict(self._config), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            logger.error(f"Cannot write {self.config_file}: {e}")

    def get_config(self) -> AppConfig:
        return self._config

    def _apply(self, raw: Dict[str, Any]) -> AppConfig:
        config = AppConfig()
        for section in fields(AppConfig):
            values = raw.get(section.name)
            if values is None:
                continue
            if not isinstance(values, dict):
                logger.warning(f"Section '{section.name}' is not a mapping; keeping defaults")
                continue
            self._apply_section(section.name, getattr(config, section.name), values)
        unknown = set(raw) - {f.name for f in fields(AppConfig)}
        for name in sorted(unknown):
            logger.warning(f"Ignoring unknown settings section: {name}")
        return config

    def _apply_section(self, name: str, target: Any, values: Dict[str, Any]) -> None:
        known = {f.name for f in fields(target)}
        for key, value in values.items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting {name}.{key}")
                continue
            default = getattr(target, key)
            try:
                value = _coerce(default, value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid value for {name}.{key}: {e}; keeping {default!r}")
                continue
            if key in POSITIVE_SETTINGS.get(name, ()) and value <= 0:
                logger.warning(f"{name}.{key} must be positive; keeping {default!r}")
                continue
            bounds = BOUNDED_SETTINGS.get(name, {}).get(key)
            if bounds and not bounds[0] <= value <= bounds[1]:
                logger.warning(f"{name}.{key} must be between {bounds[0]} and {bounds[1]}; "
                               f"keeping {default!r}")
                continue
            setattr(target, key, value)

    # --- accessors ---

    def get_key_binding(self, action: str) -> str:
        return getattr(self._config.keybindings, action, '')

    def action_for_key(self, key: str) -> Optional[str]:
        """Reverse lookup: the action bound to ``key``, if any."""
        for action, binding in asdict(self._config.keybindings).items():
            if binding == key:
                return action
        return None

    def get_log_level(self) -> str:
        return str(self._config.logging.level).upper()

    def get_custom_log_path(self) -> Optional[str]:
        return self._config.logging.file_path
