"""File logging setup; the terminal belongs to the TUI, so nothing goes to stderr."""

import logging
import logging.handlers

from . import get_log_path
from .config import ConfigManager

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(config_manager: ConfigManager) -> str:
    """Install a rotating file handler on the root logger; returns the log path."""
    log_cfg = config_manager.get_config().logging
    path = config_manager.get_custom_log_path() or get_log_path()
    level = getattr(logging, config_manager.get_log_level(), logging.INFO)

    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max(1, int(log_cfg.max_size_mb)) * 1024 * 1024,
        backupCount=int(log_cfg.backup_count),
        encoding='utf-8',
    )
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[handler], force=True)
    # docker-py/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return path
