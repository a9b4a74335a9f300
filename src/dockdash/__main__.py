import logging

from .app import run
from .config import ConfigManager
from .logging_setup import setup_logging


def main() -> None:
    config_manager = ConfigManager()
    config_manager.load_config()
    log_path = setup_logging(config_manager)
    logging.info(f"Starting dockdash, logging to {log_path}")
    try:
        run(config_manager, log_path)
    except KeyboardInterrupt:
        logging.info("KeyboardInterrupt caught, exiting...")
    logging.info("dockdash stopped")


if __name__ == "__main__":
    main()
