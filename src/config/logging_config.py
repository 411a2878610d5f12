# src/config/logging_config.py

"""Per-run timestamped logging configuration for listing_watch.

Each process launch creates a dedicated log file inside ``logs/``,
named with the launch timestamp (e.g. ``logs/run_20260214_153045.log``).
Every ``listing_watch.*`` logger (coordinator, orchestrator,
verification workers, fetchers, stores, notifiers) propagates into the
project root logger, so one file holds the whole run.

The console only shows warnings unless ``-v`` is passed; a monitor that
verifies hundreds of listings an hour would otherwise flood stderr.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

ROOT_LOGGER_NAME = "listing_watch"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _file_handler(log_file: Path) -> logging.Handler:
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )
    return handler


def setup_logging(console_level: int = logging.WARNING) -> Path:
    """Attach the run's file and console handlers to ``listing_watch``.

    Args:
        console_level: Minimum level echoed to stderr.

    Returns:
        The :class:`~pathlib.Path` of this run's log file.
    """
    Settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = Settings.LOGS_DIR / f"run_{stamp}.log"

    project_logger = logging.getLogger(ROOT_LOGGER_NAME)
    project_logger.setLevel(logging.DEBUG)

    # Already configured earlier in this process
    if project_logger.handlers:
        return log_file

    project_logger.addHandler(_file_handler(log_file))
    project_logger.addHandler(_console_handler(console_level))
    project_logger.info("Logging initialised, log file: %s", log_file)
    return log_file
