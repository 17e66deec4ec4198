"""Logging for the billing API.

Ledger and share mutations log through the module loggers of the services;
this module routes them to stdout and to settings.log_file at
settings.log_level.
"""

import logging
import sys
from pathlib import Path

from marketplace.config import settings

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine")


def get_log_level(name: str | None = None) -> int:
    """Resolve a level name, defaulting to settings.log_level.

    Unknown names fall back to INFO.
    """
    level = logging.getLevelName((name or settings.log_level).strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_server_logging(log_file: str | None = None, level: str | None = None) -> None:
    """Replace the root handlers with a stdout and a file handler.

    Args:
        log_file: Log file path (default: settings.log_file); parents are created
        level: Level name (default: settings.log_level)
    """
    log_path = Path(log_file or settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_level = get_log_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    if not settings.database_echo:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
