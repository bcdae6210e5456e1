"""Logging setup for the back office.

Modules log through ``logging.getLogger(__name__)``, so configuring the
``backoffice`` logger once routes the whole package tree: the API, the
engine and the Celery tasks. Output goes to the console and, when
``log_to_file`` is set, to a size-rotated ``backoffice.log``.
"""

import logging
import logging.handlers
import os
from typing import List, Optional

PACKAGE_LOGGER = "backoffice"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"  # ISO 8601
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logger(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    *,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach handlers to the ``backoffice`` logger.

    Calling it again only changes the level; handlers are added once.

    Args:
        level: Logging level name
        log_dir: Directory for ``backoffice.log``; console only when None
        max_bytes: Size at which the log file is rotated
        backup_count: Rotated files to keep

    Raises:
        ValueError: If the level is not a known level name
    """
    if level.upper() not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper())
    if logger.handlers:
        return logger

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{PACKAGE_LOGGER}.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_from_settings(settings) -> logging.Logger:
    """Configure package logging from ``log_level``, ``log_dir`` and ``log_to_file``."""
    return setup_logger(settings.log_level, settings.log_dir if settings.log_to_file else None)
