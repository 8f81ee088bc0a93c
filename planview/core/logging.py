"""Logging for planview.

Every module logs through a child of the ``planview`` logger
(``planview.parsing.task_status``, ``planview.web.server``...).
``setup_logging`` is called once by the entry point and attaches a stdout
handler plus, when ``LOG_FILE`` is set, a rotating file handler.  Library use
and tests never call it, so records propagate to the root logger as usual.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from planview.core.config import Settings, get_settings

ROOT_LOGGER = "planview"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

_configured = False


def setup_logging(settings: Settings | None = None) -> logging.Logger:
    """Attach planview's handlers.  Later calls return the configured logger."""
    global _configured
    logger = logging.getLogger(ROOT_LOGGER)
    if _configured:
        return logger

    settings = settings or get_settings()
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _configured = True
    logger.info("planview logging ready (level=%s, file=%s)", settings.log_level, settings.log_file or "-")
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger for *name*, placed under ``planview.`` unless it already is."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
