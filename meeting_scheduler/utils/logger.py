"""Logging setup shared by the scheduler API, engine and commit path."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from meeting_scheduler.utils.config import get_settings


ROOT_LOGGER_NAME = "meeting_scheduler"

# Thread name distinguishes concurrent commits for the same room.
LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"

_handler: Optional[logging.Handler] = None


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stdout handler to the package logger on first use.

    Passing ``level`` later only adjusts the threshold.
    """

    global _handler
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(_handler)
        level = level or get_settings().log_level
    if level:
        root.setLevel(level.upper())
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger under the package namespace; top-level modules are nested in it."""
    configure_logging()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
