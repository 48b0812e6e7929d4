"""Logging setup shared by the routers and utilities."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from georeport import config

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_logging_configured = False
_logging_lock = threading.Lock()

_logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Install the stderr handler (and the optional file handler) once."""
    global _logging_configured

    with _logging_lock:
        if _logging_configured:
            return
        _install_handlers()
        _logging_configured = True


def _install_handlers() -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if config.LOG_FILE:
        try:
            Path(config.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(config.LOG_FILE)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", config.LOG_FILE, exc)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
