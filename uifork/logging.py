"""Logging setup shared by the uifork CLI and the watch server."""

from __future__ import annotations

import logging
from pathlib import Path

_ROOT = "uifork"
_CONSOLE_FORMAT = "[uifork] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """``get_logger("watcher")`` returns the ``uifork.watcher`` logger."""
    return logging.getLogger(f"{_ROOT}.{name}" if name else _ROOT)


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, fmt: str) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    logger.addHandler(handler)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send ``uifork.*`` records to stderr, and to ``log_file`` when one is given.

    Safe to call more than once; ``init`` hands over to ``watch`` in the same process.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers.clear()

    _attach(logger, logging.StreamHandler(), level, _CONSOLE_FORMAT)
    if log_file is not None:
        _attach(logger, logging.FileHandler(log_file, encoding="utf-8"), level, _FILE_FORMAT)
    return logger


__all__ = ["configure_logging", "get_logger"]
