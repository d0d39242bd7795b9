"""Logging setup for the sync layer and its command line tool.

Everything under the ``qcsync`` logger goes to ``qcsync.log`` in the
application log directory.  The retry loop already logs one warning per
failed attempt, so the HTTP libraries underneath are held at ``WARNING`` to
keep an offline session from flooding the file with connection-pool chatter.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from qcsync import app_paths

PACKAGE_LOGGER = "qcsync"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
NOISY_LOGGERS = ("urllib3", "google.auth")

_LOG_PATH: Optional[Path] = None


def _has_file_handler(logger: logging.Logger, log_path: Path) -> bool:
    target = str(log_path.resolve())
    return any(
        isinstance(handler, logging.FileHandler) and getattr(handler, "baseFilename", None) == target
        for handler in logger.handlers
    )


def _has_console_handler(logger: logging.Logger) -> bool:
    return any(
        type(handler) is logging.StreamHandler and getattr(handler, "stream", None) is sys.stderr
        for handler in logger.handlers
    )


def configure_logging(
    level: int = logging.INFO,
    path: Optional[Path] = None,
    *,
    console: bool = False,
) -> Path:
    """Attach the ``qcsync.log`` file handler and return the log path.

    Calling this again is safe: handlers are only added once per file, and a
    later call may lower the level or switch the stderr mirror on.
    """

    global _LOG_PATH

    log_path = Path(path) if path is not None else app_paths.logs_path("qcsync.log")
    log_path.parent.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.level == logging.NOTSET or level < package_logger.level:
        package_logger.setLevel(level)

    if not _has_file_handler(package_logger, log_path):
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(file_handler)

    if console and not _has_console_handler(package_logger):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        package_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _LOG_PATH = log_path
    package_logger.debug("Logging to %s", log_path)
    return log_path


def get_log_path() -> Path:
    """Return the active log file, falling back to the default location."""

    if _LOG_PATH is None:
        return app_paths.logs_path("qcsync.log")
    return _LOG_PATH


__all__ = ["configure_logging", "get_log_path", "LOG_FORMAT", "PACKAGE_LOGGER"]
