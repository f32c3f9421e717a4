"""Logging for the bridge.

One ``codex_localhost`` logger is shared by the executor, the config
loader and both HTTP apps. It has no handlers unless asked for:

- ``CODEX_LOCALHOST_LOG_FILE`` attaches a file handler at DEBUG, which
  records every parsed codex event.
- ``configure_console()`` (called by the server entry points) attaches a
  stderr handler at INFO, so consoles show run start and settlement lines
  but not the per-event noise.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "codex_localhost"
LOG_FILE_ENV = "CODEX_LOCALHOST_LOG_FILE"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ENABLE_VALUES = ("1", "true", "yes", "on")

# Global logger instance (singleton)
_logger: Optional[logging.Logger] = None


def get_logger() -> logging.Logger:
    """Get or create the bridge logger."""
    global _logger
    if _logger is None:
        _logger = _setup_logger()
    return _logger


def log_file_path(value: Optional[str], now: Optional[datetime] = None) -> Optional[Path]:
    """Resolve a ``CODEX_LOCALHOST_LOG_FILE`` value to a log file path.

    An on/true/yes/1 flag picks a dated file under ``./logs``; any other
    non-empty value is taken as the path itself. Empty means no file.
    """
    if not value:
        return None
    if value.lower() in _ENABLE_VALUES:
        stamp = (now or datetime.now()).strftime("%Y-%m-%d")
        return Path.cwd() / "logs" / f"codex_localhost_{stamp}.log"
    return Path(value).expanduser()


def _setup_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    log_path = log_file_path(os.environ.get(LOG_FILE_ENV))
    if log_path is None:
        return logger

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as e:
        # Keep the records visible even if the file is unusable
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(f"Failed to setup log file {log_path}: {e} | %(message)s"))
        logger.addHandler(stream_handler)
        return logger

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)
    return logger


def configure_console(level: int = logging.INFO) -> logging.Logger:
    """Attach a stderr handler to the bridge logger for server processes.

    Records stop propagating to the root logger so uvicorn's own console
    setup does not print them twice. Calling it again is a no-op.
    """
    logger = get_logger()
    for handler in logger.handlers:
        if getattr(handler, "_codex_console", False):
            return logger

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    console._codex_console = True
    logger.addHandler(console)
    logger.propagate = False
    return logger
