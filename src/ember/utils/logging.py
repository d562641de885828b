"""Logging setup for hosts embedding the engine."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["default_log_dir", "get_log_path", "reset_logging", "setup_logging"]

LOG_DIR_ENV = "EMBER_LOG_DIR"
LOG_FILE_NAME = "ember.log"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_PATH: Path | None = None
_HANDLERS: list[logging.Handler] = []


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Configure root logging with a rotating file and an optional console handler.

    Repeated calls return the existing log path unless ``force`` is set.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    numeric_level = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    target_dir = Path(log_dir).expanduser() if log_dir else default_log_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILE_NAME

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)
    handlers: list[logging.Handler] = []
    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    handlers.append(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    quiet_level = max(numeric_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)

    _HANDLERS[:] = handlers
    _LOG_PATH = log_path
    return log_path


def default_log_dir() -> Path:
    """``$EMBER_LOG_DIR`` or ``~/.ember/logs``."""

    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".ember" / "logs"


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH


def reset_logging() -> None:
    """Detach handlers installed by :func:`setup_logging`."""

    global _LOG_PATH
    root = logging.getLogger()
    for handler in _HANDLERS:
        root.removeHandler(handler)
        handler.close()
    _HANDLERS.clear()
    logging.captureWarnings(False)
    _LOG_PATH = None
