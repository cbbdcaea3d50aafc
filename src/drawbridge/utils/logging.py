"""Logging configuration for the Drawbridge engine and CLI."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["setup_logging", "get_log_path", "resolve_level"]

_DEFAULT_LOG_DIR = Path.home() / ".drawbridge" / "logs"
_LOG_FILENAME = "drawbridge.log"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
# asyncio logs every slow callback at DEBUG; keep it out of debug sessions.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio",)
_LOG_PATH: Path | None = None


def resolve_level(level: int | str) -> int:
    """Turn ``"debug"`` / ``"WARNING"`` / ``10`` into a logging level."""

    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Attach a rotating file handler (and optionally stderr) to the root logger.

    Calling it again is a no-op unless ``force`` is set, so the CLI can upgrade
    to debug logging after settings are read.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    numeric_level = resolve_level(level)
    target_dir = Path(log_dir or os.environ.get("DRAWBRIDGE_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILENAME

    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    quiet_level = max(numeric_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the active log file, if logging has been configured."""

    return _LOG_PATH
