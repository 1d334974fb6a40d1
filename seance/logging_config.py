"""Logging setup for hosts and the ``python -m seance`` entry point.

The library itself only ever calls ``logging.getLogger(__name__)``; embedding
applications that configure logging on their own never need this module.
"""

from __future__ import annotations

import atexit
import logging
import queue
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path

from seance.log_context import ContextFilter

MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 3
LOG_FILE_NAME = "seance.log"

CONSOLE_FMT = "%(asctime)s %(levelname)s %(name)s: %(ctx)s%(message)s"
FILE_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(ctx)s%(message)s"

logger = logging.getLogger(__name__)

_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[35m",
}
_RESET = "\x1b[0m"

_listener: QueueListener | None = None


def _stop_listener() -> None:
    global _listener  # noqa: PLW0603
    if _listener is not None:
        _listener.stop()
        _listener = None


atexit.register(_stop_listener)


class _ColorFormatter(logging.Formatter):
    """Pads level names and colors them when writing to a terminal."""

    def __init__(self, fmt: str, *, use_color: bool) -> None:
        super().__init__(fmt, datefmt="%H:%M:%S")
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        saved = record.levelname
        padded = f"{saved:<8}"
        if self._use_color:
            padded = f"{_LEVEL_COLORS.get(record.levelno, '')}{padded}{_RESET}"
        record.levelname = padded
        try:
            return super().format(record)
        finally:
            record.levelname = saved


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _console_handler(level: int, ctx_filter: logging.Filter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(ctx_filter)
    use_color = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
    handler.setFormatter(_ColorFormatter(CONSOLE_FMT, use_color=use_color))
    return handler


def _file_handler(log_dir: Path, ctx_filter: logging.Filter) -> logging.Handler:
    """Queue-backed rotating file handler so disk writes stay off the event loop."""
    global _listener  # noqa: PLW0603
    log_dir.mkdir(parents=True, exist_ok=True)
    rotating = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    rotating.setLevel(logging.DEBUG)
    rotating.setFormatter(logging.Formatter(FILE_FMT))

    records: queue.Queue[logging.LogRecord] = queue.Queue()
    handler = QueueHandler(records)
    handler.setLevel(logging.DEBUG)
    handler.addFilter(ctx_filter)

    _listener = QueueListener(records, rotating, respect_handler_level=True)
    _listener.start()
    return handler


def setup_logging(
    level: int | str = logging.INFO,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure the root logger with a console handler and optional log file.

    Args:
        level: Minimum console level, as a number or a name like ``"INFO"``.
        verbose: Force DEBUG regardless of *level*.
        log_dir: Directory for ``seance.log``. If None, file logging is skipped.
    """
    resolved = logging.DEBUG if verbose else _resolve_level(level)
    _stop_listener()

    ctx_filter = ContextFilter()
    root = logging.getLogger()
    root.setLevel(resolved)
    root.handlers.clear()

    if sys.stderr is not None:
        root.addHandler(_console_handler(resolved, ctx_filter))
    if log_dir is not None:
        root.addHandler(_file_handler(log_dir, ctx_filter))

    logging.getLogger("redis").setLevel(logging.WARNING)

    logger.info("Logging initialized (level=%s)", logging.getLevelName(resolved))
