"""Logging for the ``rsched`` command line tool.

Library modules only call ``logging.getLogger(__name__)`` and never install
handlers. The CLI calls `setup_logging` once per run: records go to stderr
through rich, and with ``--log-dir`` also to a size-rotated ``rsched.log``.
Both handlers stamp records with the ``[op:key]`` prefix from
`rsched.log_context`.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from rsched.log_context import ContextFilter

LOG_FILE = "rsched.log"
MAX_BYTES = 1024 * 1024
BACKUP_COUNT = 3

FILE_FMT = "%(asctime)s %(levelname)-8s %(name)s: %(ctx)s%(message)s"

# Handlers installed here carry this name prefix so a second call replaces them.
_HANDLER_PREFIX = "rsched."

# The client logs its own request lines; aiohttp would repeat each one.
_QUIET_LOGGERS = ("aiohttp.access", "aiohttp.client")


def _console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        level=level,
        show_path=False,
        markup=False,
        log_time_format="[%X]",
    )
    handler.setFormatter(logging.Formatter("%(ctx)s%(message)s"))
    handler.set_name(f"{_HANDLER_PREFIX}console")
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FMT))
    handler.set_name(f"{_HANDLER_PREFIX}file")
    return handler


def remove_handlers() -> None:
    """Detach and close every handler a previous `setup_logging` installed."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith(_HANDLER_PREFIX):
            root.removeHandler(handler)
            handler.close()


def setup_logging(
    *,
    verbose: bool = False,
    log_dir: Path | None = None,
    level: int = logging.WARNING,
) -> None:
    """Install the console handler and, with *log_dir*, the rotating file handler.

    *verbose* lowers the console to DEBUG. The file always records DEBUG so a
    failed run can be diagnosed after the fact. Handlers that do not belong
    to rsched (a test runner's capture handler, say) are left alone.
    """
    if verbose:
        level = logging.DEBUG
    remove_handlers()

    handlers = [_console_handler(level)]
    if log_dir is not None:
        handlers.append(_file_handler(log_dir))

    ctx_filter = ContextFilter()
    root = logging.getLogger()
    for handler in handlers:
        handler.addFilter(ctx_filter)
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if log_dir is not None else level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging ready (console=%s, file=%s)",
        logging.getLevelName(level),
        log_dir / LOG_FILE if log_dir is not None else "off",
    )
