"""Logging utilities for fleetd.

Every daemon process builds its own structlog logger here instead of
configuring structlog globally. Forked workers therefore never share
logger state with their parent: each one binds its own role and pid and
writes JSON or text lines to stderr or to a (optionally rotated) file.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from os import getenv
from pathlib import Path
from typing import Literal, cast

import structlog
from structlog.typing import FilteringBoundLogger, Processor

LogFormatType = Literal["json", "text"]


def _log_level_from_string(level: str, *, respect_env: bool = False) -> int:
    """Convert a log level name to a logging level integer.

    Unknown names fall back to INFO.

    Args:
        level: Log level name (debug, info, warning, error).
        respect_env: If True, FLEETD_DEBUG forces DEBUG.
    """
    if respect_env and getenv("FLEETD_DEBUG", None):
        return logging.DEBUG

    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


def _rotating_sink(
    path: Path, level: int, max_bytes: int, backup_count: int
) -> logging.Logger:
    sink = logging.getLogger(f"fleetd.rotating.{path.name}.{id(path)}")
    sink.handlers.clear()
    sink.propagate = False
    sink.setLevel(level)

    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    sink.addHandler(handler)
    return sink


def _open_sink(
    log_file_path: str | None,
    level: int,
    max_bytes: int | None,
    backup_count: int | None,
) -> object:
    if not log_file_path:
        return structlog.PrintLoggerFactory(file=sys.stderr)()

    path = Path(log_file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Rotation needs both limits.
    if max_bytes is not None and backup_count is not None:
        return _rotating_sink(path, level, max_bytes, backup_count)
    return structlog.WriteLoggerFactory(file=path.open("a"))()


def _processors(log_format: LogFormatType) -> list[Processor]:
    chain: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        chain += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=False))
    return chain


def _create_logger(
    log_file_path: str | None,
    *,
    log_level: int = logging.INFO,
    log_format: LogFormatType = "json",
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> FilteringBoundLogger:
    """Create a standalone structlog logger.

    Args:
        log_file_path: File to append to, or None/empty for stderr.
        log_level: Minimum level that is emitted.
        log_format: Output format, either "json" or "text".
        max_bytes: Rotate the file after this many bytes.
        backup_count: Number of rotated files to keep.
    """
    sink = _open_sink(log_file_path, log_level, max_bytes, backup_count)
    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            sink,
            processors=_processors(log_format),
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            context_class=dict,
        ),
    )


def create_daemon_logger(
    *,
    role: str,
    level: str = "info",
    log_format: LogFormatType = "text",
    log_file: str = "",
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> FilteringBoundLogger:
    """Create the logger for one daemon process.

    Entries carry the process role and the pid of the calling process, so
    a forked child must build its own logger rather than reuse its
    parent's. Setting FLEETD_DEBUG enables DEBUG regardless of level.

    Args:
        role: Role of the process, bound to all entries.
        level: Log level threshold (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        log_file: Path to log file (stderr if empty).
        max_bytes: Rotate the log file after this many bytes.
        backup_count: Number of rotated log files to keep.
    """
    logger = _create_logger(
        log_file,
        log_level=_log_level_from_string(level, respect_env=True),
        log_format=log_format,
        max_bytes=max_bytes,
        backup_count=backup_count,
    )
    return logger.bind(role=role, pid=os.getpid())
