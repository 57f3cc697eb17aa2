"""Logging utilities for ovpnsvc.

This module provides standalone structlog logger factories that write
JSON-formatted or text-formatted logs either to the console or to a log
file. Each logger is self-contained and does not modify global structlog
configuration.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Literal, TextIO, cast

import structlog

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ovpnsvc.config import LoggingConfig

LogFormatType = Literal["json", "text"]


def _resolve_log_level(level: str | None = None) -> int:
    """Return the effective log level.

    OVPNSVC_DEBUG wins over everything. A level from the settings file comes
    next, then OVPNSVC_LOG_LEVEL. Unknown names and unset values mean INFO.

    Args:
        level: Level name from the settings file, or None if it was not set.
    """
    if getenv("OVPNSVC_DEBUG"):
        return logging.DEBUG

    name = level or getenv("OVPNSVC_LOG_LEVEL") or "info"
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _create_logger(
    log_file_path: str = "",
    *,
    log_level: int | None = None,
    log_format: LogFormatType = "text",
    max_bytes: int | None = None,
    backup_count: int | None = None,
    stream: TextIO | None = None,
) -> FilteringBoundLogger:
    """Create a standalone structlog logger.

    Args:
        log_file_path: Path to the log file. Logs go to ``stream`` (stderr by
            default) when empty.
        log_level: Override log level (uses env vars if not specified).
        log_format: Output format, either "json" or "text".
        max_bytes: Maximum size in bytes before rotation. Must be set with
            backup_count for rotation to be enabled.
        backup_count: Number of rotated log files to keep. Must be set with
            max_bytes for rotation to be enabled.
        stream: Console stream used when no log file is given.

    Returns:
        A configured FilteringBoundLogger instance.
    """
    effective_level = log_level if log_level is not None else _resolve_log_level()

    raw_logger: object
    if not log_file_path:
        raw_logger = structlog.PrintLoggerFactory(file=stream or sys.stderr)()
    else:
        log_path = Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        if max_bytes is not None and backup_count is not None:
            # Rotation goes through a private stdlib logger
            stdlib_logger = logging.getLogger(f"ovpnsvc.{log_path.stem}.{id(log_path)}")
            stdlib_logger.handlers.clear()
            stdlib_logger.propagate = False
            stdlib_logger.setLevel(effective_level)

            handler = RotatingFileHandler(
                log_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            handler.setLevel(effective_level)
            handler.setFormatter(logging.Formatter("%(message)s"))
            stdlib_logger.addHandler(handler)
            raw_logger = stdlib_logger
        else:
            raw_logger = structlog.WriteLoggerFactory(file=log_path.open("a"))()

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        # "timestamp [level] event key=value ..."
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    wrapper_class = structlog.make_filtering_bound_logger(effective_level)

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            raw_logger,
            processors=processors,
            wrapper_class=wrapper_class,
            context_class=dict,
        ),
    )


def create_service_logger(
    config: LoggingConfig | None = None,
    *,
    stream: TextIO | None = None,
) -> FilteringBoundLogger:
    """Create the supervisor's logger from logging settings.

    Logs go to the configured file, or to the console when no file is
    configured. OVPNSVC_DEBUG forces DEBUG level and OVPNSVC_LOG_LEVEL
    applies when the settings leave the level unset.

    Args:
        config: Logging settings. Defaults apply if None.
        stream: Console stream override, used when no log file is set.

    Returns:
        A FilteringBoundLogger instance.
    """
    if config is None:
        return _create_logger(stream=stream)

    return _create_logger(
        config.file,
        log_level=_resolve_log_level(config.level.value if config.level else None),
        log_format=cast("LogFormatType", config.format.value),
        max_bytes=config.max_bytes,
        backup_count=config.backup_count,
        stream=stream,
    )
