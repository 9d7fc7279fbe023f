"""Logging configuration for the self-updater.

structlog is configured on top of the standard library so that output from
third-party packages (httpx) goes through the same handlers. Console output is
human-readable in development and JSON otherwise; when the config names a log
file, JSON lines are also written to a rotating file.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from self_updater.config import LoggingConfig, get_settings
from self_updater.constants import DEFAULT_LOG_BACKUP_COUNT, DEFAULT_LOG_MAX_BYTES

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def resolve_level(name: str | None) -> int:
    """Map a config level name to a stdlib level, defaulting to INFO."""
    if not name:
        return logging.INFO
    return _LEVELS.get(name.strip().lower(), logging.INFO)


def setup_logging(logging_config: LoggingConfig | None = None) -> None:
    """Configure structured logging.

    ``UPDATER_LOG_LEVEL`` takes precedence over the config file's level.
    """
    settings = get_settings()
    logging_config = logging_config or LoggingConfig()
    log_level = resolve_level(settings.log_level or logging_config.level)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if settings.is_development
        else structlog.processors.JSONRenderer()
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                console_renderer,
            ],
        )
    )

    logging.basicConfig(format="%(message)s", level=log_level, handlers=[])
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(log_level)
    root.addHandler(console_handler)

    if logging_config.file:
        file_handler = _build_file_handler(logging_config.file, shared_processors)
        if file_handler is not None:
            root.addHandler(file_handler)

    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_file_handler(
    file: str,
    shared_processors: list[structlog.types.Processor],
) -> RotatingFileHandler | None:
    path = Path(file).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=DEFAULT_LOG_MAX_BYTES,
            backupCount=DEFAULT_LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as exc:
        # Fall back to console-only logging.
        print(f"Unable to open log file {path}: {exc}", file=sys.stderr)
        return None

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
        )
    )
    return handler


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
