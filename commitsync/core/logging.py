"""Structured logging configuration — structlog + stdlib logging."""

from __future__ import annotations

import logging
import logging.config
import os
from collections.abc import MutableMapping
from typing import Any

import structlog

# Event keys whose values must never reach a log sink.
SECRET_KEYS = frozenset({"authorization", "credential", "credential_token", "password", "token"})

_QUIET_LOGGERS = {
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "sqlalchemy.engine": "WARNING",
    "asyncpg": "WARNING",
    "botocore": "WARNING",
    "boto3": "WARNING",
    "urllib3": "WARNING",
    "httpx": "WARNING",
}


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credential values that were bound or passed by mistake."""
    for key in event_dict.keys() & SECRET_KEYS:
        if event_dict[key] is not None:
            event_dict[key] = "***"
    return event_dict


def setup_logging() -> None:
    """Configure structlog and stdlib logging.

    Reads from environment variables:
        COMMITSYNC_LOG_LEVEL  — level for commitsync loggers (default: INFO)
        COMMITSYNC_LOG_FORMAT — console | json (default: console)
    """
    log_level = os.environ.get("COMMITSYNC_LOG_LEVEL", "INFO").upper()
    log_format = os.environ.get("COMMITSYNC_LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict[str, str]] = {"commitsync": {"level": log_level}}
    loggers.update({name: {"level": level} for name, level in _QUIET_LOGGERS.items()})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": log_level,
            },
            "loggers": loggers,
        }
    )
