"""
Centralized logging configuration for payrecon.

Structured JSON logging shared by the reconciliation runs, the audit trail
service and the HTTP API. Every record carries:
- timestamp
- level
- logger name
- message
- service identifier
- run context (batch id, step, population) when bound through ``bind_run``
"""

import logging
import os
import sys
from typing import Any, Optional, TextIO

from pythonjsonlogger.json import JsonFormatter

SERVICE_NAME = "payrecon"
LOG_LEVEL_ENV = "PAYRECON_LOG_LEVEL"


class PayreconJsonFormatter(JsonFormatter):
    """JSON formatter adding the standard payrecon fields to each record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["name"] = record.name
        log_record["service"] = SERVICE_NAME

        if "message" not in log_record:
            log_record["message"] = record.getMessage()


def resolve_level(level: Optional[int] = None) -> int:
    """
    Resolve the effective log level.

    An explicit ``level`` wins; otherwise ``PAYRECON_LOG_LEVEL`` is read
    (level name such as ``DEBUG``), falling back to INFO.
    """
    if level is not None:
        return level

    env_level = os.environ.get(LOG_LEVEL_ENV)
    if env_level:
        resolved = logging.getLevelName(env_level.strip().upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO


def setup_logging(
    level: Optional[int] = None,
    format_as_json: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (default: PAYRECON_LOG_LEVEL or INFO)
        format_as_json: If True, use JSON formatting; if False, use plain text
        stream: Handler stream (default: stdout)
    """
    level = resolve_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)

    if format_as_json:
        formatter = PayreconJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.info("Logging configuration initialized", extra={
        "format": "json" if format_as_json else "standard",
        "level": logging.getLevelName(level),
    })


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (typically ``__name__``)."""
    return logging.getLogger(name)


def bind_run(logger: logging.Logger, **context: Any) -> logging.LoggerAdapter:
    """Return a LoggerAdapter that injects run context into each record."""
    return logging.LoggerAdapter(logger, extra=context)
