"""
Structured JSON logging utilities.

Gives the CLI and any host application single-line JSON logs that
carry the context fields (endpoint, action) attached by
StoreLoggerAdapter.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Attributes every LogRecord has; anything else came from ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter emitting one object per record.

    Fields: timestamp (UTC ISO 8601), level, logger, message, any
    static fields given at construction, then the record's extra
    attributes. Values that cannot be serialized are written as str().
    """

    def __init__(self, static_fields: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **self.static_fields,
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = _json_safe(value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "order_store",
    stream: TextIO | None = None,
    static_fields: dict[str, Any] | None = None,
) -> logging.Logger:
    """
    Route a logger's output through StructuredJsonFormatter.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger;
            None for the root logger)
        stream: Output stream (default: stderr, leaving stdout to command output)
        static_fields: Fields added to every entry, e.g. {"app": "orders-cli"}

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Replace rather than stack handlers on repeated calls
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredJsonFormatter(static_fields))
    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_store_logger(name: str) -> logging.Logger:
    """Logger named 'order_store.{name}' for components outside the package modules."""
    return logging.getLogger(f"order_store.{name}")


class StoreLoggerAdapter(logging.LoggerAdapter):
    """Adds fixed context (such as the remote endpoint) to every record.

    Fields passed through ``extra`` at the call site take precedence
    over the fixed context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def bind(self, **context: Any) -> StoreLoggerAdapter:
        """New adapter over the same logger with additional context."""
        return StoreLoggerAdapter(self.logger, {**self.extra, **context})
