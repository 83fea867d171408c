"""Logging utilities for hybrid-kb.

Structured fields travel on records as ``ctx_*`` attributes. Build them with
:func:`log_context` and pass the result as ``extra=``; :class:`JsonFormatter`
emits them next to the message, the plain formatter ignores them.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

CONTEXT_PREFIX = "ctx_"

_DEFAULT_LEVEL = os.environ.get("HKB_LOG_LEVEL", "WARNING")


def log_context(**fields: Any) -> dict[str, Any]:
    """Prefix ``fields`` for use as ``extra=`` on a logging call; drops ``None`` values."""
    return {f"{CONTEXT_PREFIX}{key}": value for key, value in fields.items() if value is not None}


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``ctx_*`` attributes are emitted without the prefix."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        context = {
            key[len(CONTEXT_PREFIX):]: value
            for key, value in record.__dict__.items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = True) -> None:
    """Configure root logger with optional JSON formatting.

    Log lines go to stderr so command output on stdout stays machine-readable.
    """
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stderr)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]


def get_logger(name: str = "hybrid_kb") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger", "log_context"]
