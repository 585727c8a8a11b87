"""
Structured logging configuration for releasemeta.

Provides JSON-formatted (one object per line) or human-readable logging with:
- Extra fields passed through `extra={...}`
- Query strings stripped from URLs (signed download URLs carry credentials)
- Credential-like fields dropped

Usage:
    from releasemeta.logging_config import setup_logging, get_logger

    setup_logging()  # Call once at startup
    logger = get_logger(__name__)
    logger.info("message", extra={"key": "value"})
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit, urlunsplit

_URL_PATTERN = re.compile(r"(https?://[^\s\"'<>]+)")

# Fields that never appear in logs.
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "token",
        "authorization",
        "credential",
    }
)

# Attributes every LogRecord carries; anything else came from `extra`.
_RECORD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


def _strip_query(url: str) -> str:
    """Drop query string and fragment from a URL."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _sanitize_text(text: str) -> str:
    """Strip query strings from every URL embedded in free-form text."""
    if not text:
        return text
    return _URL_PATTERN.sub(lambda m: _strip_query(m.group(1)), text)


def _filter_log_record(record: dict[str, Any]) -> dict[str, Any]:
    """Drop blocked fields and sanitize string values."""
    filtered: dict[str, Any] = {}
    for key, value in record.items():
        key_lower = key.lower()
        if any(blocked in key_lower for blocked in BLOCKED_FIELDS):
            continue
        if isinstance(value, (int, float, bool, type(None))):
            filtered[key] = value
        elif isinstance(value, str):
            filtered[key] = _sanitize_text(value)
        elif isinstance(value, (list, tuple)):
            filtered[key] = list(value) if len(value) <= 10 else f"[list:{len(value)} items]"
        else:
            filtered[key] = _sanitize_text(str(value))
    return filtered


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Output format:
    {"ts":"2024-01-01T00:00:00.000+00:00","level":"INFO","logger":"module","msg":"...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_dict: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_text(record.getMessage()),
        }

        if record.levelno >= logging.WARNING:
            log_dict["file"] = record.filename
            log_dict["line"] = record.lineno

        if record.exc_info:
            log_dict["exc"] = _sanitize_text(self.formatException(record.exc_info))

        extra = _extra_fields(record)
        if extra:
            log_dict.update(_filter_log_record(extra))

        return json.dumps(log_dict, default=str, ensure_ascii=False)


class SimpleFormatter(logging.Formatter):
    """Human-readable formatter for terminals and tests."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        base = f"{record.levelname:8s} {record.name}: {_sanitize_text(record.getMessage())}"

        extra = _extra_fields(record)
        if extra:
            filtered = _filter_log_record(extra)
            if filtered:
                extra_str = " ".join(f"{k}={v}" for k, v in filtered.items())
                base = f"{base} | {extra_str}"

        if record.exc_info:
            base = f"{base}\n{_sanitize_text(self.formatException(record.exc_info))}"

        return base


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
) -> None:
    """Configure logging for the application.

    Call once at startup.

    Args:
        level: Log level (default INFO).
        json_format: Use JSON formatter (default False, human-readable).
        stream: Output stream (default stderr).
    """
    if stream is None:
        stream = sys.stderr

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for __name__)."""
    return logging.getLogger(name)
