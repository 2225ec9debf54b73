"""Logging setup: JSON or text output, with checkpoint credentials redacted.

A collection secret must never reach a log stream in cleartext, so both
formatters scrub ``secret=…``/``token=…`` pairs from messages and any
sensitive key from extra fields.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any

REDACTED = "***REDACTED***"

SENSITIVE_KEY_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"authorization", re.IGNORECASE),
]

# key=value / key: value pairs inside freeform text
_INLINE_CREDENTIAL = re.compile(
    r"\b(secret|password|pin|token)(\s*[=:]\s*)(\S+)",
    re.IGNORECASE,
)

# Attributes every LogRecord carries; anything else came in via ``extra=``
_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "correlation_id",
    "fulfillment_id",
}


def is_sensitive_key(key: str) -> bool:
    return any(p.search(key) for p in SENSITIVE_KEY_PATTERNS)


def redact_value(key: str, value: Any) -> Any:
    """Redact *value* if *key* is sensitive, recursing into containers."""
    if is_sensitive_key(key):
        return REDACTED
    if isinstance(value, dict):
        return {k: redact_value(str(k), v) for k, v in value.items()}
    if isinstance(value, list):
        return [redact_value("", item) for item in value]
    return value


def redact_string(text: str) -> str:
    """Scrub ``secret=…``, ``token: …`` and similar pairs from log text."""
    return _INLINE_CREDENTIAL.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", text)


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_string(record.getMessage()),
        }

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            entry["correlation_id"] = correlation_id

        fulfillment_id = getattr(record, "fulfillment_id", None)
        if fulfillment_id:
            entry["fulfillment_id"] = fulfillment_id

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": redact_string(str(record.exc_info[1])),
            }

        extras = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if extras:
            entry["extra"] = {k: redact_value(k, v) for k, v in extras.items()}

        return json.dumps(entry, default=str)


class RedactingFormatter(logging.Formatter):
    """Human-readable text formatter with credential redaction."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(
            fmt=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt or "%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        return redact_string(super().format(record))


class CorrelationFilter(logging.Filter):
    """Attach the request correlation ID and the fulfillment in play to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        from handoff.core.context import get_correlation_id, get_fulfillment_id

        record.correlation_id = get_correlation_id()
        record.fulfillment_id = get_fulfillment_id()
        return True


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: "json" for structured output, "text" for human-readable.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else RedactingFormatter())
    handler.addFilter(CorrelationFilter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
