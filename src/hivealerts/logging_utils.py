from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import IO, Any

from hivealerts.logging_context import CONTEXT_FIELDS, get_logging_context
from hivealerts.security.redaction import redact_data

# Transport loggers and the env var that overrides each one's level.
_HTTP_LOGGERS = {"httpx": "HTTPX_LOG_LEVEL", "httpcore": "HTTPCORE_LOG_LEVEL"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, credentials redacted.

    Structured fields travel in ``extra={"extra": {...}}``; correlation
    fields bound with ``with_logging_context`` are always present (``null``
    when unbound).
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            payload.update(fields)

        bound = get_logging_context()
        payload.update({name: bound.get(name) for name in CONTEXT_FIELDS})
        payload.update(self._exception_fields(record))
        return json.dumps(redact_data(payload), default=str, ensure_ascii=False)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, str]:
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            return {
                "error_type": exc_type.__name__ if exc_type else "Exception",
                "error_message": "" if exc_value is None else str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }
        if record.exc_text:
            return {"traceback": record.exc_text}
        return {}


def _level_from_name(raw: str | int | None, default: int) -> int:
    if isinstance(raw, int):
        return raw
    if raw is None or not str(raw).strip():
        return default
    resolved = logging.getLevelName(str(raw).strip().upper())
    return resolved if isinstance(resolved, int) else default


def setup_logging(level: str | int | None = None, *, stream: IO[str] | None = None) -> None:
    """Route every record through ``JsonFormatter`` on stderr.

    ``level`` falls back to ``LOG_LEVEL``. The HTTP transport loggers stay at
    WARNING unless the root level is DEBUG or their own env var says
    otherwise.
    """

    root_level = _level_from_name(
        level if level is not None else os.getenv("LOG_LEVEL"), logging.INFO
    )
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)

    transport_default = logging.DEBUG if root_level <= logging.DEBUG else logging.WARNING
    for logger_name, env_name in _HTTP_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(
            _level_from_name(os.getenv(env_name), transport_default)
        )
