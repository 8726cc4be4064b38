"""
Structured JSON logging for the invoicing kernel.

Every record under the ``invoicing`` logger namespace is rendered as one
JSON object per line.  Request-scoped fields (tenant, actor, invoice, bulk
operation, correlation id) live in ContextVars and are merged into the top
level of each line, next to any ``extra=`` keys the call site passes.

Worker threads start with empty ContextVars.  Code that fans work out to a
pool must run each task inside ``contextvars.copy_context()``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "invoicing"

_CONTEXT_FIELDS = ("correlation_id", "tenant_id", "actor_id", "invoice_id", "bulk_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"invoicing_log_{field}", default=None) for field in _CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields backed by ContextVars."""

    fields = _CONTEXT_FIELDS

    @staticmethod
    def _var(field: str) -> ContextVar[str | None]:
        try:
            return _context_vars[field]
        except KeyError:
            raise ValueError(f"Unknown log context field: {field}") from None

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Assign the given fields; ``None`` leaves a field untouched."""
        for field, value in fields.items():
            if value is not None:
                cls._var(field).set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            field: value
            for field, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (cls._var(field), cls._var(field).set(str(value)))
            for field, value in fields.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# LogRecord attributes that never belong in the JSON payload.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        """Flatten an exception's public attributes into ``exc_*`` keys."""
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for attr, value in vars(exc).items():
            if not attr.startswith("_") and attr != "code":
                fields[f"exc_{attr}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger named ``invoicing.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``invoicing`` logger.

    Only the first call has any effect until ``reset_logging()`` runs.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and forget the configured flag (test helper)."""
    global _configured
    with _configure_lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
