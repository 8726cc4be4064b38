"""
Debug tracing for the pure engines.

``@traced_engine`` logs one ``INVOICING_ENGINE_TRACE`` record per call with
the engine name and version, a short fingerprint of selected keyword inputs,
and the wall-clock duration.  The engines stay free of I/O; the only side
effect is the log record.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from invoicing_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

F = TypeVar("F", bound=Callable[..., Any])


def _stable_repr(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        inner = ",".join(f"{k}:{_stable_repr(v)}" for k, v in sorted(value.items()))
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_stable_repr(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], kwargs: Mapping[str, Any]) -> str:
    """First 16 hex chars of SHA-256 over ``field=value`` pairs; absent fields read as null."""
    text = "|".join(f"{name}={_stable_repr(kwargs.get(name))}" for name in fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            if _logger.isEnabledFor(logging.DEBUG):
                _logger.debug(
                    "INVOICING_ENGINE_TRACE",
                    extra={
                        "trace_type": "INVOICING_ENGINE_TRACE",
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": (
                            compute_input_fingerprint(fingerprint_fields, kwargs)
                            if fingerprint_fields
                            else ""
                        ),
                        "duration_ms": round((time.monotonic() - started) * 1000, 2),
                        "function": func.__qualname__,
                    },
                )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
