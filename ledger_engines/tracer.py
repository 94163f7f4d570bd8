"""
ledger_engines.tracer -- Engine invocation tracer emitting LEDGER_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    engine invocations with structured trace logging. The trace captures
    engine_name, engine_version, input_fingerprint (deterministic SHA-256
    hash of selected arguments), outcome, and duration_ms.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Does NOT introduce I/O into engines; emits a log record only.

Failure modes:
    - Fingerprint fields naming arguments that were not bound are recorded
      as "null".
    - _canonicalize falls back to ``str(value)`` for unknown types; every
      ledger value object is a frozen dataclass with a stable repr.

Usage:
    from ledger_engines.tracer import traced_engine

    @traced_engine("invoice_totals", "1.0", fingerprint_fields=("invoice",))
    def compute_totals(invoice): ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("ledger_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """Compute a deterministic 16-hex-char SHA-256 fingerprint of selected arguments."""
    parts: list[str] = []
    for name in fingerprint_fields:
        parts.append(f"{name}={_canonicalize(arguments.get(name))}")
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _outcome(result: Any) -> str:
    success = getattr(result, "success", None)
    if success is True:
        return "ok"
    if success is False:
        return "rejected"
    return "returned"


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits LEDGER_ENGINE_TRACE for pure engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "distribution").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Argument names (positional or keyword) to
            include in the input fingerprint hash.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, dict(bound.arguments))

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "LEDGER_ENGINE_TRACE",
                extra={
                    "trace_type": "LEDGER_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "outcome": _outcome(result),
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
