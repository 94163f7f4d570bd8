"""Structured JSON logging for the ledger kernel."""

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
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Thread-safe / async-safe context holder for request-scoped log fields."""

    _correlation_id: ContextVar[str | None] = ContextVar(
        "ledger_log_correlation_id", default=None
    )
    _actor_id: ContextVar[str | None] = ContextVar(
        "ledger_log_actor_id", default=None
    )
    _invoice_id: ContextVar[str | None] = ContextVar(
        "ledger_log_invoice_id", default=None
    )
    _workshop_id: ContextVar[str | None] = ContextVar(
        "ledger_log_workshop_id", default=None
    )
    _entry_id: ContextVar[str | None] = ContextVar(
        "ledger_log_entry_id", default=None
    )

    _FIELD_NAMES = (
        "correlation_id",
        "actor_id",
        "invoice_id",
        "workshop_id",
        "entry_id",
    )

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set context fields. Only non-None values are updated."""
        for name, val in fields.items():
            if name not in cls._FIELD_NAMES:
                raise KeyError(f"Unknown log context field: {name}")
            if val is not None:
                getattr(cls, f"_{name}").set(val)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Return all non-None context fields as a dict."""
        ctx: dict[str, str] = {}
        for name in cls._FIELD_NAMES:
            val = getattr(cls, f"_{name}").get()
            if val is not None:
                ctx[name] = val
        return ctx

    @classmethod
    def clear(cls) -> None:
        """Reset all context fields to None."""
        for name in cls._FIELD_NAMES:
            getattr(cls, f"_{name}").set(None)

    @classmethod
    def bind(cls, **kwargs: str | None) -> "_LogContextManager":
        """Context manager that sets fields on entry and restores on exit."""
        return _LogContextManager(**kwargs)


class _LogContextManager:
    """Context manager for LogContext.bind()."""

    def __init__(self, **kwargs: str | None):
        self._kwargs = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> type[LogContext]:
        for key, val in self._kwargs.items():
            if val is not None:
                var = getattr(LogContext, f"_{key}", None)
                if var is not None:
                    self._tokens[key] = var.set(val)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for key, token in self._tokens.items():
            getattr(LogContext, f"_{key}").reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Handle UUID, datetime, Decimal and enums in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            for k, v in vars(exc).items():
                if not k.startswith("_") and k not in ("args", "code"):
                    payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "ledger_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ledger_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the ledger_kernel logger hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True
