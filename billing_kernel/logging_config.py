"""
Module: billing_kernel.logging_config
Responsibility:
    One JSON object per log line for everything under the ``billing_kernel``
    logger namespace, with request-scoped fields (who is acting, on which
    bill) attached automatically.

Architecture position:
    Kernel root.  Imported by every layer; imports nothing from the project.

Record layout:
    ts, level, logger, message       -- always present
    correlation_id, actor_id, ...    -- whatever LogContext currently holds
    <extra keys>                     -- ``extra={...}`` of the logging call
    exc_type, exc_message, exc_code,
    exc_<field>, traceback           -- when exc_info is attached

    Money-like values (anything with ``minor`` and ``currency``) are written
    as ``{"minor": ..., "currency": ...}``; enums by value; datetimes, UUIDs
    and Decimals as strings.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import IO, Any
from uuid import UUID

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

ROOT_LOGGER_NAME = "billing_kernel"


# ---------------------------------------------------------------------------
# Request-scoped fields
# ---------------------------------------------------------------------------

_context: ContextVar[Mapping[str, str]] = ContextVar("billing_log_context", default={})


class LogContext:
    """
    Fields stamped onto every record emitted in the current thread or task.

    Backed by a single ContextVar holding an immutable snapshot, so worker
    threads and asyncio tasks each see their own values.
    """

    FIELDS = (
        "correlation_id",
        "actor_id",
        "bill_id",
        "bill_number",
        "patient_ref",
        "trace_id",
    )

    @classmethod
    def _merged(cls, updates: Mapping[str, str | None]) -> dict[str, str]:
        unknown = set(updates) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {', '.join(sorted(unknown))}")
        merged = dict(_context.get())
        merged.update({k: v for k, v in updates.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Update the current context.  None values leave a field untouched."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[None]:
        """Overlay ``fields`` for the duration of the block, then restore."""
        token = _context.set(cls._merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if hasattr(value, "minor") and hasattr(value, "currency"):
        return {"minor": value.minor, "currency": value.currency}
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        out.update(LogContext.get_all())
        out.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in out
        )
        if record.exc_info and record.exc_info[1] is not None:
            out.update(self._exception_fields(record))
        return json.dumps(out, default=_jsonable, ensure_ascii=False)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # BillingKernelError subclasses keep their details as attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.ledger")`` -> ``billing_kernel.services.ledger``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: IO[str] | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to the ``billing_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.  Records
    do not propagate to the root logger.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False
        root.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """Detach the JSON handler so ``configure_logging`` runs again (tests)."""
    global _installed_handler
    with _setup_lock:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        _installed_handler = None
