"""
billing_engines.tracer -- ``@traced_engine`` and its input fingerprint.

Every call of a decorated report engine emits one ``BILLING_ENGINE_TRACE``
record carrying the engine name and version, how long the call took, and a
short fingerprint of the inputs that determine the result.  Two reports
with the same fingerprint and engine version were computed from the same
parameters, which is what an auditor needs to tie a figure back to a run.

The decorator reads arguments and logs; it never alters them or the
result.  Positional and keyword spellings of the same call bind to the
same parameter names and therefore share a fingerprint.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from billing_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def _canonical(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, int, float, Decimal)):
        return str(value)
    if hasattr(value, "minor") and hasattr(value, "currency"):
        return f"{value.minor} {value.currency}"
    if isinstance(value, Mapping):
        body = ",".join(f"{k}:{_canonical(v)}" for k, v in sorted(value.items(), key=lambda kv: str(kv[0])))
        return "{" + body + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """SHA-256 over ``name=value`` pairs of ``fields``; absent names hash as null."""
    canonical = "|".join(f"{name}={_canonical(arguments.get(name))}" for name in fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorate a pure engine entrypoint with BILLING_ENGINE_TRACE logging.

    Only ``fingerprint_fields`` feed the fingerprint; bulky inputs such as
    the bill snapshot itself are left out.  No fields means an empty
    fingerprint.
    """

    def decorate(engine: Callable[..., Any]) -> Callable[..., Any]:
        signature = inspect.signature(engine)

        @functools.wraps(engine)
        def run(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                arguments = signature.bind_partial(*args, **kwargs).arguments
                fingerprint = compute_input_fingerprint(fingerprint_fields, arguments)

            started = time.perf_counter()
            result = engine(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            logger.info(
                "BILLING_ENGINE_TRACE",
                extra={
                    "trace_type": "BILLING_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": elapsed_ms,
                    "function": f"{engine.__module__}.{engine.__qualname__}",
                },
            )
            return result

        return run

    return decorate
