"""
corptax_engines.tracer -- ``@traced_engine`` and the CORPTAX_ENGINE_TRACE record.

Every pure engine call (rate resolution, reconciliation, MAT, tax
computation, schedule, interest) is wrapped so that one structured record
says which engine ran, on which financial year and regime, over which
inputs, how long it took and whether it raised.

Trace fields:
    engine_name, engine_version, function
    input_fingerprint   SHA-256 (16 hex chars) over the fingerprint fields
    financial_year      copied from the call when passed
    regime              copied from the call when passed
    outcome             "ok" or "error"
    error_code          ``code`` of the raised CorpTaxError (outcome=error)
    duration_ms

Fingerprints are stable across processes: Decimals are normalized
(``1300000.00`` and ``1.3E+6`` hash alike), dataclasses are hashed field
by field and dict keys are sorted.  Identical inputs always yield the same
fingerprint, so two passes over an assessment can be shown to have used
the same income, regime and rule pack version.

Engines take keyword arguments only; positional arguments after ``self``
are not part of the fingerprint.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from corptax_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_TYPE = "CORPTAX_ENGINE_TRACE"
_CONTEXT_KWARGS = ("financial_year", "regime")


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        if value.is_nan():
            return "NaN"
        return format(value.normalize(), "f")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        inner = ",".join(
            f"{f.name}={_canonicalize(getattr(value, f.name))}"
            for f in dataclasses.fields(value)
        )
        return f"{type(value).__name__}({inner})"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    canonical = "|".join(f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Emit a trace record for each call of the decorated engine method.

    The record is written whether the call returns or raises; exceptions
    are re-raised unchanged.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace: dict[str, Any] = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "function": func.__qualname__,
                "input_fingerprint": (
                    compute_input_fingerprint(fingerprint_fields, kwargs)
                    if fingerprint_fields else ""
                ),
            }
            for name in _CONTEXT_KWARGS:
                if kwargs.get(name) is not None:
                    trace[name] = _canonicalize(kwargs[name])

            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                trace["outcome"] = "error"
                trace["error_code"] = getattr(exc, "code", type(exc).__name__)
                trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                logger.info(TRACE_TYPE, extra=trace)
                raise
            trace["outcome"] = "ok"
            trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
            logger.info(TRACE_TYPE, extra=trace)
            return result

        return wrapper

    return decorator
