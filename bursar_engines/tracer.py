"""
Engine call tracing.

``@traced_engine`` wraps a pure engine entry point and emits one
``BURSAR_ENGINE_TRACE`` record per call with the engine's name and
version, a fingerprint of the selected inputs, the duration and the
outcome.  Two calls with equal inputs produce equal fingerprints, so a
trace can be matched to the draft or payment that produced it.

The decorator only reads arguments; it never changes them or the result.
A call that raises is traced with ``outcome="error"`` and the exception
propagates unchanged.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from bursar_kernel.domain.values import Money
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_TYPE = "BURSAR_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16

F = TypeVar("F", bound=Callable[..., Any])


def _canonical(value: Any) -> str:
    """Stable text for a traced argument.

    Amounts are normalized so ``1.0`` and ``1`` fingerprint alike.
    """
    match value:
        case None:
            return "null"
        case Money():
            return f"{value.currency.code}:{value.amount.normalize()}"
        case Decimal():
            return str(value.normalize())
        case Enum():
            return str(value.value)
        case bool() | int() | str():
            return str(value)
        case Mapping():
            pairs = sorted((str(k), _canonical(v)) for k, v in value.items())
            return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"
        case list() | tuple():
            return "[" + ",".join(_canonical(v) for v in value) + "]"
        case _ if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return type(value).__name__ + _canonical(
                {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
            )
        case _:
            return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """SHA-256 prefix over ``name=value`` pairs of the selected arguments.

    Missing arguments count as ``null``.
    """
    canonical = "|".join(f"{name}={_canonical(arguments.get(name))}" for name in fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    """
    Trace every call of an engine function or method.

    Args:
        engine_name: Name in the trace, e.g. ``"fee_allocation"``.
        engine_version: Bumped when the engine's arithmetic changes.
        fingerprint_fields: Parameter names hashed into ``input_fingerprint``.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        def fingerprint(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
            if not fingerprint_fields:
                return ""
            try:
                arguments = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                arguments = kwargs
            return compute_input_fingerprint(fingerprint_fields, arguments)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint(args, kwargs),
                "function": func.__qualname__,
            }
            started = time.monotonic()
            outcome = "error"
            try:
                result = func(*args, **kwargs)
                outcome = "ok"
                return result
            finally:
                trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                trace["outcome"] = outcome
                logger.info(TRACE_TYPE, extra=trace)

        return wrapper  # type: ignore[return-value]

    return decorator
