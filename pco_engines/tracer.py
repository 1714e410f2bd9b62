"""
pco_engines.tracer -- PRICING_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` logs one DEBUG record per pricing call with the
    engine name and version, a fingerprint of the priced inputs and the
    elapsed time.  Two calls with the same fingerprint were priced from
    identical inputs, which is what a disputed quote needs to show.

Architecture position:
    Engines -- support code.  Emits a log record only; never alters
    arguments or results.

Invariants enforced:
    - The fingerprint is the first 16 hex chars of a SHA-256 over a
      canonical JSON document of the selected keyword arguments: keys
      sorted, dataclasses expanded to their fields, enums to their values,
      Decimals via ``str`` (``Decimal("1.0")`` and ``Decimal("1.00")``
      fingerprint differently).
    - Only keyword arguments are fingerprinted; an absent field is null.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import json
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from pco_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_TYPE = "PRICING_ENGINE_TRACE"

F = TypeVar("F", bound=Callable[..., Any])


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    document = {name: _plain(kwargs.get(name)) for name in fingerprint_fields}
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    """Wrap a pure engine function with a PRICING_ENGINE_TRACE record.

    Args:
        engine_name: Engine identifier, e.g. ``"bulk_pricing"``.
        engine_version: Bumped whenever the arithmetic changes.
        fingerprint_fields: Keyword arguments that identify the inputs.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    TRACE_TYPE,
                    extra={
                        "trace_type": TRACE_TYPE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": compute_input_fingerprint(fingerprint_fields, kwargs),
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "function": func.__qualname__,
                    },
                )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
