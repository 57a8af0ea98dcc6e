"""Span helpers for bulk and snapshot operations.

Spans are no-ops until a tracer provider is installed (see
nsredis.shared.telemetry.telemetry.TelemetryConfig).
"""

import inspect
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from opentelemetry import trace

R = TypeVar("R")

ATTRIBUTE_PREFIX = "nsredis."

# Call arguments recorded on spans; stored keys and values never are.
SPAN_ARGUMENTS = frozenset({"namespace", "batch_size", "ttl_seconds", "pretty"})

_tracer = trace.get_tracer("nsredis")


def _call_attributes(signature: inspect.Signature, args: tuple, kwargs: dict) -> dict[str, str]:
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except TypeError:
        return {}
    return {
        f"{ATTRIBUTE_PREFIX}{name}": str(value)
        for name, value in bound.arguments.items()
        if name in SPAN_ARGUMENTS and value is not None
    }


def traced(
    span_name: str, **static_attributes: str | int | float | bool
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R]]]:
    """Run the decorated coroutine function inside a span named span_name.

    The namespace, batch size, TTL and pretty flag are taken from the call's
    arguments whether passed by position or keyword. An exception marks the
    span as failed, is recorded on it, and propagates unchanged.
    """

    def decorator(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        signature = inspect.signature(func)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> R:
            attributes = {**static_attributes, **_call_attributes(signature, args, kwargs)}
            with _tracer.start_as_current_span(span_name, attributes=attributes):
                return await func(*args, **kwargs)

        return wrapper

    return decorator


def annotate_span(**attributes: str | int | float | bool) -> None:
    """Attach result sizes (or similar scalars) to the current span, if it records."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes({f"{ATTRIBUTE_PREFIX}{k}": v for k, v in attributes.items()})
