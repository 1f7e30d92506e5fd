"""Correlation ID propagation for structured logs and trace context."""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace

# Context variable for storing correlation ID
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context."""
    return correlation_id.get()


@contextmanager
def with_correlation_id(corr_id: str) -> Iterator[str]:
    """Context manager to set a correlation ID for the duration of a block.

    Handlers use the resource UID so every log line of one reconciliation
    can be grouped together.

    Args:
        corr_id: Correlation ID to use

    Yields:
        The correlation ID
    """
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)


def propagate_trace_context() -> dict[str, Any] | None:
    """Get OpenTelemetry trace context of the current span, if any."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span_context = span.get_span_context()
        if span_context.is_valid:
            return {
                "trace_id": format(span_context.trace_id, "032x"),
                "span_id": format(span_context.span_id, "016x"),
            }
    return None


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values.

    Args:
        additional: Additional key-value pairs to include

    Returns:
        Dictionary with correlation_id and trace ids when available
    """
    ctx: dict[str, Any] = {}

    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id

    trace_ctx = propagate_trace_context()
    if trace_ctx:
        ctx.update(trace_ctx)

    if additional:
        ctx.update(additional)

    return ctx
