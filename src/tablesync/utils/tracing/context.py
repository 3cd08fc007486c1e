"""
Span helpers for sync runs.

``trace_operation`` opens a span; the other helpers annotate whichever
span is current, so deep code (clients, the merge loop) never needs a
span reference.
"""

from contextlib import contextmanager
from typing import Any

from opentelemetry import trace

from .tracer import get_tracer


def _attribute_value(value: Any) -> bool | int | float | str:
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def _span_attributes(attributes: dict[str, Any]) -> dict[str, Any]:
    """Drop None values and stringify anything OpenTelemetry cannot store"""
    return {key: _attribute_value(value) for key, value in attributes.items() if value is not None}


@contextmanager
def trace_operation(operation_name: str, kind: trace.SpanKind = trace.SpanKind.INTERNAL, **attributes):
    """
    Run a block inside a new span.

    An exception escaping the block is recorded on the span (with
    ``error``, ``error.type`` and ``error.message`` attributes) and
    re-raised.

    Args:
        operation_name: Span name, e.g. "tablesync.sync_tables"
        kind: Span kind
        **attributes: Initial span attributes; None values are skipped

    Yields:
        The active span

    Example:
        >>> with trace_operation("tablesync.sync_tables", dest_table="customers") as span:
        ...     result = run.execute()
    """
    with get_tracer().start_as_current_span(
        operation_name,
        kind=kind,
        attributes=_span_attributes(attributes),
        record_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_attributes({
                "error": True,
                "error.type": type(e).__name__,
                "error.message": str(e),
            })
            span.record_exception(e)
            raise


def add_span_attributes(**attributes):
    """Set attributes on the current span, if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(_span_attributes(attributes))


def add_span_event(name: str, **attributes):
    """
    Record an event on the current span, if it is recording.

    Used for notable moments of a run such as a cap being reached.

    Args:
        name: Event name
        **attributes: Event attributes; None values are skipped
    """
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=_span_attributes(attributes))
