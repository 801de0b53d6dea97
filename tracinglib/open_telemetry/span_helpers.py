from typing import Any, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import (
    INVALID_SPAN_ID,
    INVALID_TRACE_ID,
    Span,
    format_span_id,
    format_trace_id,
)

from tracinglib.open_telemetry.otel_initializer import TracingInitializer


def span_start(
    name: str, context: Optional[Context] = None, **kwargs: Any
) -> tuple[Context, Span]:
    """
    Start a span and return it together with a context that carries it.

    If ``context`` holds a span, the new span is its child; otherwise it is
    a root span. Extra keyword arguments go to ``Tracer.start_span``
    (``kind``, ``attributes``, ``links``, ``start_time``...). The stdout
    provider is installed on first use when nothing was initialized.
    """
    tracer = TracingInitializer.get_tracer()
    new_span = tracer.start_span(name, context=context, **kwargs)
    return trace.set_span_in_context(new_span, context), new_span


def trace_id(context: Optional[Context] = None) -> str:
    """Lowercase hex trace id of the span in ``context``, or "" if there is none."""
    span_context = trace.get_current_span(context).get_span_context()
    if span_context.trace_id != INVALID_TRACE_ID:
        return format_trace_id(span_context.trace_id)
    return ""


def span_id(context: Optional[Context] = None) -> str:
    """Lowercase hex span id of the span in ``context``, or "" if there is none."""
    span_context = trace.get_current_span(context).get_span_context()
    if span_context.span_id != INVALID_SPAN_ID:
        return format_span_id(span_context.span_id)
    return ""


def get_span(context: Optional[Context] = None) -> Span:
    # a non-recording INVALID_SPAN when the context holds no span
    return trace.get_current_span(context)


def ctx_with_span(span: Span, parent: Optional[Context] = None) -> Context:
    """Return a copy of ``parent`` that carries ``span``."""
    return trace.set_span_in_context(span, parent)
