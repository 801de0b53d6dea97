from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import NonRecordingSpan, SpanContext, TraceFlags

from tracinglib.open_telemetry.otel_initializer import TracingInitializer
from tracinglib.open_telemetry.span_helpers import (
    ctx_with_span,
    get_span,
    span_id,
    span_start,
    trace_id,
)


def test_ids_are_empty_without_span() -> None:
    assert trace_id(Context()) == ""
    assert span_id(Context()) == ""


def test_ids_are_lowercase_hex() -> None:
    span = NonRecordingSpan(
        SpanContext(
            trace_id=0x4BF92F3577B34DA6A3CE929D0E0E4736,
            span_id=0x00F067AA0BA902B7,
            is_remote=True,
            trace_flags=TraceFlags(TraceFlags.SAMPLED),
        )
    )

    ctx = ctx_with_span(span, Context())

    assert trace_id(ctx) == "4bf92f3577b34da6a3ce929d0e0e4736"
    assert span_id(ctx) == "00f067aa0ba902b7"
    assert get_span(ctx) is span


def test_get_span_without_span_is_invalid() -> None:
    span = get_span(Context())

    assert not span.is_recording()
    assert span is trace.INVALID_SPAN


def test_span_start_without_initialize_uses_stdout_provider() -> None:
    ctx, span = span_start("test.MySpanName", Context())
    span.end()

    assert TracingInitializer.get_tracer_provider() is not None
    assert get_span(ctx) is span
    assert len(trace_id(ctx)) == 32
    assert len(span_id(ctx)) == 16


def test_span_start_creates_child_of_span_in_context() -> None:
    exporter = InMemorySpanExporter()
    TracingInitializer.initialize_stdout(exporter=exporter)

    root_ctx, root = span_start("test.MySpanName", Context())
    child_ctx, child = span_start("test.MySubWork01", root_ctx)
    child.end()
    root.end()

    assert trace_id(child_ctx) == trace_id(root_ctx)
    assert span_id(child_ctx) != span_id(root_ctx)
    tracer_provider = TracingInitializer.get_tracer_provider()
    assert tracer_provider is not None
    tracer_provider.force_flush()
    finished = {span.name: span for span in exporter.get_finished_spans()}
    child_parent = finished["test.MySubWork01"].parent
    assert child_parent is not None
    assert child_parent.span_id == root.get_span_context().span_id
