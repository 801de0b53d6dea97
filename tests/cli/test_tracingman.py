from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from tracinglib.cli import tracingman
from tracinglib.open_telemetry.otel_initializer import (
    TracingInitializationError,
    TracingInitializer,
)

TRACE_ID_STR = "4bf92f3577b34da6a3ce929d0e0e4736"


@pytest.fixture
def exporter() -> Generator[InMemorySpanExporter, None, None]:
    """Route the demo's spans to memory instead of stdout and skip the sleeps."""
    in_memory = InMemorySpanExporter()
    original_initialize = TracingInitializer.initialize.__func__  # type: ignore[attr-defined]

    def initialize(cls: type, options: object = None, exporter: object = None) -> object:
        return original_initialize(cls, options, in_memory)

    with patch.object(TracingInitializer, "initialize", classmethod(initialize)):
        with patch("tracinglib.cli.tracingman.time.sleep"):
            yield in_memory


def test_parse_args_defaults() -> None:
    args = tracingman.parse_args([])

    assert args.endpoint == ""
    assert args.root_span_name == "ThisIsMyRootSpanName"
    assert args.service_name == "MyDemoService"
    assert args.with_b3 is False


def test_build_b3_headers() -> None:
    headers = tracingman.build_b3_headers()

    assert len(headers["x-b3-traceid"]) == 32
    assert headers["x-b3-spanid"] == "00f067aa0ba902b7"
    assert headers["x-b3-sampled"] == "true"


def test_main_emits_demo_span_tree(
    exporter: InMemorySpanExporter, capsys: pytest.CaptureFixture[str]
) -> None:
    assert tracingman.main(["-n", "demo.root"]) == 0

    out = capsys.readouterr().out
    assert "traceID:" in out
    assert out.rstrip().endswith("done")
    names = sorted(span.name for span in exporter.get_finished_spans())
    assert names == [
        "demo.root",
        "test.MySpanName",
        "test.MySubSubWork02",
        "test.MySubWork01",
    ]
    assert TracingInitializer.get_tracer_provider() is None


def test_main_with_b3_continues_remote_trace(
    exporter: InMemorySpanExporter, capsys: pytest.CaptureFixture[str]
) -> None:
    with patch.object(
        tracingman,
        "build_b3_headers",
        return_value={
            "x-b3-traceid": TRACE_ID_STR,
            "x-b3-spanid": tracingman.SPAN_ID_STR,
            "x-b3-sampled": "true",
        },
    ):
        assert tracingman.main(["-b"]) == 0

    out = capsys.readouterr().out
    assert f"traceID:\n{TRACE_ID_STR}" in out
    spans = exporter.get_finished_spans()
    assert {format(span.context.trace_id, "032x") for span in spans} == {
        TRACE_ID_STR
    }


def test_main_returns_error_when_initialization_fails() -> None:
    with patch.object(
        TracingInitializer,
        "initialize",
        MagicMock(side_effect=TracingInitializationError("no exporter")),
    ):
        assert tracingman.main(["-e", "collector:4317"]) == 1
