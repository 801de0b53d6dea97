"""
Shared test fixtures for tracing tests.
"""

from typing import Generator

import pytest

from tests.open_telemetry.span_fakes import RecordingSpanProcessor
from tracinglib.open_telemetry.otel_initializer import TracingInitializer


@pytest.fixture
def recording_processor() -> RecordingSpanProcessor:
    return RecordingSpanProcessor()


@pytest.fixture(autouse=True)
def reset_tracing_initializer() -> Generator[None, None, None]:
    """Every test starts without an installed tracer provider."""
    TracingInitializer.reset()
    yield
    TracingInitializer.reset()
