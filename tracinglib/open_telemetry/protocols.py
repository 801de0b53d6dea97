"""Protocol definitions for span processor chaining.

This module defines the capability set a duration filter needs from the
processor it wraps, so any SDK ``SpanProcessor`` (or a test double) can be
placed downstream.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from opentelemetry.context import Context
from opentelemetry.sdk.trace import ReadableSpan, Span


@runtime_checkable
class DownstreamSpanProcessor(Protocol):
    """
    Protocol for the processor that receives spans admitted by a filter.

    The four operations mirror ``opentelemetry.sdk.trace.SpanProcessor``.
    ``shutdown`` is typed loosely because the filter hands back whatever
    the downstream returns.
    """

    def on_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        """
        Called when a span is started.

        Args:
            span: The mutable span that was started
            parent_context: The parent context of the span, if any
        """
        ...

    def on_end(self, span: ReadableSpan) -> None:
        """
        Called when a span is ended.

        Args:
            span: The read-only view of the finished span
        """
        ...

    def shutdown(self) -> Any:
        """Shut the processor down and release its resources."""
        ...

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """
        Export all spans received so far.

        Args:
            timeout_millis: How long the flush may block

        Returns:
            True if the flush completed within the timeout
        """
        ...
