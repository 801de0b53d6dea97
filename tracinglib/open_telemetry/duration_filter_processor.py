"""OpenTelemetry SpanProcessor that filters spans by lifetime.

This module provides:
- DurationFilterMetrics: Optional lock-free counters for dropped spans
- DurationFilterProcessor: SpanProcessor that forwards only spans whose
  duration lies in a configured band
"""

import logging
import threading
from datetime import timedelta
from logging import Logger
from typing import Any, List, Optional

from opentelemetry.context import Context
from opentelemetry.sdk.trace import ReadableSpan, Span, SpanProcessor
from typing_extensions import override

from tracinglib.open_telemetry.protocols import DownstreamSpanProcessor

# Default timeout for force_flush in milliseconds (30 seconds)
DEFAULT_FLUSH_TIMEOUT_MS: int = 30000

NANOS_PER_MICROSECOND: int = 1_000


def timedelta_to_ns(value: timedelta) -> int:
    """Convert a timedelta to whole nanoseconds without going through float."""
    return (
        (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    ) * NANOS_PER_MICROSECOND


class _DropCounts:
    __slots__ = ("too_short", "too_long")

    def __init__(self) -> None:
        self.too_short: int = 0
        self.too_long: int = 0


class DurationFilterMetrics:
    """
    Counters for spans dropped by a DurationFilterProcessor.

    Each thread increments its own cell, so counting a drop never waits on
    another thread. Reads sum the cells of every thread that has dropped
    a span; a read racing an increment may miss that one drop.
    """

    def __init__(self) -> None:
        self._local = threading.local()
        self._cells: List[_DropCounts] = []

    def _cell(self) -> _DropCounts:
        cell: Optional[_DropCounts] = getattr(self._local, "cell", None)
        if cell is None:
            cell = _DropCounts()
            self._local.cell = cell
            # list.append is atomic, each thread registers only its own cell
            self._cells.append(cell)
        return cell

    def increment_too_short(self) -> None:
        self._cell().too_short += 1

    def increment_too_long(self) -> None:
        self._cell().too_long += 1

    def get_dropped_too_short(self) -> int:
        return sum(cell.too_short for cell in list(self._cells))

    def get_dropped_too_long(self) -> int:
        return sum(cell.too_long for cell in list(self._cells))

    def get_dropped_count(self) -> int:
        """
        Get total number of dropped spans.

        Returns:
            Sum of spans dropped for either bound
        """
        return self.get_dropped_too_short() + self.get_dropped_too_long()


class DurationFilterProcessor(SpanProcessor):
    """
    SpanProcessor that drops spans whose lifetime is outside a duration band.

    Wraps exactly one downstream processor. ``on_start``, ``shutdown`` and
    ``force_flush`` always delegate; ``on_end`` forwards the span only when
    its duration lies in ``[min_duration_ns, max_duration_ns]``. A bound of 0
    disables that side of the band.

    Durations are taken from the timestamps the SDK attached to the span,
    so the filter never reads a clock itself. It holds no per-span state
    and takes no locks on the span path unless metrics are supplied.
    """

    def __init__(
        self,
        next_processor: DownstreamSpanProcessor,
        min_duration_ns: int = 0,
        max_duration_ns: int = 0,
        metrics: Optional[DurationFilterMetrics] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        """
        Initialize the duration filter.

        Args:
            next_processor: The processor that receives admitted spans
            min_duration_ns: Spans shorter than this are dropped (0 disables)
            max_duration_ns: Spans longer than this are dropped (0 disables)
            metrics: Optional counters for dropped spans
            logger: Optional logger used at shutdown (creates one if not provided)

        Raises:
            ValueError: If either bound is negative
        """
        if min_duration_ns < 0:
            raise ValueError(f"min_duration_ns must be >= 0, got {min_duration_ns}")
        if max_duration_ns < 0:
            raise ValueError(f"max_duration_ns must be >= 0, got {max_duration_ns}")

        self._next = next_processor
        self._min_duration_ns = min_duration_ns
        self._max_duration_ns = max_duration_ns
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)
        self._is_shutdown = False

    @classmethod
    def from_timedelta(
        cls,
        next_processor: DownstreamSpanProcessor,
        min_duration: timedelta = timedelta(0),
        max_duration: timedelta = timedelta(0),
        metrics: Optional[DurationFilterMetrics] = None,
    ) -> "DurationFilterProcessor":
        """Build a filter from timedelta bounds."""
        return cls(
            next_processor=next_processor,
            min_duration_ns=timedelta_to_ns(min_duration),
            max_duration_ns=timedelta_to_ns(max_duration),
            metrics=metrics,
        )

    @property
    def next_processor(self) -> DownstreamSpanProcessor:
        return self._next

    @property
    def min_duration_ns(self) -> int:
        return self._min_duration_ns

    @property
    def max_duration_ns(self) -> int:
        return self._max_duration_ns

    @property
    def metrics(self) -> Optional[DurationFilterMetrics]:
        return self._metrics

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    @override
    def on_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        """
        Called when span starts - always delegate.

        Args:
            span: The span that started
            parent_context: Optional parent context
        """
        if self._is_shutdown:
            return
        self._next.on_start(span, parent_context=parent_context)

    @override
    def on_end(self, span: ReadableSpan) -> None:
        """
        Called when span ends - drop or delegate.

        Args:
            span: The span that ended
        """
        if self._is_shutdown:
            return

        start_time = span.start_time
        end_time = span.end_time
        if start_time is not None and end_time is not None:
            duration_ns = end_time - start_time
            # Negative durations break the SDK's own invariant; let them through.
            if duration_ns >= 0:
                if 0 < self._min_duration_ns and duration_ns < self._min_duration_ns:
                    if self._metrics is not None:
                        self._metrics.increment_too_short()
                    return
                if 0 < self._max_duration_ns < duration_ns:
                    if self._metrics is not None:
                        self._metrics.increment_too_long()
                    return

        self._next.on_end(span)

    @override
    def shutdown(self) -> Any:
        """Shutdown the wrapped processor and return its result."""
        self._is_shutdown = True
        if self._metrics is not None:
            self._logger.info(
                "DurationFilterProcessor shutdown: dropped %d spans "
                "(too short: %d, too long: %d)",
                self._metrics.get_dropped_count(),
                self._metrics.get_dropped_too_short(),
                self._metrics.get_dropped_too_long(),
            )
        return self._next.shutdown()

    @override
    def force_flush(self, timeout_millis: int = DEFAULT_FLUSH_TIMEOUT_MS) -> bool:
        """
        Flush the wrapped processor.

        Args:
            timeout_millis: Timeout in milliseconds (default: 30 seconds)

        Returns:
            Whatever the wrapped processor returns
        """
        return self._next.force_flush(timeout_millis)

    def __repr__(self) -> str:
        return (
            f"DurationFilterProcessor(min_duration_ns={self._min_duration_ns}, "
            f"max_duration_ns={self._max_duration_ns}, "
            f"next={type(self._next).__name__})"
        )
