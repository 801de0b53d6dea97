"""
Request-scoped contexts with cancellation, and a value-only view of them.

A span that is carried into cleanup work must outlive the request that
started it. ``without_cancel`` wraps a request context so that values
(including the OpenTelemetry context holding the span) are still visible
while deadline, cancellation and error are hidden.
"""

import logging
import threading
import time
from typing import Any, Optional, Protocol, runtime_checkable

from opentelemetry import context as otel_context
from opentelemetry.context import Context

from tracinglib.utilities.logger.log_levels import SRC_LOG_LEVELS

logger = logging.getLogger(__name__)
logger.setLevel(SRC_LOG_LEVELS["CONTEXT"])


class ContextError(Exception):
    """Base exception for request context errors"""


class ContextCancelledError(ContextError):
    """Reported by err() after the context was cancelled"""


class DeadlineExceededError(ContextError):
    """Reported by err() after the context deadline passed"""


@runtime_checkable
class RequestContext(Protocol):
    """
    Request-scoped values plus a deadline and a cancellation signal.

    ``values`` is the OpenTelemetry context that carries the active span
    and baggage; ``value`` looks single keys up in it.
    """

    def deadline(self) -> Optional[float]:
        """Monotonic time after which the work should stop, or None."""
        ...

    def done(self) -> Optional[threading.Event]:
        """Event set once the context is cancelled, or None if it never is."""
        ...

    def err(self) -> Optional[ContextError]:
        """Why the context is done, or None while it is still live."""
        ...

    def value(self, key: str) -> Any:
        """Value stored under ``key``, or None."""
        ...

    @property
    def values(self) -> Context: ...


class CancellableContext:
    """
    RequestContext backed by an OpenTelemetry Context.

    Children made with ``with_value`` or ``with_deadline`` share the
    parent's cancellation: cancelling a parent cancels every child.
    """

    def __init__(
        self,
        values: Optional[Context] = None,
        deadline: Optional[float] = None,
        parent: Optional["CancellableContext"] = None,
    ) -> None:
        self._values: Context = values if values is not None else Context()
        self._deadline = deadline
        self._parent = parent
        self._done = threading.Event()
        self._err: Optional[ContextError] = None

    @classmethod
    def background(cls) -> "CancellableContext":
        """Root context holding the current OpenTelemetry context."""
        return cls(values=otel_context.get_current())

    def deadline(self) -> Optional[float]:
        return self._deadline

    def done(self) -> Optional[threading.Event]:
        self._refresh()
        return self._done

    def err(self) -> Optional[ContextError]:
        self._refresh()
        return self._err

    def value(self, key: str) -> Any:
        return self._values.get(key)

    @property
    def values(self) -> Context:
        return self._values

    def cancel(self) -> None:
        if self._err is None:
            self._err = ContextCancelledError("context canceled")
            self._done.set()

    def with_value(self, key: str, value: object) -> "CancellableContext":
        return CancellableContext(
            values=otel_context.set_value(key, value, self._values),
            deadline=self._deadline,
            parent=self,
        )

    def with_values(self, values: Context) -> "CancellableContext":
        """Child context whose values are replaced, e.g. after attaching a span."""
        return CancellableContext(values=values, deadline=self._deadline, parent=self)

    def with_deadline(self, deadline: float) -> "CancellableContext":
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return CancellableContext(values=self._values, deadline=deadline, parent=self)

    def with_timeout(self, seconds: float) -> "CancellableContext":
        return self.with_deadline(time.monotonic() + seconds)

    def _refresh(self) -> None:
        if self._err is not None:
            return
        if self._parent is not None:
            parent_err = self._parent.err()
            if parent_err is not None:
                self._err = parent_err
                self._done.set()
                return
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._err = DeadlineExceededError("context deadline exceeded")
            self._done.set()

    def __str__(self) -> str:
        return "CancellableContext"


class WithoutCancel:
    """
    Value-only view of a request context.

    Inherits values from the parent but reports no deadline, is never done
    and never has an error.
    """

    def __init__(self, parent: RequestContext) -> None:
        self._parent = parent

    def deadline(self) -> Optional[float]:
        return None

    def done(self) -> Optional[threading.Event]:
        return None

    def err(self) -> Optional[ContextError]:
        return None

    def value(self, key: str) -> Any:
        return self._parent.value(key)

    @property
    def values(self) -> Context:
        return self._parent.values

    def __str__(self) -> str:
        return context_name(self._parent) + ".WithoutCancel"


def without_cancel(parent: RequestContext) -> WithoutCancel:
    """
    Returns a copy of parent that inherits only values and not
    deadlines/cancellation/errors. This is useful for implementing
    non-timed-out tasks during cleanup.
    """
    logger.debug("Detaching values from %s", context_name(parent))
    return WithoutCancel(parent)


def context_name(ctx: object) -> str:
    if type(ctx).__str__ is not object.__str__:
        return str(ctx)
    return type(ctx).__name__
