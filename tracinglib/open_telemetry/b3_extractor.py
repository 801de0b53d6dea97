"""Extraction of a remote parent from B3 multi-header requests.

Incoming requests carry ``x-b3-traceid``, ``x-b3-spanid``, ``x-b3-sampled``
and optionally ``x-b3-parentspanid`` / ``x-b3-flags``. HTTP frameworks do
not agree on header case or on whether values are lists, so headers are
read through a case-insensitive getter before the B3 propagator decodes them.
"""

import logging
from typing import Iterable, List, Mapping, Optional, Union

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.propagators.b3 import B3MultiFormat
from opentelemetry.propagators.textmap import Getter
from opentelemetry.trace import Span

from tracinglib.open_telemetry.span_helpers import span_start
from tracinglib.utilities.logger.log_levels import SRC_LOG_LEVELS

logger = logging.getLogger(__name__)
logger.setLevel(SRC_LOG_LEVELS["OPEN_TELEMETRY"])

HeaderValue = Union[str, Iterable[str]]
Headers = Mapping[str, HeaderValue]


class CaseInsensitiveHeaderGetter(Getter[Headers]):
    """Reads single or multi-valued headers regardless of key case."""

    def get(self, carrier: Headers, key: str) -> Optional[List[str]]:
        wanted = key.lower()
        for header_name, value in carrier.items():
            if header_name.lower() != wanted:
                continue
            if isinstance(value, str):
                return [value]
            return list(value)
        return None

    def keys(self, carrier: Headers) -> List[str]:
        return [header_name.lower() for header_name in carrier]


_b3_propagator = B3MultiFormat()
_header_getter = CaseInsensitiveHeaderGetter()


def extract_b3_context(headers: Headers, context: Optional[Context] = None) -> Context:
    """
    Decode B3 headers into a context carrying the remote span context.

    Returns ``context`` unchanged (or an empty context) when the headers
    are absent or malformed.
    """
    return _b3_propagator.extract(headers, context=context, getter=_header_getter)


def new_span_from_b3(headers: Headers, context: Optional[Context] = None) -> Span:
    """
    Return a span handle for the remote parent described by B3 headers.

    The handle is never recording: it only carries the remote span context.
    When the headers are absent or malformed its span context is invalid,
    and callers should start a fresh root span instead.
    """
    return trace.get_current_span(extract_b3_context(headers, context))


def start_span_from_b3(
    name: str, headers: Headers, context: Optional[Context] = None
) -> tuple[Context, Span]:
    """
    Start a span whose parent is the remote span described by B3 headers.

    Falls back to a root span (child of ``context``) when no valid remote
    parent could be extracted.
    """
    parent_context = extract_b3_context(headers, context)
    remote_span = trace.get_current_span(parent_context)
    if not remote_span.get_span_context().is_valid:
        logger.warning("No valid B3 parent in request headers, starting new root span")
        parent_context = context
    return span_start(name, parent_context)
