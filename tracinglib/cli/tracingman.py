"""
tracingman - emit a small demo span tree to a collector or stdout.

    python -m tracinglib.cli.tracingman -e tempo.service.dc1.consul:4317 -s MyDemoService
"""

import argparse
import dataclasses
import logging
import sys
import time
import uuid
from typing import Dict, List, Optional

from opentelemetry.context import Context
from opentelemetry.trace import Span

from tracinglib.open_telemetry.attribute_names import B3HeaderNames
from tracinglib.open_telemetry.b3_extractor import new_span_from_b3
from tracinglib.open_telemetry.otel_initializer import (
    TracingInitializationError,
    TracingInitializer,
)
from tracinglib.open_telemetry.span_helpers import ctx_with_span, span_start, trace_id
from tracinglib.open_telemetry.tracing_options import TracingOptions
from tracinglib.utilities.logger.log_levels import SRC_LOG_LEVELS

logger = logging.getLogger(__name__)
logger.setLevel(SRC_LOG_LEVELS["CLI"])

# see opentelemetry-propagator-b3 test data
SPAN_ID_STR: str = "00f067aa0ba902b7"

DEFAULT_ROOT_SPAN_NAME: str = "ThisIsMyRootSpanName"
DEFAULT_SERVICE_NAME: str = "MyDemoService"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tracingman",
        description="Emit a demo span tree through the tracing setup",
    )
    parser.add_argument(
        "-e",
        dest="endpoint",
        default="",
        help="opentelemetry collector grpc endpoint, for example: "
        "tempo.service.dc1.consul:4317",
    )
    parser.add_argument(
        "-n", dest="root_span_name", default=DEFAULT_ROOT_SPAN_NAME, help="root span name"
    )
    parser.add_argument(
        "-s", dest="service_name", default=DEFAULT_SERVICE_NAME, help="server name"
    )
    parser.add_argument(
        "-b", dest="with_b3", action="store_true", help="with b3 propagator"
    )
    return parser.parse_args(argv)


def build_b3_headers() -> Dict[str, str]:
    """Synthetic B3 headers with a random trace id, as a caller would send them."""
    return {
        B3HeaderNames.TRACE_ID: uuid.uuid4().hex,
        B3HeaderNames.SPAN_ID: SPAN_ID_STR,
        B3HeaderNames.SAMPLED: "true",
    }


def create_test_span(ctx: Context) -> None:
    ctx, span = span_start("test.MySpanName", ctx)
    try:
        sub_ctx, sub_span = span_start("test.MySubWork01", ctx)
        try:
            time.sleep(0.480)

            _, sub_sub_span = span_start("test.MySubSubWork02", sub_ctx)
            try:
                time.sleep(0.120)
            finally:
                sub_sub_span.end()
        finally:
            sub_span.end()
    finally:
        span.end()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(stream=sys.stderr, level=logging.INFO)
    args = parse_args(argv)

    logger.info(
        "begin init tracer provider. otel_grpc_endpoint: %s, service_name: %s, "
        "root_span_name: %s",
        args.endpoint,
        args.service_name,
        args.root_span_name,
    )

    options = dataclasses.replace(
        TracingOptions.from_environment(),
        endpoint=args.endpoint,
        service_name=args.service_name,
        stdout_trace=True,
    )
    try:
        shutdown = TracingInitializer.initialize(options)
    except TracingInitializationError:
        logger.exception("Failed to initialize tracing")
        return 1

    try:
        ctx = Context()
        sp: Span
        if args.with_b3:
            logger.info("b3 propagator enabled")
            sp = new_span_from_b3(build_b3_headers(), ctx)
            if not sp.is_recording():
                logger.warning("parent is not recording span, create new")
                # continues the remote trace when the headers were valid
                ctx, sp = span_start(args.root_span_name, ctx_with_span(sp, ctx))
            else:
                ctx = ctx_with_span(sp, ctx)
        else:
            ctx, sp = span_start(args.root_span_name, ctx)
        try:
            print(f"traceID:\n{trace_id(ctx)}")
            create_test_span(ctx)
            print("done")
        finally:
            sp.end()
    finally:
        shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
