"""OpenTelemetry initialization with duration filtering.

This module provides the TracingInitializer class that builds and registers
the process-wide tracer provider: an OTLP/gRPC exporter behind a batching
processor, optionally wrapped in a DurationFilterProcessor, with B3
multi-header propagation. Without a collector endpoint a stdout exporter
is installed instead.
"""

import logging
from logging import Logger
from threading import Lock
from typing import Callable, Dict, Optional

from opentelemetry import propagate, trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagators.b3 import B3MultiFormat
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ALWAYS_ON, ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from opentelemetry.trace import Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from tracinglib.open_telemetry.duration_filter_processor import (
    DurationFilterProcessor,
)
from tracinglib.open_telemetry.error_handler import OtelErrorHandler
from tracinglib.open_telemetry.tracing_options import TracingOptions
from tracinglib.utilities.logger.log_levels import SRC_LOG_LEVELS

ShutdownHandle = Callable[[], None]

INSTRUMENTATION_NAME: str = "tracinglib"
STDOUT_INSTRUMENTATION_NAME: str = "demo-stdouttrace"

OTLP_CONNECTION_TIMEOUT_SECONDS: float = 3.0
BATCH_SCHEDULE_DELAY_MILLIS: int = 5000
BATCH_MAX_EXPORT_BATCH_SIZE: int = 10


class TracingError(Exception):
    """Base exception for tracing setup errors"""


class TracingInitializationError(TracingError):
    """Raised when the exporter or resource for a tracer provider cannot be built"""


def build_resource(options: TracingOptions) -> Resource:
    """
    Build the resource describing this service.

    Empty service fields are left to the SDK defaults; attribute pairs
    with an empty key or value are skipped.
    """
    attributes: Dict[str, str] = {}
    if options.service_name:
        attributes[ResourceAttributes.SERVICE_NAME] = options.service_name
    if options.service_version:
        attributes[ResourceAttributes.SERVICE_VERSION] = options.service_version
    if options.deployment_environment:
        attributes[ResourceAttributes.DEPLOYMENT_ENVIRONMENT] = (
            options.deployment_environment
        )
    for key, value in options.attributes:
        if key and value:
            attributes[key] = value
    return Resource.create(attributes)


class TracingInitializer:
    """
    Builds and registers the global TracerProvider.

    Holds the installed provider and tracer as class state so span helpers
    can reach them. Thread-safe; initialization is idempotent until the
    installed provider is shut down or ``reset`` is called.
    """

    _tracer_provider: Optional[TracerProvider] = None
    _tracer: Optional[Tracer] = None
    _error_handler: Optional[OtelErrorHandler] = None
    _lock: Lock = Lock()
    _logger: Logger = logging.getLogger(__name__)
    _logger.setLevel(SRC_LOG_LEVELS["INITIALIZATION"])

    @classmethod
    def initialize(
        cls,
        options: Optional[TracingOptions] = None,
        exporter: Optional[SpanExporter] = None,
    ) -> ShutdownHandle:
        """
        Initialize the global tracer provider.

        The provider is also registered with
        ``opentelemetry.trace.set_tracer_provider``, which only takes effect
        once per process. After ``reset()`` a second call builds a new provider
        that this module and span_helpers use, but code calling
        ``opentelemetry.trace.get_tracer`` keeps the first, shut-down one.

        Args:
            options: Optional options override. If None, loads from environment.
            exporter: Optional exporter replacing the OTLP (or stdout) exporter

        Returns:
            Callable that shuts the installed provider down

        Raises:
            TracingInitializationError: If the exporter, resource or provider
                cannot be built
        """
        with cls._lock:
            if cls._tracer_provider is not None:
                cls._logger.debug("TracingInitializer already initialized")
                return cls._shutdown_handle(cls._tracer_provider)

            options = options or TracingOptions.from_environment()

            if not options.endpoint:
                cls._logger.info(
                    "No collector endpoint configured, using stdout exporter "
                    "without duration filtering"
                )
                return cls._install_stdout(options, exporter)

            error_handler = OtelErrorHandler(options.error_handler).install()
            try:
                span_exporter = exporter or OTLPSpanExporter(
                    endpoint=options.endpoint,
                    insecure=True,
                    timeout=OTLP_CONNECTION_TIMEOUT_SECONDS,
                )
            except Exception as e:
                error_handler.uninstall()
                raise TracingInitializationError(
                    f"failed to create the collector trace exporter ({e})"
                ) from e

            try:
                resource = build_resource(options)
            except Exception as e:
                error_handler.uninstall()
                raise TracingInitializationError(
                    f"failed to create resource ({e})"
                ) from e

            processors: list[SpanProcessor] = []
            try:
                processors.append(
                    BatchSpanProcessor(
                        span_exporter,
                        schedule_delay_millis=BATCH_SCHEDULE_DELAY_MILLIS,
                        max_export_batch_size=BATCH_MAX_EXPORT_BATCH_SIZE,
                    )
                )
                if options.stdout_trace:
                    processors.append(BatchSpanProcessor(ConsoleSpanExporter()))

                tracer_provider = TracerProvider(
                    sampler=ParentBased(root=TraceIdRatioBased(1.0)),
                    resource=resource,
                )
                for processor in processors:
                    tracer_provider.add_span_processor(
                        cls._wrap_with_duration_filter(processor, options)
                    )
            except Exception as e:
                error_handler.uninstall()
                # stops the batch worker threads already started
                for processor in processors:
                    processor.shutdown()
                raise TracingInitializationError(
                    f"failed to build the tracer provider ({e})"
                ) from e

            cls._error_handler = error_handler
            cls._install(tracer_provider, B3MultiFormat(), INSTRUMENTATION_NAME)

            cls._logger.info(
                "Tracer provider initialized. endpoint: %s, service: %s, version: %s",
                options.endpoint,
                options.service_name,
                options.service_version,
            )
            return cls._shutdown_handle(tracer_provider)

    @classmethod
    def initialize_stdout(
        cls, exporter: Optional[SpanExporter] = None
    ) -> ShutdownHandle:
        """
        Initialize a tracer provider that prints spans to stdout.

        Intended for local runs and unit tests; no duration filter is installed.
        """
        with cls._lock:
            if cls._tracer_provider is not None:
                cls._logger.debug("TracingInitializer already initialized")
                return cls._shutdown_handle(cls._tracer_provider)
            return cls._install_stdout(None, exporter)

    @classmethod
    def _install_stdout(
        cls, options: Optional[TracingOptions], exporter: Optional[SpanExporter]
    ) -> ShutdownHandle:
        tracer_provider = TracerProvider(
            sampler=ALWAYS_ON,
            resource=build_resource(options) if options else Resource.create(),
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(exporter or ConsoleSpanExporter())
        )
        if options is not None:
            cls._error_handler = OtelErrorHandler(options.error_handler).install()
        cls._install(
            tracer_provider,
            CompositePropagator(
                [TraceContextTextMapPropagator(), W3CBaggagePropagator()]
            ),
            STDOUT_INSTRUMENTATION_NAME,
        )
        return cls._shutdown_handle(tracer_provider)

    @classmethod
    def _install(
        cls,
        tracer_provider: TracerProvider,
        propagator: TextMapPropagator,
        instrumentation_name: str,
    ) -> None:
        trace.set_tracer_provider(tracer_provider)
        propagate.set_global_textmap(propagator)
        cls._tracer_provider = tracer_provider
        cls._tracer = tracer_provider.get_tracer(instrumentation_name)

    @classmethod
    def _wrap_with_duration_filter(
        cls, processor: SpanProcessor, options: TracingOptions
    ) -> SpanProcessor:
        """
        Wrap a processor with a DurationFilterProcessor if filtering is enabled.

        Args:
            processor: The processor that receives admitted spans
            options: Tracing options carrying the duration band

        Returns:
            The filter, or the processor itself when filtering is off
        """
        if not options.duration_filter_enabled:
            cls._logger.info("Span duration filtering disabled via configuration")
            return processor

        validation_errors = options.validate()
        if validation_errors:
            cls._logger.warning(
                "Span duration filter configuration has validation errors: "
                "%s. Disabling span duration filtering.",
                validation_errors,
            )
            return processor

        cls._logger.debug(
            "Wrapping %s with DurationFilterProcessor (min: %.2fms, max: %.2fms)",
            type(processor).__name__,
            options.min_duration_ms,
            options.max_duration_ms,
        )
        return DurationFilterProcessor(
            next_processor=processor,
            min_duration_ns=options.min_duration_ns,
            max_duration_ns=options.max_duration_ns,
        )

    @classmethod
    def _shutdown_handle(cls, tracer_provider: TracerProvider) -> ShutdownHandle:
        def shutdown() -> None:
            cls._shutdown_provider(tracer_provider)

        return shutdown

    @classmethod
    def _shutdown_provider(cls, tracer_provider: TracerProvider) -> None:
        with cls._lock:
            if cls._tracer_provider is tracer_provider:
                cls._clear()
        tracer_provider.shutdown()

    @classmethod
    def _clear(cls) -> None:
        if cls._error_handler is not None:
            cls._error_handler.uninstall()
        cls._error_handler = None
        cls._tracer_provider = None
        cls._tracer = None

    @classmethod
    def get_tracer(cls) -> Tracer:
        """
        Get the tracer of the installed provider.

        Installs the stdout provider first when nothing was initialized,
        so code under test can start spans without calling ``initialize``.
        """
        tracer = cls._tracer
        if tracer is None:
            cls.initialize_stdout()
            tracer = cls._tracer
        assert tracer is not None
        return tracer

    @classmethod
    def get_tracer_provider(cls) -> Optional[TracerProvider]:
        return cls._tracer_provider

    @classmethod
    def shutdown(cls) -> None:
        """Shut down the installed provider, if any."""
        with cls._lock:
            tracer_provider = cls._tracer_provider
            cls._clear()
        if tracer_provider is not None:
            tracer_provider.shutdown()

    @classmethod
    def reset(cls) -> None:
        """
        Reset initialization state.

        FOR TESTING ONLY - allows re-initialization in test scenarios.
        """
        cls.shutdown()
