import logging
from typing import Optional

from tracinglib.open_telemetry.tracing_options import ErrorHandler
from tracinglib.utilities.logger.log_levels import SRC_LOG_LEVELS

logger = logging.getLogger(__name__)
logger.setLevel(SRC_LOG_LEVELS["OPEN_TELEMETRY"])

# The SDK and exporters report their internal failures under this logger
OTEL_LOGGER_NAME: str = "opentelemetry"


class OtelSdkError(Exception):
    """Raised to carry an SDK error that was only reported as a log message"""


def log_error(err: BaseException) -> None:
    """Default error handler: log the SDK error and carry on."""
    logger.error("[tracing] got error: %s", err)


class OtelErrorHandler(logging.Handler):
    """
    Routes errors the OpenTelemetry SDK logs to a user supplied callback.

    The SDK does not raise from exporter threads; it logs. Attaching this
    handler to the ``opentelemetry`` logger turns those records into calls
    to ``callback(err)``.
    """

    def __init__(self, callback: Optional[ErrorHandler] = None) -> None:
        super().__init__(level=logging.ERROR)
        self.callback: ErrorHandler = callback or log_error

    def emit(self, record: logging.LogRecord) -> None:
        try:
            err: BaseException
            if record.exc_info and record.exc_info[1] is not None:
                err = record.exc_info[1]
            else:
                err = OtelSdkError(record.getMessage())
            self.callback(err)
        except Exception:
            self.handleError(record)

    def install(self) -> "OtelErrorHandler":
        logging.getLogger(OTEL_LOGGER_NAME).addHandler(self)
        return self

    def uninstall(self) -> None:
        logging.getLogger(OTEL_LOGGER_NAME).removeHandler(self)
