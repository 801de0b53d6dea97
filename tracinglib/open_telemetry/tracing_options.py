"""Configuration model for tracer provider initialization.

This module provides immutable options for building a tracer provider,
loaded from keyword values or environment variables with validation.
"""

import dataclasses
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Mapping, Optional, Sequence

from tracinglib.open_telemetry.attribute_names import TracingAttributeNames
from tracinglib.utilities.logger.log_levels import SRC_LOG_LEVELS

logger = logging.getLogger(__name__)
logger.setLevel(SRC_LOG_LEVELS["OPEN_TELEMETRY"])

# Environment variable names
ENV_VAR_ENDPOINT: str = "OTEL_EXPORTER_OTLP_ENDPOINT"
ENV_VAR_SERVICE_NAME: str = "OTEL_SERVICE_NAME"
ENV_VAR_SERVICE_VERSION: str = "OTEL_SERVICE_VERSION"
ENV_VAR_DEPLOYMENT_ENVIRONMENT: str = "OTEL_DEPLOYMENT_ENVIRONMENT"
ENV_VAR_ATTRIBUTES: str = "OTEL_TRACING_ATTRIBUTES"
ENV_VAR_STDOUT: str = "OTEL_TRACING_STDOUT"
ENV_VAR_DURATION_FILTER_ENABLED: str = "OTEL_SPAN_DURATION_FILTER_ENABLED"
ENV_VAR_MIN_DURATION_MS: str = "OTEL_MIN_SPAN_DURATION_MS"
ENV_VAR_MAX_DURATION_MS: str = "OTEL_MAX_SPAN_DURATION_MS"
ENV_VAR_INSTANCE_NAMESPACE: str = "INSTANCE_NAMESPACE"
ENV_VAR_INSTANCE_IP: str = "INSTANCE_IP"

# Boolean parsing
_TRUTHY_VALUES: frozenset[str] = frozenset(("true", "1", "yes", "on"))

ErrorHandler = Callable[[BaseException], None]
AttributePairs = tuple[tuple[str, str], ...]


def _parse_bool(value: str) -> bool:
    """
    Parse boolean value from string.

    Args:
        value: String value to parse

    Returns:
        True if value is in truthy set (case-insensitive), False otherwise
    """
    return value.strip().lower() in _TRUTHY_VALUES


def _parse_float(name: str, value: str, default: float) -> float:
    try:
        parsed = float(value)
    except ValueError:
        parsed = math.nan
    if not math.isfinite(parsed):
        logger.warning(
            "Invalid %s value: %s. Using default %.2fms.", name, value, default
        )
        return default
    return parsed


def parse_attribute_pairs(values: Sequence[str]) -> AttributePairs:
    """
    Turn a flat ``[key1, value1, key2, value2, ...]`` list into pairs.

    Args:
        values: Alternating keys and values

    Returns:
        Tuple of (key, value) pairs. Empty when fewer than two items or
        an odd number of items is given.
    """
    if len(values) < 2 or len(values) % 2 != 0:
        return ()
    return tuple((values[i], values[i + 1]) for i in range(0, len(values) - 1, 2))


def _coerce_attributes(value: Any) -> AttributePairs:
    """Accept a mapping, a "k,v,k,v" string, a flat list or a sequence of pairs."""
    if isinstance(value, Mapping):
        return tuple((str(k), str(v)) for k, v in value.items())
    if isinstance(value, str):
        return parse_attribute_pairs(
            [item.strip() for item in value.split(",")] if value else []
        )
    items = list(value)
    if all(isinstance(item, str) for item in items):
        return parse_attribute_pairs(items)
    return tuple((str(k), str(v)) for k, v in items)


@dataclass(frozen=True)
class TracingOptions:
    """
    Immutable options for tracer provider initialization.

    An empty ``endpoint`` means no collector: a stdout exporter is used
    instead and the duration filter is not installed. Duration bounds of
    0 disable the corresponding side of the filter.
    """

    endpoint: str = ""
    service_name: str = ""
    service_version: str = ""
    deployment_environment: str = ""
    attributes: AttributePairs = ()
    error_handler: Optional[ErrorHandler] = field(default=None, compare=False)
    stdout_trace: bool = False
    duration_filter_enabled: bool = True
    min_duration_ms: float = 10.0
    max_duration_ms: float = 60_000.0

    # Default values
    DEFAULT_DURATION_FILTER_ENABLED: ClassVar[bool] = True
    DEFAULT_MIN_DURATION_MS: ClassVar[float] = 10.0
    DEFAULT_MAX_DURATION_MS: ClassVar[float] = 60_000.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "TracingOptions":
        """
        Build options from a plain mapping. Unknown keys are ignored.

        Args:
            values: Option names mapped to values

        Returns:
            Immutable options instance
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(key for key in values if key not in known)
        if unknown:
            logger.debug("Ignoring unknown tracing options: %s", unknown)
        kwargs = {key: value for key, value in values.items() if key in known}
        if "attributes" in kwargs:
            kwargs["attributes"] = _coerce_attributes(kwargs["attributes"])
        return cls(**kwargs)

    @classmethod
    def from_environment(cls) -> "TracingOptions":
        """
        Load options from environment variables.

        Returns:
            Immutable options instance

        Environment Variables:
            OTEL_EXPORTER_OTLP_ENDPOINT: Collector gRPC endpoint (empty for stdout)
            OTEL_SERVICE_NAME: service.name resource attribute
            OTEL_SERVICE_VERSION: service.version resource attribute
            OTEL_DEPLOYMENT_ENVIRONMENT: deployment.environment resource attribute
            OTEL_TRACING_ATTRIBUTES: Comma-separated key,value,key,value list
            OTEL_TRACING_STDOUT: Also print spans to stdout
            OTEL_SPAN_DURATION_FILTER_ENABLED: Enable/disable the duration filter
            OTEL_MIN_SPAN_DURATION_MS: Drop spans shorter than this
            OTEL_MAX_SPAN_DURATION_MS: Drop spans longer than this
            INSTANCE_NAMESPACE: instance.namespace resource attribute
            INSTANCE_IP: instance.ip resource attribute
        """
        attributes_str = os.environ.get(ENV_VAR_ATTRIBUTES, "")
        attributes = parse_attribute_pairs(
            [item.strip() for item in attributes_str.split(",")]
            if attributes_str
            else []
        )
        if attributes_str and not attributes:
            logger.warning(
                "%s must hold an even number of comma-separated items, ignoring: %s",
                ENV_VAR_ATTRIBUTES,
                attributes_str,
            )

        instance_namespace = os.environ.get(ENV_VAR_INSTANCE_NAMESPACE, "")
        if instance_namespace:
            attributes += (
                (TracingAttributeNames.INSTANCE_NAMESPACE, instance_namespace),
            )
        instance_ip = os.environ.get(ENV_VAR_INSTANCE_IP, "")
        if instance_ip:
            attributes += ((TracingAttributeNames.INSTANCE_IP, instance_ip),)

        enabled_str = os.environ.get(
            ENV_VAR_DURATION_FILTER_ENABLED, str(cls.DEFAULT_DURATION_FILTER_ENABLED)
        )
        min_duration_str = os.environ.get(ENV_VAR_MIN_DURATION_MS, "")
        max_duration_str = os.environ.get(ENV_VAR_MAX_DURATION_MS, "")

        return cls(
            endpoint=os.environ.get(ENV_VAR_ENDPOINT, ""),
            service_name=os.environ.get(ENV_VAR_SERVICE_NAME, ""),
            service_version=os.environ.get(ENV_VAR_SERVICE_VERSION, ""),
            deployment_environment=os.environ.get(ENV_VAR_DEPLOYMENT_ENVIRONMENT, ""),
            attributes=attributes,
            stdout_trace=_parse_bool(os.environ.get(ENV_VAR_STDOUT, "false")),
            duration_filter_enabled=_parse_bool(enabled_str),
            min_duration_ms=(
                _parse_float(
                    ENV_VAR_MIN_DURATION_MS,
                    min_duration_str,
                    cls.DEFAULT_MIN_DURATION_MS,
                )
                if min_duration_str
                else cls.DEFAULT_MIN_DURATION_MS
            ),
            max_duration_ms=(
                _parse_float(
                    ENV_VAR_MAX_DURATION_MS,
                    max_duration_str,
                    cls.DEFAULT_MAX_DURATION_MS,
                )
                if max_duration_str
                else cls.DEFAULT_MAX_DURATION_MS
            ),
        )

    def with_attributes(self, values: Sequence[str]) -> "TracingOptions":
        """Return a copy whose attributes are parsed from a flat key/value list."""
        return dataclasses.replace(self, attributes=parse_attribute_pairs(values))

    @property
    def min_duration_ns(self) -> int:
        return int(self.min_duration_ms * 1_000_000)

    @property
    def max_duration_ns(self) -> int:
        return int(self.max_duration_ms * 1_000_000)

    def validate(self) -> list[str]:
        """
        Validate options and return list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors: list[str] = []

        if not math.isfinite(self.min_duration_ms):
            errors.append(
                f"min_duration_ms must be finite, got {self.min_duration_ms}"
            )
        elif self.min_duration_ms < 0:
            errors.append(f"min_duration_ms must be >= 0, got {self.min_duration_ms}")
        if not math.isfinite(self.max_duration_ms):
            errors.append(
                f"max_duration_ms must be finite, got {self.max_duration_ms}"
            )
        elif self.max_duration_ms < 0:
            errors.append(f"max_duration_ms must be >= 0, got {self.max_duration_ms}")

        return errors
