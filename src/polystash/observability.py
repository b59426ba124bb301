"""OpenTelemetry setup for PolyStash processes.

Blob store operations are always decorated (see polystash.tracing), but they
only produce exported spans once configure_tracing() has installed a tracer
provider. The CLI does this at startup; embedding applications call it
themselves.

Environment Variables:
    POLYSTASH_OTEL_ENABLED: "1" to enable tracing (default: disabled)
    POLYSTASH_REQUIRE_OTEL: "1" to fail startup if tracing cannot be set up
    POLYSTASH_OTEL_SERVICE_NAME: service.name resource attribute (default: "polystash")
    POLYSTASH_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    POLYSTASH_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint (optional)
    POLYSTASH_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    POLYSTASH_OTEL_RESOURCE_ATTRS: extra resource attributes as k=v,k=v
    POLYSTASH_OTEL_TEST_CAPTURE: "1" to keep spans in memory instead of exporting
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from polystash.errors import ConfigurationError

logger = logging.getLogger(__name__)

POLYSTASH_OTEL_ENABLED_ENV = "POLYSTASH_OTEL_ENABLED"
POLYSTASH_REQUIRE_OTEL_ENV = "POLYSTASH_REQUIRE_OTEL"
POLYSTASH_OTEL_TEST_CAPTURE_ENV = "POLYSTASH_OTEL_TEST_CAPTURE"

EXPORTER_OTLP = "otlp"
EXPORTER_CONSOLE = "console"
SUPPORTED_EXPORTERS = frozenset({EXPORTER_OTLP, EXPORTER_CONSOLE})
SUPPORTED_OTLP_PROTOCOLS = frozenset({"grpc", "http"})

_tracer_provider: TracerProvider | None = None
_test_exporter: InMemorySpanExporter | None = None


class TracingConfigError(ConfigurationError):
    """Raised when tracing is required but cannot be configured."""


def env_flag(key: str, environ: Mapping[str, str] | None = None) -> bool:
    """Return True when an environment flag is set to 1/true/yes."""
    env = os.environ if environ is None else environ
    return env.get(key, "").strip().lower() in ("1", "true", "yes")


def is_tracing_enabled() -> bool:
    return env_flag(POLYSTASH_OTEL_ENABLED_ENV)


def _parse_resource_attrs(raw: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        if sep and key.strip():
            result[key.strip()] = value.strip()
    return result


@dataclass(frozen=True)
class TracingSettings:
    """Tracing options for one process.

    Attributes:
        enabled: Whether spans are recorded at all.
        required: Whether a configuration failure aborts startup.
        test_capture: Keep finished spans in memory (see get_test_spans()).
        service_name: Value of the service.name resource attribute.
        exporter: "otlp" or "console".
        otlp_endpoint: Collector endpoint; exporter default when None.
        otlp_protocol: "grpc" or "http".
        resource_attributes: Extra resource attributes.
    """

    enabled: bool = False
    required: bool = False
    test_capture: bool = False
    service_name: str = "polystash"
    exporter: str = EXPORTER_OTLP
    otlp_endpoint: str | None = None
    otlp_protocol: str = "grpc"
    resource_attributes: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TracingSettings:
        env = os.environ if environ is None else environ
        return cls(
            enabled=env_flag(POLYSTASH_OTEL_ENABLED_ENV, env),
            required=env_flag(POLYSTASH_REQUIRE_OTEL_ENV, env),
            test_capture=env_flag(POLYSTASH_OTEL_TEST_CAPTURE_ENV, env),
            service_name=env.get("POLYSTASH_OTEL_SERVICE_NAME", "").strip() or "polystash",
            exporter=env.get("POLYSTASH_OTEL_EXPORTER", "").strip().lower() or EXPORTER_OTLP,
            otlp_endpoint=env.get("POLYSTASH_OTEL_EXPORTER_OTLP_ENDPOINT", "").strip() or None,
            otlp_protocol=(
                env.get("POLYSTASH_OTEL_EXPORTER_OTLP_PROTOCOL", "").strip().lower() or "grpc"
            ),
            resource_attributes=_parse_resource_attrs(
                env.get("POLYSTASH_OTEL_RESOURCE_ATTRS", "")
            ),
        )


def _otlp_exporter(settings: TracingSettings) -> SpanExporter:
    # The OTLP exporters ship in the optional "otlp" extra.
    kwargs = {"endpoint": settings.otlp_endpoint} if settings.otlp_endpoint else {}
    if settings.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(**kwargs)

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GrpcSpanExporter,
    )

    return GrpcSpanExporter(**kwargs)


def build_span_processor(settings: TracingSettings) -> SpanProcessor:
    """Return the span processor matching settings.

    Raises:
        TracingConfigError: If the exporter or OTLP protocol is unknown.
    """
    global _test_exporter

    if settings.test_capture:
        if _test_exporter is None:
            _test_exporter = InMemorySpanExporter()
        return SimpleSpanProcessor(_test_exporter)

    if settings.exporter not in SUPPORTED_EXPORTERS:
        raise TracingConfigError(f"Unknown tracing exporter: {settings.exporter!r}")
    if settings.exporter == EXPORTER_CONSOLE:
        return SimpleSpanProcessor(ConsoleSpanExporter())

    if settings.otlp_protocol not in SUPPORTED_OTLP_PROTOCOLS:
        raise TracingConfigError(f"Unknown OTLP protocol: {settings.otlp_protocol!r}")
    return BatchSpanProcessor(_otlp_exporter(settings))


def configure_tracing(settings: TracingSettings | None = None) -> bool:
    """Install the PolyStash tracer provider.

    Idempotent: the global provider can be set only once per process, so
    later calls return True without changing it.

    Args:
        settings: Tracing options; read from the environment when None.

    Returns:
        True if spans will be recorded, False otherwise.

    Raises:
        TracingConfigError: If settings.required and configuration fails.
    """
    global _tracer_provider

    settings = settings or TracingSettings.from_env()
    if not settings.enabled:
        logger.debug("Tracing disabled (%s not set)", POLYSTASH_OTEL_ENABLED_ENV)
        return False
    if _tracer_provider is not None:
        return True

    try:
        processor = build_span_processor(settings)
    except (TracingConfigError, ImportError) as e:
        logger.error("Failed to configure tracing: %s", e)
        if settings.required:
            if isinstance(e, TracingConfigError):
                raise
            raise TracingConfigError(f"Tracing required but exporter is unavailable: {e}") from e
        return False

    resource = Resource.create(
        {"service.name": settings.service_name, **settings.resource_attributes}
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    _tracer_provider = provider

    logger.info(
        "Tracing configured: service=%s exporter=%s",
        settings.service_name,
        "in-memory" if settings.test_capture else settings.exporter,
    )
    return True


def get_test_spans() -> list[ReadableSpan]:
    """Return spans captured in memory (POLYSTASH_OTEL_TEST_CAPTURE=1)."""
    if _test_exporter is None:
        return []
    return list(_test_exporter.get_finished_spans())


def clear_test_spans() -> None:
    if _test_exporter is not None:
        _test_exporter.clear()


def reset_tracing() -> None:
    """Drop captured spans.

    The installed provider stays in place; OpenTelemetry refuses to replace
    it within a process.
    """
    clear_test_spans()
