"""Tests for tracing settings and span processor selection."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace.export import SimpleSpanProcessor

from polystash import observability
from polystash.errors import ConfigurationError
from polystash.observability import (
    TracingConfigError,
    TracingSettings,
    build_span_processor,
    configure_tracing,
)


class TestTracingSettings:
    """Tests for TracingSettings.from_env()."""

    def test_defaults_when_unset(self) -> None:
        settings = TracingSettings.from_env({})

        assert settings == TracingSettings()
        assert settings.enabled is False
        assert settings.exporter == "otlp"
        assert settings.otlp_protocol == "grpc"
        assert settings.otlp_endpoint is None

    def test_reads_polystash_variables(self) -> None:
        settings = TracingSettings.from_env(
            {
                "POLYSTASH_OTEL_ENABLED": "true",
                "POLYSTASH_REQUIRE_OTEL": "1",
                "POLYSTASH_OTEL_SERVICE_NAME": "blob-gateway",
                "POLYSTASH_OTEL_EXPORTER": "Console",
                "POLYSTASH_OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318",
                "POLYSTASH_OTEL_EXPORTER_OTLP_PROTOCOL": "HTTP",
                "POLYSTASH_OTEL_RESOURCE_ATTRS": "env=prod, region = eu ,broken,=x",
            }
        )

        assert settings.enabled is True
        assert settings.required is True
        assert settings.service_name == "blob-gateway"
        assert settings.exporter == "console"
        assert settings.otlp_endpoint == "http://collector:4318"
        assert settings.otlp_protocol == "http"
        assert settings.resource_attributes == {"env": "prod", "region": "eu"}


class TestSpanProcessor:
    """Tests for build_span_processor()."""

    def test_console_exporter(self) -> None:
        processor = build_span_processor(TracingSettings(enabled=True, exporter="console"))

        assert isinstance(processor, SimpleSpanProcessor)

    def test_unknown_exporter_rejected(self) -> None:
        with pytest.raises(TracingConfigError, match="Unknown tracing exporter"):
            build_span_processor(TracingSettings(enabled=True, exporter="zipkin"))

    def test_unknown_protocol_rejected(self) -> None:
        with pytest.raises(TracingConfigError, match="Unknown OTLP protocol"):
            build_span_processor(TracingSettings(enabled=True, otlp_protocol="udp"))


class TestConfigureTracing:
    """Tests for configure_tracing() failure handling."""

    @pytest.fixture(autouse=True)
    def no_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(observability, "_tracer_provider", None)

    def test_disabled_returns_false(self) -> None:
        assert configure_tracing(TracingSettings()) is False

    def test_failure_is_logged_when_optional(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("ERROR", logger="polystash.observability"):
            result = configure_tracing(TracingSettings(enabled=True, exporter="zipkin"))

        assert result is False
        assert "Failed to configure tracing" in caplog.text

    def test_failure_raises_when_required(self) -> None:
        with pytest.raises(TracingConfigError) as exc_info:
            configure_tracing(TracingSettings(enabled=True, required=True, exporter="zipkin"))

        assert isinstance(exc_info.value, ConfigurationError)
