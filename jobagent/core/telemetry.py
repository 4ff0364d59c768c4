from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from jobagent.core.config import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"
ENDPOINT_ENV_VARS = ("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "OTEL_EXPORTER_OTLP_ENDPOINT")
HEADERS_ENV_VAR = "OTEL_EXPORTER_OTLP_HEADERS"

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()
_correlation_installed = False


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None
    service_name: str | None = None


def configure_logging() -> None:
    """Install trace-id aware log records and a root handler if none exists yet."""
    _install_log_correlation()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def setup_telemetry(settings: Settings, *, component: str) -> TelemetryRuntime:
    """Configure the global tracer provider for one process component (``api`` or ``worker``).

    Spans are exported over OTLP/HTTP when an endpoint is configured and kept
    local otherwise; outbound httpx calls are traced either way.
    """
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None)
    if settings.otel_log_correlation:
        _install_log_correlation()

    service_name = f"{settings.otel_service_name}-{component}"
    provider = build_tracer_provider(settings, service_name)
    trace.set_tracer_provider(provider)
    _HTTPX_INSTRUMENTOR.instrument()
    logger.info(
        "telemetry enabled service=%s sample_ratio=%s", service_name, settings.otel_trace_sample_ratio
    )
    return TelemetryRuntime(enabled=True, provider=provider, service_name=service_name)


def shutdown_telemetry(runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    _HTTPX_INSTRUMENTOR.uninstrument()
    if runtime.provider is not None:
        runtime.provider.force_flush()
        runtime.provider.shutdown()


def setup_api_telemetry(app: FastAPI, settings: Settings) -> TelemetryRuntime:
    runtime = setup_telemetry(settings, component="api")
    app.state.telemetry_enabled = runtime.enabled
    return runtime


def shutdown_api_telemetry(app: FastAPI, runtime: TelemetryRuntime) -> None:
    app.state.telemetry_enabled = False
    shutdown_telemetry(runtime)


def build_tracer_provider(settings: Settings, service_name: str) -> TracerProvider:
    resource = Resource.create({SERVICE_NAME: service_name, DEPLOYMENT_ENVIRONMENT: settings.environment})
    provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio))
    options = exporter_options(settings)
    if options is None:
        logger.info("OTel exporter endpoint not set; spans remain local-only for service=%s", service_name)
    else:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**options)))
    return provider


def exporter_options(settings: Settings) -> dict[str, object] | None:
    """OTLP exporter kwargs from settings, falling back to the standard OTEL_* variables."""
    endpoint = settings.otel_exporter_otlp_endpoint or next(
        (os.environ[name] for name in ENDPOINT_ENV_VARS if os.environ.get(name)), None
    )
    if not endpoint:
        return None
    options: dict[str, object] = {"endpoint": endpoint}
    headers = parse_headers(settings.otel_exporter_otlp_headers or os.environ.get(HEADERS_ENV_VAR))
    if headers:
        options["headers"] = headers
    return options


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2``; entries without ``=`` or with an empty key are dropped."""
    pairs = (item.partition("=") for item in (raw or "").split(","))
    return {key.strip(): value.strip() for key, separator, value in pairs if separator and key.strip()}


def _install_log_correlation() -> None:
    global _correlation_installed
    if _correlation_installed:
        return

    def record_factory(*args: object, **kwargs: object) -> logging.LogRecord:
        record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
        context = trace.get_current_span().get_span_context()
        record.trace_id = format(context.trace_id, "032x") if context.is_valid else "0" * 32
        record.span_id = format(context.span_id, "016x") if context.is_valid else "0" * 16
        return record

    logging.setLogRecordFactory(record_factory)
    _correlation_installed = True
