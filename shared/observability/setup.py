import logging

import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OpenTelemetry
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from shared.config import settings

_tracer_provider_installed = False


def add_otel_ids(logger, log_method, event_dict):
    """Stamp the active trace and span on a log event so logs join traces."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict


def configure_logging():
    level = logging.getLevelName(settings.LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO

    # Workflow and sweep events are structured JSON
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_otel_ids,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Repositories, adapters and the ticker log through the stdlib
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def configure_tracing(app: FastAPI, service_name: str):
    global _tracer_provider_installed

    # All sub-apps run in one process, so the provider is installed once
    if not _tracer_provider_installed:
        provider = TracerProvider(resource=Resource.create({SERVICE_NAME: "fulfillment_engine"}))
        trace.set_tracer_provider(provider)
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True))
        )
        # Outgoing renderer, mailer and payment gateway calls become child spans
        HTTPXClientInstrumentor().instrument()
        _tracer_provider_installed = True

    FastAPIInstrumentor.instrument_app(app, server_request_hook=_tag_service(service_name))


def _tag_service(service_name: str):
    def hook(span, scope):
        if span and span.is_recording():
            span.set_attribute("fulfillment.service", service_name)
    return hook


def configure_metrics(app: FastAPI):
    # Request latency and status codes per sub-app, scraped at <mount>/metrics
    Instrumentator(excluded_handlers=["/health"]).instrument(app).expose(app, include_in_schema=False)


def setup_observability(app: FastAPI, service_name: str):
    """
    Bootstraps logging, tracing and HTTP metrics for one mounted sub-app.

    Logging is always on. Tracing and HTTP metrics follow TRACING_ENABLED and
    HTTP_METRICS_ENABLED so tests and local runs need no collector.
    """
    configure_logging()
    if settings.TRACING_ENABLED:
        configure_tracing(app, service_name)
    if settings.HTTP_METRICS_ENABLED:
        configure_metrics(app)
    structlog.get_logger(__name__).info(
        "observability_configured",
        service=service_name,
        tracing=settings.TRACING_ENABLED,
        http_metrics=settings.HTTP_METRICS_ENABLED,
    )
