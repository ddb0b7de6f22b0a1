"""
OpenTelemetry tracing for the command engine.

Tracing is off unless enabled in Settings; with no provider configured
the OpenTelemetry API hands out no-op tracers, so spans cost nothing.
"""

import logging
from contextlib import asynccontextmanager

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import SpanKind, Status, StatusCode

from cmdengine import __version__

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None


def init_tracing(settings) -> TracerProvider | None:
    """
    Configure OpenTelemetry tracing from Settings.

    Returns:
        Configured TracerProvider or None if disabled
    """
    global _tracer_provider

    if not settings.otel_enabled:
        logger.info("OpenTelemetry tracing disabled")
        return None

    if _tracer_provider is not None:
        logger.debug("TracerProvider already configured")
        return _tracer_provider

    # The gRPC exporter pulls in grpcio; only load it when tracing is on
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    resource = Resource.create({
        SERVICE_NAME: settings.otel_service_name,
        SERVICE_VERSION: __version__,
        "deployment.environment": settings.environment,
    })

    if settings.otel_insecure:
        logger.warning("OTLP exporter using insecure connection (not for production)")

    try:
        exporter = OTLPSpanExporter(
            endpoint=settings.otel_endpoint,
            insecure=settings.otel_insecure,
        )
    except Exception as e:
        logger.error(f"Failed to create OTLP exporter: {e}")
        raise

    _tracer_provider = TracerProvider(resource=resource)
    _tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    if settings.otel_console:
        logger.info("Enabling console span export for debugging")
        _tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_tracer_provider)
    logger.info(f"OpenTelemetry tracing configured: endpoint={settings.otel_endpoint}")
    return _tracer_provider


def get_tracer(name: str = "cmdengine") -> trace.Tracer:
    """Get a tracer (no-op until init_tracing() installs a provider)."""
    return trace.get_tracer(name, __version__)


def shutdown_tracing() -> None:
    """Shutdown tracing and flush pending spans."""
    global _tracer_provider

    if _tracer_provider is not None:
        logger.info("Shutting down OpenTelemetry tracer")
        _tracer_provider.shutdown()
        _tracer_provider = None


@asynccontextmanager
async def trace_span(name: str, kind: SpanKind = SpanKind.INTERNAL, **attributes):
    """
    Context manager for tracing code blocks.

    Example:
        async with trace_span("command.dispatch", action="shop.create_product"):
            result = await action.handle(payload)
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(name, kind=kind) as span:
        for k, v in attributes.items():
            span.set_attribute(k, str(v))

        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
