"""
Telemetry module for OpenTelemetry + Application Insights.

Traces store management, document ingestion and grounded generation calls.
Spans go to Application Insights when a connection string is configured,
and to stdout when console export is switched on for local debugging.
"""

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from docchat.core.config import Settings

logger = logging.getLogger(__name__)

SERVICE_NAME = "docchat"
SERVICE_VERSION = "0.1.0"

_tracer: trace.Tracer | None = None
_provider: TracerProvider | None = None


def setup_telemetry(settings: Settings) -> None:
    """
    Install the tracer provider for the process.

    Only the first call installs a provider; later calls (one per app
    lifespan in tests) reuse it.

    Args:
        settings: Reads `applicationinsights_connection_string` and
                  `trace_console_export`. With neither set, spans are
                  recorded but not exported.
    """
    global _tracer, _provider

    if _provider is not None:
        return

    resource = Resource.create(
        {"service.name": SERVICE_NAME, "service.version": SERVICE_VERSION}
    )
    provider = TracerProvider(resource=resource)
    exporting = False

    if settings.applicationinsights_connection_string:
        try:
            from azure.monitor.opentelemetry.exporter import (
                AzureMonitorTraceExporter,
            )

            exporter = AzureMonitorTraceExporter(
                connection_string=settings.applicationinsights_connection_string
            )
            provider.add_span_processor(BatchSpanProcessor(exporter))
            exporting = True
            logger.info("Application Insights telemetry enabled.")
        except ImportError:
            logger.warning(
                "azure-monitor-opentelemetry-exporter not installed. "
                "Install the 'azure' extra to export traces."
            )

    if settings.trace_console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        exporting = True
        logger.info("Console span export enabled.")

    if not exporting:
        logger.info("No trace exporter configured. Spans are not exported.")

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = trace.get_tracer(SERVICE_NAME, SERVICE_VERSION)


def shutdown_telemetry() -> None:
    """Flush pending spans. Called once when the app shuts down."""
    if _provider is not None:
        _provider.force_flush()


def get_tracer() -> trace.Tracer:
    """Return the application tracer, initializing a no-op if not set up."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(SERVICE_NAME, SERVICE_VERSION)
    return _tracer
