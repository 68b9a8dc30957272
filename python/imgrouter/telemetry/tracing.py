"""
Tracing implementation for the image router.
"""
import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

from imgrouter.config.settings import Settings
from imgrouter.constants import TELEMETRY_SERVICE_NAME, TELEMETRY_VERSION


logger = logging.getLogger(__name__)


def setup_tracing(settings: Settings, service_name: Optional[str] = None) -> bool:
    """
    Set up OpenTelemetry tracing.

    Args:
        settings: Application settings
        service_name: Name of the service (default: from settings)

    Returns:
        True if an exporter was installed
    """
    if not settings.telemetry.enabled:
        logger.debug("Telemetry is disabled, skipping tracing setup")
        return False

    if not settings.telemetry.otlp_endpoint:
        logger.warning("No OTLP endpoint configured, skipping tracing setup")
        return False

    resource = Resource(attributes={
        SERVICE_NAME: service_name or settings.telemetry.service_name or TELEMETRY_SERVICE_NAME,
        "service.version": TELEMETRY_VERSION,
        "deployment.environment": settings.environment
    })

    tracer_provider = TracerProvider(resource=resource)
    otlp_exporter = OTLPSpanExporter(endpoint=settings.telemetry.otlp_endpoint)
    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
    trace.set_tracer_provider(tracer_provider)

    logger.info(f"Tracing initialized with OTLP endpoint: {settings.telemetry.otlp_endpoint}")
    return True


def get_tracer(name: str = "imgrouter") -> trace.Tracer:
    """
    Get a tracer instance. Spans are no-ops until tracing is set up.
    """
    return trace.get_tracer(name)
