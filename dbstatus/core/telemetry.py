import logging
import os

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = logging.getLogger(__name__)

SERVICE_NAME = "db-status-monitor"


def telemetry_enabled() -> bool:
    otel_debug = os.environ.get("OTEL_DEBUG", "false").lower() == "true"
    return bool(os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")) or otel_debug


def init_telemetry(app_name: str = SERVICE_NAME) -> bool:
    """
    Install OpenTelemetry tracer and meter providers.

    Without ``OTEL_EXPORTER_OTLP_ENDPOINT`` (or ``OTEL_DEBUG=true`` for console
    exporters) nothing is installed and the API stays a no-op.  Returns whether
    providers were installed.
    """
    if not telemetry_enabled():
        logger.info("OpenTelemetry is disabled (set OTEL_EXPORTER_OTLP_ENDPOINT to enable).")
        return False

    otlp_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    logger.info("Initializing OpenTelemetry for %s", app_name)
    resource = Resource.create({"service.name": app_name})

    tracer_provider = TracerProvider(resource=resource)
    span_exporter = OTLPSpanExporter(endpoint=otlp_endpoint) if otlp_endpoint else ConsoleSpanExporter()
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(tracer_provider)

    metric_exporter = OTLPMetricExporter(endpoint=otlp_endpoint) if otlp_endpoint else ConsoleMetricExporter()
    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[PeriodicExportingMetricReader(metric_exporter)],
    )
    metrics.set_meter_provider(meter_provider)
    return True


def get_meter():
    """Get the application meter for custom metrics."""
    return metrics.get_meter("dbstatus.metrics")
