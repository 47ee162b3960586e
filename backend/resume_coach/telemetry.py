import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION

logger = logging.getLogger(__name__)


def setup_telemetry() -> bool:
    """
    Installs a global tracer provider that prints spans to the console.
    Returns False when the SDK could not be configured; the app keeps running.
    """
    try:
        resource = Resource(attributes={
            SERVICE_NAME: "resume-coach-backend",
            SERVICE_VERSION: "1.0.0",
        })
        tracer_provider = TracerProvider(resource=resource)
        # Spans are exported in batches so request handling never waits on the console.
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        trace.set_tracer_provider(tracer_provider)
        logger.info("OpenTelemetry configured with the console exporter.")
        return True
    except Exception as e:
        logger.error(f"Failed to configure OpenTelemetry: {e}", exc_info=True)
        return False
