import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from azure.monitor.opentelemetry.exporter import AzureMonitorTraceExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from bookingcore.configuration.config import Config

# Configure logger
logger = logging.getLogger("bookingcore")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

# Resource to identify this service
resource = Resource(attributes={
    SERVICE_NAME: "bookingcore"
})

def setup_azure_monitor():
    """Set up tracing; spans are exported to Azure Monitor when a connection string is configured."""
    if not Config.APPLICATIONINSIGHTS_CONNECTION_STRING:
        logger.info("Application Insights not configured, using default tracer")
        return trace.get_tracer(__name__)
    try:
        trace_provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(trace_provider)

        azure_exporter = AzureMonitorTraceExporter(
            connection_string=Config.APPLICATIONINSIGHTS_CONNECTION_STRING
        )
        trace_provider.add_span_processor(
            BatchSpanProcessor(azure_exporter)
        )

        logger.info("Azure Monitor setup completed successfully")
        return trace.get_tracer(__name__)
    except Exception as e:
        logger.error(f"Failed to set up Azure Monitor: {str(e)}")
        # Return a no-op tracer if setup fails
        return trace.get_tracer(__name__)

# Initialize tracer
tracer = setup_azure_monitor()

def instrument_fastapi(app):
    """Instrument a FastAPI application for monitoring."""
    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI app instrumented successfully")
    except Exception as e:
        logger.error(f"Failed to instrument FastAPI app: {str(e)}")

def start_span(name, context=None, kind=None, attributes=None):
    """Start a new trace span with the specified name and attributes."""
    return tracer.start_as_current_span(name, context=context, kind=kind, attributes=attributes)

def log_event(event_name, properties=None):
    """Record a named event on the current span and in the log."""
    try:
        span = trace.get_current_span()
        span.add_event(event_name, attributes={k: str(v) for k, v in (properties or {}).items()})
        logger.info(f"Event: {event_name}", extra={"custom_properties": properties})
    except Exception as e:
        logger.error(f"Failed to log event '{event_name}': {str(e)}")

def log_warning(message, properties=None):
    """Log a recoverable problem that does not fail the current operation."""
    try:
        logger.warning(message, extra={"custom_properties": properties})
    except Exception as e:
        logger.error(f"Failed to log warning: {str(e)}")

def log_exception(exception, properties=None):
    """Log an exception to Azure Monitor."""
    try:
        span = trace.get_current_span()
        span.record_exception(exception)
        span.set_status(trace.StatusCode.ERROR, str(exception))
        logger.error(f"Exception: {str(exception)}", exc_info=exception,
                     extra={"custom_properties": properties})
    except Exception as e:
        logger.error(f"Failed to log exception: {str(e)}")

def log_metric(metric_name, value, properties=None):
    """Log a custom metric as a span attribute and a log line."""
    try:
        with tracer.start_as_current_span(f"metric:{metric_name}") as span:
            span.set_attribute("metric.value", value)
            for key, val in (properties or {}).items():
                span.set_attribute(key, str(val))
        logger.info(f"Metric: {metric_name}={value}",
                    extra={"custom_properties": properties})
    except Exception as e:
        logger.error(f"Failed to log metric '{metric_name}': {str(e)}")
