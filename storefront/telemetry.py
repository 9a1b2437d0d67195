import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from models import db

# Probes and scrapes are not worth a span each
EXCLUDED_URLS = "health,metrics,docs,apispec.json"


def init_tracing(app):
    """Trace Flask requests, SQL statements and outbound payment-provider calls."""
    resource = Resource.create(
        {
            "service.name": app.config.get("OTEL_SERVICE_NAME", "storefront-backend"),
            "deployment.environment": os.getenv("APP_ENV", "development"),
        }
    )
    ratio = float(app.config.get("OTEL_TRACES_SAMPLE_RATIO", 1.0))
    provider = TracerProvider(resource=resource, sampler=ParentBased(TraceIdRatioBased(ratio)))
    if app.config.get("DEBUG"):
        exporter = ConsoleSpanExporter()
    else:
        exporter = OTLPSpanExporter(endpoint=app.config.get("OTEL_EXPORTER_OTLP_ENDPOINT"))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    set_global_textmap(TraceContextTextMapPropagator())

    FlaskInstrumentor().instrument_app(app, excluded_urls=EXCLUDED_URLS)
    # the stripe SDK sends its HTTP through requests when it is installed
    RequestsInstrumentor().instrument()
    with app.app_context():
        SQLAlchemyInstrumentor().instrument(engine=db.engine)
