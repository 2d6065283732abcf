import logging
import os

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def otel_enabled() -> bool:
    return os.getenv("OTEL_ENABLED", "false").lower() in _TRUTHY


def setup_otel(app) -> bool:
    """Instrument FastAPI and the SQLAlchemy engine when OTEL_ENABLED is set.

    Returns True when tracing was installed.
    """
    if not otel_enabled():
        return False
    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.exception("OTEL_ENABLED is set but the otel extra is not installed")
        return False

    from coachbill.db import engine

    service_name = os.getenv("OTEL_SERVICE_NAME", "coachbill")
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(provider)
    exporter = OTLPSpanExporter(endpoint=endpoint) if endpoint else OTLPSpanExporter()
    provider.add_span_processor(BatchSpanProcessor(exporter))

    FastAPIInstrumentor.instrument_app(app)
    SQLAlchemyInstrumentor().instrument(engine=engine)
    logger.info("OpenTelemetry tracing enabled for %s", service_name)
    return True
