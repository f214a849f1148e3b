"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "room-allocation-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

ALLOCATION_PASSES = Counter(
    'room_allocation_passes_total',
    'Allocation passes run, by outcome',
    ['outcome'],
    registry=REGISTRY
)

ALLOCATION_DURATION = Histogram(
    'room_allocation_duration_seconds',
    'Duration of one family allocation pass in seconds',
    registry=REGISTRY
)

OCCUPANTS_PLACED = Counter(
    'room_occupants_placed_total',
    'Occupants seated, by placement rule',
    ['rule'],
    registry=REGISTRY
)

ROOMS_CREATED = Counter(
    'rooms_created_total',
    'Rooms created by the allocator',
    ['room_type'],
    registry=REGISTRY
)

OCCUPANT_SLOTS_CLEARED = Counter(
    'room_occupant_slots_cleared_total',
    'Occupant slots emptied, by removal scope',
    ['scope'],
    registry=REGISTRY
)

ROOM_RECORDS_DELETED = Counter(
    'room_management_records_deleted_total',
    'Hotel room lists deleted after their last occupant left',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())
    trace.set_tracer_provider(provider)

    # Export only when an OTLP endpoint is configured
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


def get_tracer(name: str) -> trace.Tracer:
    """Tracer for engine spans; a no-op until setup_tracing() installs a provider."""
    return trace.get_tracer(name)


class MetricsCollector:
    """Collector for room allocation metrics."""

    @staticmethod
    def record_allocation_pass(outcome: str, duration_seconds: float | None = None):
        """Record one allocation pass and, when it ran, its duration."""
        ALLOCATION_PASSES.labels(outcome=outcome).inc()
        if duration_seconds is not None:
            ALLOCATION_DURATION.observe(duration_seconds)

    @staticmethod
    def record_occupant_placed(rule: str):
        OCCUPANTS_PLACED.labels(rule=rule).inc()

    @staticmethod
    def record_room_created(room_type: str):
        ROOMS_CREATED.labels(room_type=room_type).inc()

    @staticmethod
    def record_slots_cleared(scope: str, count: int):
        if count:
            OCCUPANT_SLOTS_CLEARED.labels(scope=scope).inc(count)

    @staticmethod
    def record_room_record_deleted():
        ROOM_RECORDS_DELETED.inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
