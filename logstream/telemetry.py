"""OpenTelemetry setup for distributed tracing.

Instruments the FastAPI app and provides a helper for custom spans around
subscription changes (subscribe, fallback to synthetic logs, teardown).

Spans are exported via OTLP (gRPC) when OTEL_EXPORTER_OTLP_ENDPOINT is set;
otherwise the SDK provider keeps span context locally and exports nothing.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

SERVICE_NAME = "logstream-server"
SERVICE_VERSION = "0.1.0"

_tracer: trace.Tracer | None = None


def _init_tracer() -> trace.Tracer:
    """Install a TracerProvider, with an OTLP exporter when configured."""
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    resource = Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
    })
    provider = TracerProvider(resource=resource)

    if endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        logger.info("OpenTelemetry: OTLP exporter -> %s", endpoint)
    else:
        logger.info("OpenTelemetry: local spans only (no OTEL_EXPORTER_OTLP_ENDPOINT)")

    trace.set_tracer_provider(provider)
    return trace.get_tracer("logstream")


def get_tracer() -> trace.Tracer:
    """Get the global tracer (lazy-initialized)."""
    global _tracer
    if _tracer is None:
        _tracer = _init_tracer()
    return _tracer


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """Create a traced span with optional attributes.

    Usage:
        with trace_span("subscription.subscribe", {"source.id": "redis"}) as span:
            await manager.subscribe(...)
            span.set_attribute("subscription.backend", "process")
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            raise


def instrument_fastapi(app: Any) -> None:
    """Instrument a FastAPI app with automatic request tracing."""
    FastAPIInstrumentor.instrument_app(app)
    logger.info("OpenTelemetry: FastAPI auto-instrumentation enabled")
