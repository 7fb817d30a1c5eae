from __future__ import annotations

"""OpenTelemetry spans around tool execution and model calls.

Spans are always created; they are exported only after ``configure_tracing``
installs an OTLP pipeline, which happens at import when ``otel_trace_url`` is
configured.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import settings

SERVICE_NAME = "spawnkit"


def build_provider(endpoint: str, service: str = SERVICE_NAME) -> TracerProvider:
    """Return a provider batching spans to the OTLP collector at ``endpoint``."""
    provider = TracerProvider(resource=Resource.create({"service.name": service}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, timeout=5)))
    return provider


def configure_tracing(endpoint: str | None) -> TracerProvider | None:
    """Install the global provider for ``endpoint``; no-op when it is empty."""
    if not endpoint:
        return None
    provider = build_provider(endpoint)
    trace.set_tracer_provider(provider)
    return provider


configure_tracing(settings.otel_trace_url)
tracer = trace.get_tracer(SERVICE_NAME)


@asynccontextmanager
async def async_span(name: str, tracer_obj: trace.Tracer | None = None, **attrs: Any) -> AsyncIterator[trace.Span]:
    """Run the block inside span ``name``.

    Keyword arguments that are not ``None`` become span attributes.
    """
    with (tracer_obj or tracer).start_as_current_span(name) as span:
        for key, value in attrs.items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


__all__ = ["SERVICE_NAME", "async_span", "build_provider", "configure_tracing", "tracer"]
