"""OpenTelemetry tracing helpers for the gateway and HTTP layer.

Spans are exported to the console once ``start_tracing`` has been called.
Without it the global no-op tracer is used, so gateway spans cost nothing.
Trace context travels with each message in its ``application_properties``.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from opentelemetry import trace  # type: ignore
from opentelemetry.propagate import get_global_textmap, inject, set_global_textmap  # type: ignore
from opentelemetry.sdk.resources import Resource  # type: ignore
from opentelemetry.sdk.trace import TracerProvider  # type: ignore
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor  # type: ignore
from opentelemetry.trace import Tracer  # type: ignore
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator  # type: ignore


def start_tracing(service_name: str = "servicebus-utility") -> Tracer:
    """Initialize a TracerProvider with a console exporter."""
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    # Ensure W3C tracecontext propagator is used for message properties
    set_global_textmap(TraceContextTextMapPropagator())

    return trace.get_tracer(service_name)


def get_tracer(service_name: str = "servicebus-utility") -> Tracer:
    return trace.get_tracer(service_name)


def inject_properties(properties: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Inject current context into message application properties."""
    carrier: Dict[str, Any] = {} if properties is None else dict(properties)
    inject(carrier)
    return carrier


def extract_context_from_properties(properties: Mapping[Any, Any] | None):
    """Return a context object extracted from message application properties.

    The SDK may hand back keys and values as bytes; both are decoded to str.
    """
    carrier: Dict[str, str] = {}
    if properties:
        for k, v in properties.items():
            key = k.decode("utf-8", "replace") if isinstance(k, bytes) else str(k)
            value = v.decode("utf-8", "replace") if isinstance(v, bytes) else str(v)
            carrier[key] = value
    return get_global_textmap().extract(carrier)
