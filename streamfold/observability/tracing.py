"""
streamfold - OpenTelemetry Tracing

Client spans around provider calls.

Features:
- Span per provider request (provider, model, request id attributes)
- Optional console exporter for debugging
- Exceptions recorded on the active span

Usage:
    from streamfold.observability.tracing import setup_tracing, trace_provider_call

    setup_tracing(service_name="my-app", console_export=True)

    with trace_provider_call("openai", "gpt-4o-mini") as span:
        response = await adapter.generate(request)

Without ``setup_tracing`` spans go to whatever tracer provider the host
application installed (a no-op provider by default).
"""

from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import SpanKind


TRACER_NAME = "streamfold"


class TracingManager:
    """Thin wrapper over an OpenTelemetry tracer."""

    def __init__(
        self,
        provider: Optional[TracerProvider] = None,
        service_version: str = "0.1.0",
    ):
        self.provider = provider
        if provider is not None:
            self.tracer = provider.get_tracer(TRACER_NAME, service_version)
        else:
            self.tracer = trace.get_tracer(TRACER_NAME, service_version)

    def start_client_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """Start a client span for an outgoing provider request."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.CLIENT,
            attributes=attributes,
        )

    def shutdown(self):
        if self.provider is not None:
            self.provider.shutdown()


_tracing_instance: Optional[TracingManager] = None


def setup_tracing(
    service_name: str = "streamfold",
    service_version: str = "0.1.0",
    console_export: bool = False,
    set_global: bool = False,
) -> TracingManager:
    """
    Create a tracer provider for streamfold spans.

    Args:
        service_name: Resource service name
        service_version: Resource service version
        console_export: Print finished spans to stdout
        set_global: Also install the provider as the global OpenTelemetry provider
    """
    global _tracing_instance

    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
    })
    provider = TracerProvider(resource=resource)

    if console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    if set_global:
        trace.set_tracer_provider(provider)

    _tracing_instance = TracingManager(provider, service_version)
    return _tracing_instance


def get_tracing_manager() -> TracingManager:
    """Get the tracing manager, falling back to the global tracer provider."""
    global _tracing_instance
    if _tracing_instance is None:
        _tracing_instance = TracingManager()
    return _tracing_instance


def reset_tracing():
    """Drop the configured manager (for testing)."""
    global _tracing_instance
    _tracing_instance = None


@contextmanager
def trace_provider_call(provider: str, model: str, operation: str = "generate"):
    """
    Context manager for tracing provider API calls.

    Usage:
        with trace_provider_call("gemini", "gemini-1.5-pro") as span:
            response = await adapter.generate(request)
            span.set_attribute("ai.request_id", response.request_id)
    """
    tracing = get_tracing_manager()

    with tracing.start_client_span(
        name=f"{provider}.{operation}",
        attributes={
            "ai.provider": provider,
            "ai.model": model,
            "ai.operation": operation,
        },
    ) as span:
        # start_as_current_span records the exception and error status on exit
        yield span
