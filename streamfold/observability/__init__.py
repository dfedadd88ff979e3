"""
streamfold - Observability Module

Ambient observability stack:
- Prometheus metrics for stream outcomes, latency and tokens
- OpenTelemetry client spans around provider calls
- Structured JSON logging with context injection

Usage:
    from streamfold.observability import get_logger, get_metrics, setup_tracing

    logger = get_logger(__name__)
    metrics = get_metrics()
"""

from .metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
    generate_metrics,
)
from .tracing import (
    TracingManager,
    get_tracing_manager,
    setup_tracing,
    trace_provider_call,
)
from .logging import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TimedOperation,
    get_logger,
    setup_logging,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "setup_metrics",
    "generate_metrics",
    # Tracing
    "TracingManager",
    "get_tracing_manager",
    "setup_tracing",
    "trace_provider_call",
    # Logging
    "JSONFormatter",
    "LogContext",
    "StructuredLogger",
    "TimedOperation",
    "get_logger",
    "setup_logging",
]
