"""
streamfold - Prometheus Metrics

Stream-level metrics collected with the Prometheus client library.

Metrics exposed:
- streamfold_streams_total: Counter of consumed responses by provider, model, outcome
- streamfold_stream_errors_total: Counter of failed responses by provider and error kind
- streamfold_time_to_first_event_seconds: Histogram of latency to the first decoded increment
- streamfold_stream_duration_seconds: Histogram of total consumption time by mode
- streamfold_tokens_total: Counter of tokens reported by providers (input/output)
- streamfold_active_streams: Gauge of responses currently being consumed

Usage:
    from streamfold.observability.metrics import get_metrics, generate_metrics

    metrics = get_metrics()
    metrics.record_stream_started(provider="openai")

    # Expose from any HTTP framework
    body = generate_metrics()
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    CollectorRegistry,
    generate_latest,
    REGISTRY,
)


class MetricsCollector:
    """
    Central metrics collector using Prometheus client.

    One collector per registry; use ``get_metrics()`` for the shared one.
    """

    _instance: Optional["MetricsCollector"] = None

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """Initialize metrics collectors."""
        self.registry = registry

        self.streams_total = Counter(
            "streamfold_streams_total",
            "Total number of consumed responses",
            labelnames=["provider", "model", "outcome"],  # outcome = finish reason or "error"
            registry=registry,
        )

        self.stream_errors = Counter(
            "streamfold_stream_errors_total",
            "Total number of responses that ended in an error",
            labelnames=["provider", "kind"],
            registry=registry,
        )

        # Buckets tuned for model latency: first token typically 0.1s to 10s
        self.time_to_first_event = Histogram(
            "streamfold_time_to_first_event_seconds",
            "Time from consumption start to the first decoded increment",
            labelnames=["provider", "model"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.stream_duration = Histogram(
            "streamfold_stream_duration_seconds",
            "Total time spent consuming a response",
            labelnames=["provider", "model", "mode"],  # mode = stream/buffer
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, float("inf")),
            registry=registry,
        )

        self.tokens_total = Counter(
            "streamfold_tokens_total",
            "Total tokens reported by providers",
            labelnames=["provider", "model", "type"],  # type = input/output
            registry=registry,
        )

        self.active_streams = Gauge(
            "streamfold_active_streams",
            "Number of responses currently being consumed",
            labelnames=["provider"],
            registry=registry,
        )

    @classmethod
    def get_instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_stream_started(self, provider: str):
        self.active_streams.labels(provider=provider).inc()

    def record_stream_finished(
        self,
        provider: str,
        model: str,
        mode: str,
        outcome: str,
        duration_seconds: float,
    ):
        """Record a response whose consumption has ended, successfully or not."""
        self.active_streams.labels(provider=provider).dec()
        self.streams_total.labels(provider=provider, model=model, outcome=outcome).inc()
        self.stream_duration.labels(provider=provider, model=model, mode=mode).observe(duration_seconds)

    def record_stream_error(self, provider: str, kind: str):
        self.stream_errors.labels(provider=provider, kind=kind).inc()

    def record_time_to_first_event(self, provider: str, model: str, seconds: float):
        self.time_to_first_event.labels(provider=provider, model=model).observe(seconds)

    def record_tokens(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
    ):
        """Record token usage."""
        if input_tokens:
            self.tokens_total.labels(provider=provider, model=model, type="input").inc(input_tokens)
        if output_tokens:
            self.tokens_total.labels(provider=provider, model=model, type="output").inc(output_tokens)


# Module-level functions for convenience
_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times with the same registry.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    MetricsCollector._instance = _metrics_instance
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = MetricsCollector.get_instance()
    return _metrics_instance


def generate_metrics(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Prometheus text exposition for the given (or shared) registry."""
    if registry is None:
        registry = get_metrics().registry
    return generate_latest(registry)
