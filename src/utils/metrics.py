"""
Prometheus Metrics Collector

Lightweight metrics collection for observability without external dependencies.
Generates Prometheus text exposition format (text/plain; version=0.0.4).
"""
import time
import threading
from typing import Dict, List, Optional
from dataclasses import dataclass, field


@dataclass
class MetricValue:
    """Single metric value with optional labels."""
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


def _label_key(labels: Dict[str, str]) -> tuple:
    return tuple(sorted(labels.items()))


class Counter:
    """
    Prometheus Counter metric.

    A counter is a cumulative metric that only goes up.
    """

    def __init__(self, name: str, description: str, labels: Optional[List[str]] = None):
        self.name = name
        self.description = description
        self.label_names = labels or []
        self._values: Dict[tuple, float] = {}
        self._lock = threading.Lock()

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        key = _label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def get(self, **labels: str) -> float:
        with self._lock:
            return self._values.get(_label_key(labels), 0.0)

    def collect(self) -> List[MetricValue]:
        with self._lock:
            return [MetricValue(value=v, labels=dict(k)) for k, v in self._values.items()]


class Histogram:
    """
    Prometheus Histogram metric.

    Samples observations and counts them in cumulative buckets.
    """

    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

    def __init__(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ):
        self.name = name
        self.description = description
        self.label_names = labels or []
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._values: Dict[tuple, Dict] = {}
        self._lock = threading.Lock()

    def observe(self, value: float, **labels: str) -> None:
        key = _label_key(labels)
        with self._lock:
            data = self._values.setdefault(
                key, {"buckets": {b: 0 for b in self.buckets}, "sum": 0.0, "count": 0}
            )
            data["sum"] += value
            data["count"] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    data["buckets"][bucket] += 1

    def collect(self) -> List[MetricValue]:
        result = []
        with self._lock:
            for key, data in self._values.items():
                base_labels = dict(key)
                for bucket in sorted(self.buckets):
                    result.append(MetricValue(
                        value=data["buckets"][bucket],
                        labels={**base_labels, "le": str(bucket)}
                    ))
                result.append(MetricValue(value=data["count"], labels={**base_labels, "le": "+Inf"}))
                result.append(MetricValue(value=data["sum"], labels={**base_labels, "_metric": "sum"}))
                result.append(MetricValue(value=data["count"], labels={**base_labels, "_metric": "count"}))
        return result


class Timer:
    """Context manager for timing code blocks."""

    def __init__(self, histogram: Histogram, **labels: str):
        self.histogram = histogram
        self.labels = labels
        self.start_time: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        if self.start_time is not None:
            self.histogram.observe(time.perf_counter() - self.start_time, **self.labels)


class MetricsRegistry:
    """
    Central registry for all application metrics.

    Provides singleton access and Prometheus text format export.
    """

    _instance: Optional["MetricsRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetricsRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._metrics: Dict[str, Counter | Histogram] = {}
        self._initialized = True
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        """Initialize all application metrics."""

        # ============================================
        # INGRESS
        # ============================================
        self.webhooks_total = self.counter(
            "ecf_webhooks_total",
            "Webhook deliveries by provider and outcome",
            ["provider", "outcome"]
        )

        self.signature_failures = self.counter(
            "ecf_signature_failures_total",
            "Webhook deliveries rejected for a bad or missing signature",
            ["provider"]
        )

        # ============================================
        # PIPELINE
        # ============================================
        self.pipeline_routes = self.counter(
            "ecf_pipeline_routes_total",
            "Which strategy answered an inbound message",
            ["route"]
        )

        self.pipeline_duration = self.histogram(
            "ecf_pipeline_duration_seconds",
            "Inbound message handling duration"
        )

        # ============================================
        # AI BACKEND
        # ============================================
        self.ai_calls = self.counter(
            "ecf_ai_calls_total",
            "AI backend calls by component and result",
            ["component", "result"]
        )

        self.ai_retries = self.counter(
            "ecf_ai_retries_total",
            "Retries caused by AI backend rate limiting",
            ["component"]
        )

        # ============================================
        # DISPATCH
        # ============================================
        self.dispatch_total = self.counter(
            "ecf_dispatch_total",
            "Outbound sends by provider, channel and result",
            ["provider", "channel", "result"]
        )

        self.rule_dispatches = self.counter(
            "ecf_rule_dispatches_total",
            "Notification rule dispatch outcomes",
            ["result"]
        )

        self.escalations = self.counter(
            "ecf_escalations_total",
            "Internal notifications created by priority",
            ["priority"]
        )

    def counter(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None
    ) -> Counter:
        """Create and register a counter."""
        metric = Counter(name, description, labels)
        self._metrics[name] = metric
        return metric

    def histogram(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ) -> Histogram:
        """Create and register a histogram."""
        metric = Histogram(name, description, labels, buckets)
        self._metrics[name] = metric
        return metric

    def export(self) -> str:
        """
        Export all metrics in Prometheus text exposition format.

        Format specification:
        https://prometheus.io/docs/instrumenting/exposition_formats/
        """
        lines = []

        for name, metric in self._metrics.items():
            lines.append(f"# HELP {name} {metric.description}")
            kind = "counter" if isinstance(metric, Counter) else "histogram"
            lines.append(f"# TYPE {name} {kind}")

            for mv in metric.collect():
                metric_name = name
                if isinstance(metric, Histogram):
                    if "_metric" in mv.labels:
                        metric_name = f"{name}_{mv.labels.pop('_metric')}"
                    elif "le" in mv.labels:
                        metric_name = f"{name}_bucket"

                lines.append(f"{metric_name}{self._format_labels(mv.labels)} {mv.value}")

            lines.append("")

        return "\n".join(lines)

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        parts = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(parts) + "}"

    def reset(self) -> None:
        """Reset all metrics. Useful for testing."""
        self._metrics.clear()
        self._setup_metrics()


# Global metrics instance
metrics = MetricsRegistry()
