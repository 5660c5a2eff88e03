"""
Prometheus metrics collection for entitlement resolution
Counters for cache hits/misses, webhook handling and quota denials, plus Stripe lookup timings
"""
import time
from typing import Dict, Optional, List
from collections import defaultdict
from threading import Lock
import logging

logger = logging.getLogger(__name__)

# Metric names
FEATURE_CACHE_HITS = "feature_cache_hits_total"
FEATURE_CACHE_MISSES = "feature_cache_misses_total"
FEATURE_RESOLUTION_ERRORS = "feature_resolution_errors_total"
FEATURE_RESOLUTION_SECONDS = "feature_resolution_seconds"
STRIPE_WEBHOOKS = "stripe_webhooks_total"
QUOTA_EXCEEDED = "quota_exceeded_total"

_MAX_SAMPLES = 1000


def _label_key(labels: Optional[Dict[str, str]]) -> tuple:
    return tuple(sorted((labels or {}).items()))


def _format_labels(label_tuple: tuple, extra: str = "") -> str:
    parts = [f'{k}="{v}"' for k, v in label_tuple]
    if extra:
        parts.append(extra)
    return "{" + ",".join(parts) + "}" if parts else ""


class MetricsCollector:
    """
    Thread-safe metrics collector for Prometheus format
    Uses in-memory storage (lightweight, no external dependencies)
    """

    def __init__(self):
        self._lock = Lock()
        self._counters: Dict[str, Dict[tuple, float]] = defaultdict(lambda: defaultdict(float))
        self._histograms: Dict[str, Dict[tuple, List[float]]] = defaultdict(lambda: defaultdict(list))

    def increment_counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None):
        """
        Increment a counter metric

        Args:
            name: Metric name (e.g., "feature_cache_hits_total")
            value: Increment value (default: 1.0)
            labels: Optional labels dict (e.g., {"event_type": "product.updated"})
        """
        with self._lock:
            self._counters[name][_label_key(labels)] += value

    def record_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Record a timing sample, keeping the last 1000 per series"""
        with self._lock:
            samples = self._histograms[name][_label_key(labels)]
            samples.append(value)
            if len(samples) > _MAX_SAMPLES:
                del samples[:-_MAX_SAMPLES]

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Get current counter value"""
        with self._lock:
            if name not in self._counters:
                return 0.0
            return self._counters[name].get(_label_key(labels), 0.0)

    def get_histogram_stats(self, name: str, labels: Optional[Dict[str, str]] = None) -> Dict[str, float]:
        """
        Get histogram statistics (count, sum, min, max, avg)
        """
        with self._lock:
            values = list(self._histograms.get(name, {}).get(_label_key(labels), []))

        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0}

        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "avg": sum(values) / len(values),
        }

    def reset(self):
        """Drop all recorded metrics"""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()

    def format_prometheus(self) -> str:
        """
        Format metrics in Prometheus text format

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []

        with self._lock:
            for name, series in sorted(self._counters.items()):
                for label_tuple, value in sorted(series.items()):
                    lines.append(f"{name}{_format_labels(label_tuple)} {value}")

            # Histograms are exported as summaries
            for name, series in sorted(self._histograms.items()):
                for label_tuple, values in sorted(series.items()):
                    if not values:
                        continue
                    ordered = sorted(values)
                    lines.append(f"{name}_count{_format_labels(label_tuple)} {len(ordered)}")
                    lines.append(f"{name}_sum{_format_labels(label_tuple)} {sum(ordered)}")
                    for quantile in (0.5, 0.95, 0.99):
                        index = min(int(len(ordered) * quantile), len(ordered) - 1)
                        quantile_label = 'quantile="%s"' % quantile
                        lines.append(f"{name}{_format_labels(label_tuple, quantile_label)} {ordered[index]}")

        return "\n".join(lines) + "\n"


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def increment_counter(name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None):
    """Convenience function to increment counter"""
    get_metrics_collector().increment_counter(name, value, labels)


def record_histogram(name: str, value: float, labels: Optional[Dict[str, str]] = None):
    """Convenience function to record histogram"""
    get_metrics_collector().record_histogram(name, value, labels)


class RequestTimer:
    """Context manager for timing blocks of work"""

    def __init__(self, metric_name: str, labels: Optional[Dict[str, str]] = None):
        self.metric_name = metric_name
        self.labels = labels or {}
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            record_histogram(self.metric_name, time.time() - self.start_time, self.labels)
