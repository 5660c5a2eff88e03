"""
Tests for metrics collection
"""
import pytest
import time


class TestMetricsCollector:
    """Test MetricsCollector"""

    def test_counter_with_labels(self):
        from review_entitlements.services.metrics import get_metrics_collector, increment_counter

        collector = get_metrics_collector()

        increment_counter("stripe_webhooks_total", labels={"event_type": "product.updated", "handled": "true"})
        increment_counter("stripe_webhooks_total", labels={"handled": "true", "event_type": "product.updated"})

        assert collector.get_counter(
            "stripe_webhooks_total", {"event_type": "product.updated", "handled": "true"}
        ) == 2.0
        assert collector.get_counter("stripe_webhooks_total", {"event_type": "invoice.paid", "handled": "true"}) == 0.0

    def test_histogram_stats(self):
        from review_entitlements.services.metrics import get_metrics_collector, record_histogram

        collector = get_metrics_collector()
        for value in (0.1, 0.2, 0.3):
            record_histogram("feature_resolution_seconds", value)

        stats = collector.get_histogram_stats("feature_resolution_seconds")

        assert stats["count"] == 3
        assert stats["sum"] == pytest.approx(0.6)

    def test_request_timer(self):
        from review_entitlements.services.metrics import get_metrics_collector, RequestTimer

        with RequestTimer("feature_resolution_seconds", {"source": "test"}):
            time.sleep(0.01)

        stats = get_metrics_collector().get_histogram_stats("feature_resolution_seconds", {"source": "test"})
        assert stats["count"] == 1
        assert stats["sum"] >= 0.01

    def test_prometheus_format(self):
        from review_entitlements.services.metrics import get_metrics_collector, increment_counter, record_histogram

        increment_counter("quota_exceeded_total", labels={"quota_type": "seats"})
        increment_counter("feature_cache_hits_total")
        record_histogram("feature_resolution_seconds", 0.5)

        output = get_metrics_collector().format_prometheus()

        assert 'quota_exceeded_total{quota_type="seats"} 1.0' in output
        assert "feature_cache_hits_total 1.0" in output
        assert "feature_resolution_seconds_count 1" in output
        assert 'feature_resolution_seconds{quantile="0.5"} 0.5' in output

    def test_reset(self):
        from review_entitlements.services.metrics import get_metrics_collector, increment_counter

        increment_counter("feature_cache_misses_total")
        get_metrics_collector().reset()

        assert get_metrics_collector().get_counter("feature_cache_misses_total") == 0.0
