"""
Tests for the Redis-backed feature cache
"""
import json
import pytest
import redis
from unittest.mock import MagicMock, patch


@pytest.fixture
def redis_client():
    """MagicMock Redis client; pipeline() and its context manager share one pipe"""
    client = MagicMock()
    pipe = client.pipeline.return_value
    pipe.__enter__.return_value = pipe
    client.get.return_value = None
    pipe.get.return_value = None
    return client


@pytest.fixture
def redis_cache(redis_client):
    from review_entitlements.services.redis_cache import RedisFeatureCache
    return RedisFeatureCache(default_ttl=300, redis_client=redis_client)


class TestRedisFeatureCache:
    """Test RedisFeatureCache"""

    def test_uses_redis_when_client_given(self, redis_cache):
        assert redis_cache.use_redis is True
        assert redis_cache.backend == "redis"

    def test_get_miss(self, redis_cache, redis_client):
        assert redis_cache.get("team_1") is None
        redis_client.get.assert_called_once_with("feature_cache:team:team_1")

    def test_get_hit(self, redis_cache, redis_client):
        redis_client.get.return_value = json.dumps({"features": ["google.reviews", "api.access"], "timestamp": 1.0})

        assert redis_cache.get("team_1") == {"google.reviews", "api.access"}

    def test_get_falls_back_on_error(self, redis_cache, redis_client):
        redis_client.get.side_effect = redis.ConnectionError("down")
        redis_cache.fallback_cache.set("team_1", {"google.reviews"})

        assert redis_cache.get("team_1") == {"google.reviews"}

    def test_set_without_token(self, redis_cache, redis_client):
        assert redis_cache.set("team_1", {"google.reviews", "api.access"}) is True

        key, ttl, payload = redis_client.setex.call_args[0]
        assert key == "feature_cache:team:team_1"
        assert ttl == 300
        assert json.loads(payload)["features"] == ["api.access", "google.reviews"]

    def test_generation_reads_counters(self, redis_cache, redis_client):
        values = {
            "feature_cache:generation": "3",
            "feature_cache:generation:team:team_1": "2",
        }
        redis_client.get.side_effect = lambda key: values.get(key)

        assert redis_cache.generation("team_1") == (3, 2)
        assert redis_cache.generation("team_2") == (3, 0)

    def test_set_with_current_token(self, redis_cache, redis_client):
        pipe = redis_client.pipeline.return_value

        assert redis_cache.set("team_1", {"google.reviews"}, token=(0, 0)) is True

        pipe.watch.assert_called_once_with("feature_cache:generation", "feature_cache:generation:team:team_1")
        pipe.multi.assert_called_once()
        pipe.setex.assert_called_once()
        pipe.execute.assert_called_once()

    def test_set_with_stale_token(self, redis_cache, redis_client):
        pipe = redis_client.pipeline.return_value
        pipe.get.side_effect = lambda key: "1" if key == "feature_cache:generation" else None

        assert redis_cache.set("team_1", {"google.reviews"}, token=(0, 0)) is False

        pipe.setex.assert_not_called()
        pipe.unwatch.assert_called_once()

    def test_set_loses_race_with_invalidation(self, redis_cache, redis_client):
        pipe = redis_client.pipeline.return_value
        pipe.execute.side_effect = redis.WatchError()

        assert redis_cache.set("team_1", {"google.reviews"}, token=(0, 0)) is False

    def test_invalidate_bumps_team_generation(self, redis_cache, redis_client):
        pipe = redis_client.pipeline.return_value

        redis_cache.invalidate("team_1")

        pipe.incr.assert_called_once_with("feature_cache:generation:team:team_1")
        pipe.delete.assert_called_once_with("feature_cache:team:team_1")
        pipe.execute.assert_called_once()

    def test_clear_bumps_global_generation(self, redis_cache, redis_client):
        redis_client.scan_iter.return_value = iter(["feature_cache:team:a", "feature_cache:team:b"])

        redis_cache.clear()

        redis_client.incr.assert_called_once_with("feature_cache:generation")
        redis_client.delete.assert_called_once_with("feature_cache:team:a", "feature_cache:team:b")

    def test_explicit_zero_ttl_is_passed_through(self, redis_cache, redis_client):
        redis_cache.set("team_1", {"google.reviews"}, ttl=0)

        assert redis_client.setex.call_args[0][1] == 0

    def test_invalidate_failure_is_logged_and_raised(self, redis_cache, redis_client, caplog):
        redis_client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")

        with pytest.raises(redis.ConnectionError):
            redis_cache.invalidate("team_1")

        assert "Redis invalidate failed for team team_1" in caplog.text

    def test_clear_failure_is_logged_and_raised(self, redis_cache, redis_client, caplog):
        redis_client.incr.side_effect = redis.ConnectionError("down")

        with pytest.raises(redis.ConnectionError):
            redis_cache.clear()

        assert "Redis clear failed" in caplog.text
        redis_client.delete.assert_not_called()

    def test_clear_failure_reported_by_invalidation_service(self, redis_cache, redis_client):
        from review_entitlements.services.cache_invalidation import CacheInvalidationService
        from review_entitlements.services.feature_checker import FeatureChecker

        redis_client.incr.side_effect = redis.ConnectionError("down")
        checker = FeatureChecker(MagicMock(), stripe_service=MagicMock(), cache=redis_cache, session_factory=MagicMock())
        service = CacheInvalidationService()
        service.register_feature_checker(checker)

        assert service.clear_all_caches(reason="webhook:product.updated") is False

    def test_get_stats(self, redis_cache, redis_client):
        redis_client.scan_iter.return_value = iter(["feature_cache:team:b", "feature_cache:team:a"])

        stats = redis_cache.get_stats()

        assert stats["backend"] == "redis"
        assert stats["total_entries"] == 2
        assert stats["cached_teams"] == ["a", "b"]


class TestRedisFallback:
    """Without Redis the cache behaves like FeatureCache"""

    def test_fallback_when_redis_unavailable(self):
        from review_entitlements.services.redis_cache import RedisFeatureCache

        with patch("review_entitlements.services.redis_cache.get_redis_client", return_value=None):
            cache = RedisFeatureCache(default_ttl=60)

        assert cache.use_redis is False
        token = cache.generation("team_1")
        cache.invalidate("team_1")
        assert cache.set("team_1", {"google.reviews"}, token=token) is False
        assert cache.set("team_1", {"google.reviews"}) is True
        assert cache.get("team_1") == {"google.reviews"}
        assert cache.get_stats()["backend"] == "memory"

    def test_no_client_without_redis_url(self):
        from review_entitlements.services.redis_cache import get_redis_client

        assert get_redis_client() is None
