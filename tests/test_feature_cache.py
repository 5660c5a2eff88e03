"""
Tests for the in-memory feature cache
"""
import pytest
from unittest.mock import patch


class TestFeatureCache:
    """Test FeatureCache"""

    def test_get_missing_team(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        assert cache.get("team_1") is None

    def test_set_and_get(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        assert cache.set("team_1", {"google.reviews", "google.overview"}) is True
        assert cache.get("team_1") == {"google.reviews", "google.overview"}

    def test_get_returns_copy(self):
        """Mutating a returned set must not change the cached entry"""
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        cache.set("team_1", {"google.reviews"})
        features = cache.get("team_1")
        features.add("api.access")

        assert cache.get("team_1") == {"google.reviews"}

    def test_empty_set_is_cached(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        cache.set("team_1", set())
        assert cache.get("team_1") == set()

    def test_entry_expires(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache(default_ttl=300)
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1000.0):
            cache.set("team_1", {"google.reviews"})
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1299.0):
            assert cache.get("team_1") == {"google.reviews"}
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1301.0):
            assert cache.get("team_1") is None

    def test_invalidate_team(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        cache.set("team_1", {"google.reviews"})
        cache.set("team_2", {"facebook.reviews"})

        cache.invalidate("team_1")

        assert cache.get("team_1") is None
        assert cache.get("team_2") == {"facebook.reviews"}

    def test_clear(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        cache.set("team_1", {"google.reviews"})
        cache.set("team_2", {"facebook.reviews"})

        cache.clear()

        assert cache.get("team_1") is None
        assert cache.get("team_2") is None

    def test_cleanup_expired(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache(default_ttl=10)
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1000.0):
            cache.set("team_1", {"google.reviews"})
            cache.set("team_2", {"google.reviews"}, ttl=100)
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1050.0):
            removed = cache.cleanup_expired()

        assert removed == 1
        assert list(cache.cache.keys()) == ["team_2"]

    def test_get_stats(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache(default_ttl=120)
        cache.set("team_b", {"google.reviews"})
        cache.set("team_a", {"google.reviews"})

        stats = cache.get_stats()

        assert stats["backend"] == "memory"
        assert stats["total_entries"] == 2
        assert stats["default_ttl"] == 120
        assert stats["cached_teams"] == ["team_a", "team_b"]


class TestGenerationTokens:
    """Writes from lookups that started before an invalidation are dropped"""

    def test_current_token_is_stored(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        token = cache.generation("team_1")

        assert cache.set("team_1", {"google.reviews"}, token=token) is True
        assert cache.get("team_1") == {"google.reviews"}

    def test_team_invalidation_discards_in_flight_write(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        token = cache.generation("team_1")
        cache.invalidate("team_1")

        assert cache.set("team_1", {"google.reviews"}, token=token) is False
        assert cache.get("team_1") is None

    def test_clear_discards_in_flight_write(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        token = cache.generation("team_1")
        cache.clear()

        assert cache.set("team_1", {"google.reviews"}, token=token) is False
        assert cache.get("team_1") is None

    def test_other_team_invalidation_does_not_affect_token(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        token = cache.generation("team_1")
        cache.invalidate("team_2")

        assert cache.set("team_1", {"google.reviews"}, token=token) is True

    def test_clear_after_team_invalidation_still_stale(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache()
        cache.invalidate("team_1")
        token = cache.generation("team_1")
        cache.clear()

        assert cache.set("team_1", {"google.reviews"}, token=token) is False

    def test_forgotten_generation_keeps_old_tokens_stale(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache(generation_ttl=60)
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1000.0):
            token = cache.generation("team_1")
            cache.invalidate("team_1")

        with patch("review_entitlements.services.feature_cache.time.time", return_value=1061.0):
            cache.cleanup_expired()
            assert cache.get_stats()["tracked_generations"] == 0
            assert cache.set("team_1", {"google.reviews"}, token=token) is False
            assert cache.set("team_1", {"google.reviews"}, token=cache.generation("team_1")) is True

    def test_recent_generation_kept(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache(generation_ttl=60)
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1000.0):
            cache.invalidate("team_1")
            token = cache.generation("team_1")

        with patch("review_entitlements.services.feature_cache.time.time", return_value=1030.0):
            cache.cleanup_expired()
            assert cache.get_stats()["tracked_generations"] == 1
            assert cache.set("team_1", {"google.reviews"}, token=token) is True

    def test_explicit_zero_ttl_is_not_replaced_by_default(self):
        from review_entitlements.services.feature_cache import FeatureCache

        cache = FeatureCache(default_ttl=300)
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1000.0):
            cache.set("team_1", {"google.reviews"}, ttl=0)

        assert cache.cache["team_1"]["expires_at"] == 1000.0
        with patch("review_entitlements.services.feature_cache.time.time", return_value=1000.5):
            assert cache.get("team_1") is None


class TestGlobalFeatureCache:
    """Test the process-wide cache accessor"""

    def test_in_memory_without_redis(self):
        from review_entitlements.services.feature_cache import get_feature_cache, FeatureCache

        cache = get_feature_cache()

        assert isinstance(cache, FeatureCache)
        assert cache is get_feature_cache()

    def test_reset(self):
        from review_entitlements.services.feature_cache import get_feature_cache, reset_feature_cache

        first = get_feature_cache()
        reset_feature_cache()

        assert get_feature_cache() is not first

    def test_redis_cache_used_when_available(self):
        from review_entitlements.services.feature_cache import get_feature_cache
        from review_entitlements.services.redis_cache import RedisFeatureCache

        with patch("review_entitlements.services.redis_cache.get_redis_client", return_value=object()):
            cache = get_feature_cache()

        assert isinstance(cache, RedisFeatureCache)
        assert cache.use_redis is True
