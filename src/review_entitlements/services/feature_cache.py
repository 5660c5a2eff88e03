"""
Per-team feature entitlement cache
In-memory implementation; Redis-backed variant lives in redis_cache.py
"""
import logging
import time
from threading import Lock
from typing import Dict, Iterable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# Opaque token describing the invalidation state of (whole cache, one team)
GenerationToken = Tuple[int, int]

# Team generation counters only need to outlive in-flight fetches
TEAM_GENERATION_TTL = 86400


class FeatureCache:
    """
    Thread-safe in-memory cache of team feature sets

    Writes made with a generation token are discarded if the team (or the whole
    cache) was invalidated after the token was taken, so a Stripe lookup that
    was in flight during a webhook cannot resurrect stale entitlements.
    """

    backend = "memory"

    def __init__(self, default_ttl: int = 300, generation_ttl: int = TEAM_GENERATION_TTL):  # 5 minutes default
        """
        Initialize feature cache

        Args:
            default_ttl: Default time-to-live in seconds (default: 5 minutes)
            generation_ttl: Seconds a team's invalidation counter is kept after
                its last invalidation
        """
        self.cache: Dict[str, Dict] = {}
        self.default_ttl = default_ttl
        self.generation_ttl = generation_ttl
        self._lock = Lock()
        self._global_generation = 0
        # team_id -> (generation, last invalidated at)
        self._team_generations: Dict[str, Tuple[int, float]] = {}

    def get(self, team_id: str) -> Optional[Set[str]]:
        """
        Get cached features for a team

        Returns:
            Copy of the cached feature set, or None if not found/expired
        """
        with self._lock:
            cached_item = self.cache.get(team_id)
            if cached_item is None:
                return None

            if time.time() > cached_item['expires_at']:
                del self.cache[team_id]
                return None

            return set(cached_item['features'])

    def generation(self, team_id: str) -> GenerationToken:
        """Current generation token for a team"""
        with self._lock:
            return self._current_token(team_id)

    def _current_token(self, team_id: str) -> GenerationToken:
        team_generation = self._team_generations.get(team_id)
        return (self._global_generation, team_generation[0] if team_generation else 0)

    def set(
        self,
        team_id: str,
        features: Iterable[str],
        token: Optional[GenerationToken] = None,
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Cache a team's features

        Args:
            team_id: Team ID
            features: Feature lookup keys
            token: Generation token taken before the features were fetched
            ttl: Time-to-live in seconds (uses default if None)

        Returns:
            True if stored, False if discarded because the token is stale
        """
        if ttl is None:
            ttl = self.default_ttl
        now = time.time()

        with self._lock:
            if token is not None:
                current = self._current_token(team_id)
                if token != current:
                    logger.debug(f"Discarding stale feature set for team {team_id} (token={token}, current={current})")
                    return False

            self.cache[team_id] = {
                'features': frozenset(features),
                'expires_at': now + ttl,
                'cached_at': now,
            }
            return True

    def invalidate(self, team_id: str):
        """Invalidate cached features for one team"""
        with self._lock:
            generation = self._current_token(team_id)[1] + 1
            self._team_generations[team_id] = (generation, time.time())
            self.cache.pop(team_id, None)

    def clear(self):
        """Clear all cached features"""
        with self._lock:
            self._global_generation += 1
            self._team_generations.clear()
            self.cache.clear()

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries from cache

        Also forgets team generations older than generation_ttl. Forgetting any
        bumps the global generation so tokens taken before then stay stale.

        Returns:
            Number of expired entries removed
        """
        current_time = time.time()
        with self._lock:
            expired_keys = [
                key for key, value in self.cache.items()
                if current_time > value['expires_at']
            ]
            for key in expired_keys:
                del self.cache[key]

            stale_generations = [
                team_id for team_id, (_, invalidated_at) in self._team_generations.items()
                if current_time - invalidated_at > self.generation_ttl
            ]
            for team_id in stale_generations:
                del self._team_generations[team_id]
            if stale_generations:
                self._global_generation += 1
        return len(expired_keys)

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        self.cleanup_expired()
        with self._lock:
            return {
                'backend': self.backend,
                'total_entries': len(self.cache),
                'default_ttl': self.default_ttl,
                'cached_teams': sorted(self.cache.keys()),
                'tracked_generations': len(self._team_generations),
            }


# Global cache instance
_cache_instance: Optional[FeatureCache] = None


def get_feature_cache():
    """
    Get global feature cache instance

    Returns Redis-backed cache if Redis is available, otherwise in-memory cache
    """
    global _cache_instance
    if _cache_instance is None:
        from ..config import config

        ttl = config.FEATURE_CACHE_TTL_SECONDS
        try:
            from .redis_cache import RedisFeatureCache
            redis_cache = RedisFeatureCache(default_ttl=ttl)
            if redis_cache.use_redis:
                _cache_instance = redis_cache
            else:
                _cache_instance = FeatureCache(default_ttl=ttl)
        except Exception as e:
            logger.warning(f"Failed to initialize Redis feature cache: {e}, using in-memory cache")
            _cache_instance = FeatureCache(default_ttl=ttl)
    return _cache_instance


def reset_feature_cache():
    """Drop the global cache instance (tests, reconfiguration)"""
    global _cache_instance
    _cache_instance = None
