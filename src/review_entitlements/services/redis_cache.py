"""
Redis-backed feature cache with in-memory fallback
Shares team entitlements across horizontally scaled instances so a webhook
invalidation on one instance is seen by all of them.
"""
import json
import logging
import time
from typing import Optional, Any, Iterable, Set, Dict

import redis

from .feature_cache import FeatureCache, GenerationToken, TEAM_GENERATION_TTL

logger = logging.getLogger(__name__)

KEY_PREFIX = "feature_cache:team:"
GLOBAL_GENERATION_KEY = "feature_cache:generation"
TEAM_GENERATION_PREFIX = "feature_cache:generation:team:"


def get_redis_client() -> Optional[Any]:
    """
    Get Redis client if configured and reachable

    Returns:
        Redis client instance or None if Redis not available
    """
    from ..config import config

    if not config.REDIS_URL:
        return None

    try:
        client = redis.Redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )
        client.ping()
        logger.info("Redis connection established for feature cache")
        return client
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}. Using in-memory fallback.")
        return None


class RedisFeatureCache:
    """
    Redis-backed feature cache with in-memory fallback

    Implements the same interface as FeatureCache. Entries are stored as
    JSON {"features": [...], "timestamp": epoch} under feature_cache:team:{team_id}.
    """

    backend = "redis"

    def __init__(self, default_ttl: int = 300, redis_client: Optional[Any] = None):
        """
        Initialize Redis feature cache

        Args:
            default_ttl: Default time-to-live in seconds (default: 5 minutes)
            redis_client: Optional Redis client (auto-created if not provided)
        """
        self.default_ttl = default_ttl
        self.redis_client = redis_client or get_redis_client()
        self.use_redis = self.redis_client is not None
        self.fallback_cache = FeatureCache(default_ttl=default_ttl)

        if self.use_redis:
            logger.info("Using Redis feature cache")
        else:
            logger.info("Using in-memory feature cache (Redis not available)")

    @staticmethod
    def _key(team_id: str) -> str:
        return f"{KEY_PREFIX}{team_id}"

    @staticmethod
    def _team_generation_key(team_id: str) -> str:
        return f"{TEAM_GENERATION_PREFIX}{team_id}"

    def _read_generation(self, client, team_id: str) -> GenerationToken:
        global_gen = client.get(GLOBAL_GENERATION_KEY)
        team_gen = client.get(self._team_generation_key(team_id))
        return (int(global_gen or 0), int(team_gen or 0))

    def get(self, team_id: str) -> Optional[Set[str]]:
        """Get cached features for a team"""
        if not self.use_redis:
            return self.fallback_cache.get(team_id)

        try:
            cached_data = self.redis_client.get(self._key(team_id))
            if not cached_data:
                return None
            entry = json.loads(cached_data)
            return set(entry.get("features", []))
        except Exception as e:
            logger.warning(f"Redis get failed for team {team_id}: {e}, falling back to in-memory")
            return self.fallback_cache.get(team_id)

    def generation(self, team_id: str) -> GenerationToken:
        """Current generation token for a team"""
        if not self.use_redis:
            return self.fallback_cache.generation(team_id)

        try:
            return self._read_generation(self.redis_client, team_id)
        except Exception as e:
            logger.warning(f"Redis generation read failed for team {team_id}: {e}")
            return self.fallback_cache.generation(team_id)

    def set(
        self,
        team_id: str,
        features: Iterable[str],
        token: Optional[GenerationToken] = None,
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Cache a team's features

        The write is done inside a WATCH/MULTI transaction on the generation
        keys, so it is dropped if an invalidation lands between the token
        check and the write.
        """
        if not self.use_redis:
            return self.fallback_cache.set(team_id, features, token=token, ttl=ttl)

        if ttl is None:
            ttl = self.default_ttl
        payload = json.dumps({"features": sorted(features), "timestamp": time.time()})
        key = self._key(team_id)

        try:
            if token is None:
                self.redis_client.setex(key, ttl, payload)
                return True

            with self.redis_client.pipeline() as pipe:
                try:
                    pipe.watch(GLOBAL_GENERATION_KEY, self._team_generation_key(team_id))
                    current = self._read_generation(pipe, team_id)
                    if tuple(token) != current:
                        pipe.unwatch()
                        logger.debug(f"Discarding stale feature set for team {team_id} (token={token}, current={current})")
                        return False
                    pipe.multi()
                    pipe.setex(key, ttl, payload)
                    pipe.execute()
                    return True
                except redis.WatchError:
                    logger.debug(f"Feature cache write for team {team_id} lost a race with invalidation")
                    return False
        except Exception as e:
            logger.warning(f"Redis set failed for team {team_id}: {e}")
            return False

    def invalidate(self, team_id: str):
        """
        Invalidate cached features for one team

        Raises:
            redis.RedisError: if Redis could not be updated; callers report the
                invalidation as failed
        """
        if not self.use_redis:
            return self.fallback_cache.invalidate(team_id)

        generation_key = self._team_generation_key(team_id)
        try:
            pipe = self.redis_client.pipeline()
            pipe.incr(generation_key)
            pipe.expire(generation_key, TEAM_GENERATION_TTL)
            pipe.delete(self._key(team_id))
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Redis invalidate failed for team {team_id}: {e}")
            raise

    def clear(self):
        """
        Clear all cached feature sets

        Raises:
            redis.RedisError: if Redis could not be updated
        """
        if not self.use_redis:
            return self.fallback_cache.clear()

        try:
            self.redis_client.incr(GLOBAL_GENERATION_KEY)
            keys = list(self.redis_client.scan_iter(match=f"{KEY_PREFIX}*", count=500))
            if keys:
                self.redis_client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Redis clear failed: {e}")
            raise
        logger.info(f"Cleared {len(keys)} cached feature sets from Redis")

    def cleanup_expired(self) -> int:
        """Redis expires entries itself; only the fallback needs sweeping"""
        return self.fallback_cache.cleanup_expired()

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        if not self.use_redis:
            return self.fallback_cache.get_stats()

        try:
            keys = list(self.redis_client.scan_iter(match=f"{KEY_PREFIX}*", count=500))
            return {
                'backend': self.backend,
                'total_entries': len(keys),
                'default_ttl': self.default_ttl,
                'cached_teams': sorted(key[len(KEY_PREFIX):] for key in keys),
            }
        except Exception as e:
            logger.warning(f"Failed to get Redis feature cache stats: {e}")
            return {
                'backend': self.backend,
                'total_entries': 0,
                'default_ttl': self.default_ttl,
                'cached_teams': [],
                'error': str(e),
            }
