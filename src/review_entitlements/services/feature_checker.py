"""
Feature Checker - resolves which product features a team currently has

Cache-aside over the team's Stripe subscription:
team -> stripe customer -> active/trialing subscription -> product -> entitlement features
"""
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Iterable, Optional, Set

from .feature_cache import get_feature_cache
from .metrics import (
    increment_counter,
    record_histogram,
    FEATURE_CACHE_HITS,
    FEATURE_CACHE_MISSES,
    FEATURE_RESOLUTION_ERRORS,
    FEATURE_RESOLUTION_SECONDS,
)
from .product_features import ProductFeaturesService
from .stripe_service import StripeService

logger = logging.getLogger(__name__)

REASON_NOT_IN_PLAN = "Feature not included in plan"
REASON_CHECK_ERROR = "Error checking feature access"


@dataclass
class FeatureCheckResult:
    """Outcome of a single product feature check"""
    has_access: bool
    reason: Optional[str] = None


@dataclass
class _TeamLock:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


class FeatureChecker:
    """
    Resolves team entitlements from Stripe with a per-team TTL cache

    Failures resolve to an empty feature set (fail closed) and are never cached.
    """

    def __init__(
        self,
        product_features_service: ProductFeaturesService,
        stripe_service: Optional[StripeService] = None,
        cache=None,
        session_factory: Optional[Callable] = None,
    ):
        """
        Args:
            product_features_service: Lists the features attached to a product
            stripe_service: Finds a customer's current subscription
            cache: FeatureCache / RedisFeatureCache (defaults to the global cache)
            session_factory: Callable returning a SQLAlchemy session (defaults to SessionLocal)
        """
        self.product_features_service = product_features_service
        self.stripe_service = stripe_service or product_features_service.stripe_service
        self.cache = cache if cache is not None else get_feature_cache()
        self._session_factory = session_factory
        self.instance_id = uuid.uuid4().hex[:8]

        self._locks_guard = Lock()
        self._team_locks: Dict[str, _TeamLock] = {}

        logger.debug(f"FeatureChecker {self.instance_id} created (cache backend: {getattr(self.cache, 'backend', 'unknown')})")

    # ========================================================================
    # Product-level checks
    # ========================================================================

    def check_feature(self, product_id: str, feature_key: str) -> FeatureCheckResult:
        """Check if a product grants a feature"""
        try:
            features = self.product_features_service.get_product_features(product_id)
            if feature_key in features:
                return FeatureCheckResult(has_access=True)
            return FeatureCheckResult(has_access=False, reason=REASON_NOT_IN_PLAN)
        except Exception as e:
            logger.error(f"Error checking feature {feature_key} for product {product_id}: {e}")
            return FeatureCheckResult(has_access=False, reason=REASON_CHECK_ERROR)

    # ========================================================================
    # Team-level resolution
    # ========================================================================

    def get_team_features(self, team_id: str) -> Set[str]:
        """
        Get the features currently unlocked for a team

        Returns:
            Set of feature lookup keys (empty when the team has no entitling subscription
            or resolution failed)
        """
        cached = self.cache.get(team_id)
        if cached is not None:
            increment_counter(FEATURE_CACHE_HITS)
            return cached

        # One Stripe lookup per team at a time in this process
        with self._team_lock(team_id):
            cached = self.cache.get(team_id)
            if cached is not None:
                increment_counter(FEATURE_CACHE_HITS)
                return cached

            increment_counter(FEATURE_CACHE_MISSES)
            token = self.cache.generation(team_id)
            started = time.time()
            try:
                features = self._resolve_team_features(team_id)
            except Exception as e:
                increment_counter(FEATURE_RESOLUTION_ERRORS)
                logger.error(f"Error resolving features for team {team_id}: {e}", exc_info=True)
                return set()
            finally:
                record_histogram(FEATURE_RESOLUTION_SECONDS, time.time() - started)

            if features is None:
                return set()

            if not self.cache.set(team_id, features, token=token):
                logger.info(f"Team {team_id} was invalidated during resolution; result not cached")
            return set(features)

    def _resolve_team_features(self, team_id: str) -> Optional[Set[str]]:
        """
        Look up a team's features in Stripe

        Returns:
            Feature set to cache, or None when the team has nothing to cache
            (unknown team or no Stripe customer)
        """
        customer_id = self._get_team_customer_id(team_id)
        if not customer_id:
            logger.debug(f"Team {team_id} has no Stripe customer; no features")
            return None

        subscription = self.stripe_service.get_current_subscription(customer_id)
        if subscription is None:
            return set()

        product_id = self.stripe_service.get_product_id(subscription)
        if not product_id:
            logger.warning(f"Subscription for team {team_id} has no product")
            return set()

        return set(self.product_features_service.get_product_features(product_id))

    def _get_team_customer_id(self, team_id: str) -> Optional[str]:
        from ..db.models import Team

        session_factory = self._session_factory
        if session_factory is None:
            from ..db.engine import SessionLocal
            session_factory = SessionLocal

        db = session_factory()
        try:
            team = db.query(Team).filter(Team.id == team_id).first()
            return team.stripe_customer_id if team else None
        finally:
            db.close()

    @contextmanager
    def _team_lock(self, team_id: str):
        """Hold the team's lock; the entry is dropped when its last user leaves"""
        with self._locks_guard:
            entry = self._team_locks.get(team_id)
            if entry is None:
                entry = self._team_locks[team_id] = _TeamLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    self._team_locks.pop(team_id, None)

    def check_features(self, team_id: str, feature_keys: Iterable[str]) -> Dict[str, bool]:
        """Check several features with a single team resolution"""
        features = self.get_team_features(team_id)
        return {key: key in features for key in feature_keys}

    def has_feature(self, team_id: str, feature_key: str) -> bool:
        return feature_key in self.get_team_features(team_id)

    # ========================================================================
    # Cache management
    # ========================================================================

    def clear_team_cache(self, team_id: str):
        """Invalidate one team's cached features"""
        self.cache.invalidate(team_id)
        logger.info(f"FeatureChecker {self.instance_id}: cleared cache for team {team_id}")

    def clear_all_cache(self):
        """Invalidate every team's cached features"""
        self.cache.clear()
        logger.info(f"FeatureChecker {self.instance_id}: cleared all cached features")

    def get_cache_stats(self) -> Dict:
        stats = dict(self.cache.get_stats())
        stats["instance_id"] = self.instance_id
        return stats


# Global feature checker instance
_feature_checker: Optional[FeatureChecker] = None
_feature_checker_lock = Lock()


def get_global_feature_checker() -> FeatureChecker:
    """
    Get global feature checker instance

    Created lazily from configuration and registered with the cache
    invalidation service so webhooks reach it.
    """
    global _feature_checker
    if _feature_checker is None:
        with _feature_checker_lock:
            if _feature_checker is None:
                checker = FeatureChecker(ProductFeaturesService())
                _register_for_invalidation(checker)
                _feature_checker = checker
                logger.info(f"Global FeatureChecker {checker.instance_id} initialized")
    return _feature_checker


def set_global_feature_checker(checker: FeatureChecker):
    """Replace the global feature checker (tests, custom wiring)"""
    global _feature_checker
    with _feature_checker_lock:
        previous = _feature_checker
        _feature_checker = checker
    _unregister_for_invalidation(previous)
    _register_for_invalidation(checker)


def reset_global_feature_checker():
    """Drop the global feature checker; the next access creates a new one"""
    global _feature_checker
    with _feature_checker_lock:
        previous = _feature_checker
        _feature_checker = None
    _unregister_for_invalidation(previous)


def _register_for_invalidation(checker: Optional[FeatureChecker]):
    if checker is None:
        return
    from .cache_invalidation import get_cache_invalidation_service
    get_cache_invalidation_service().register_feature_checker(checker)


def _unregister_for_invalidation(checker: Optional[FeatureChecker]):
    if checker is None:
        return
    from .cache_invalidation import get_cache_invalidation_service
    get_cache_invalidation_service().unregister_feature_checker(checker)
