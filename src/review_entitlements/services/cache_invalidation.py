"""
Cache Invalidation Service
Centralized invalidation of team feature caches held by registered feature checkers
"""
import logging
from datetime import datetime
from threading import Lock
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)

INVALIDATION_REASONS = ("subscription_change", "plan_change", "package_change", "manual")


class CacheInvalidationService:
    """
    Centralized cache invalidation service

    Feature checkers register here; invalidations fan out to every registered
    checker so webhook handlers and admin actions need not know how many
    caches exist in the process.
    """

    def __init__(self):
        self._lock = Lock()
        self._feature_checkers: List[Any] = []

    # ========================================================================
    # Registration
    # ========================================================================

    def register_feature_checker(self, checker) -> None:
        """Register a feature checker (idempotent)"""
        with self._lock:
            if any(existing is checker for existing in self._feature_checkers):
                return
            self._feature_checkers.append(checker)
        logger.debug(f"Registered feature checker {getattr(checker, 'instance_id', '?')}")

    def unregister_feature_checker(self, checker) -> None:
        with self._lock:
            self._feature_checkers = [c for c in self._feature_checkers if c is not checker]

    def _checkers(self) -> List[Any]:
        with self._lock:
            return list(self._feature_checkers)

    def _unowned_shared_cache(self, checkers: List[Any]):
        """
        The process-wide feature cache when no registered checker uses it

        With Redis the cache is shared across instances, so an instance that has
        not resolved any features yet must still clear it on webhooks.
        """
        from .feature_cache import get_feature_cache

        shared = get_feature_cache()
        if any(getattr(checker, "cache", None) is shared for checker in checkers):
            return None
        return shared

    # ========================================================================
    # Team Cache Invalidation
    # ========================================================================

    def invalidate_team_cache(
        self,
        team_id: str,
        reason: str = "manual",
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Invalidate cached features for a team in every registered checker

        Triggers:
        - Subscription created/updated/cancelled
        - Plan change
        - Package (product features) change
        - Manual invalidation by an admin

        Args:
            team_id: Team ID
            reason: One of subscription_change, plan_change, package_change, manual
            metadata: Optional context logged with the invalidation

        Returns:
            True if every checker was invalidated, False otherwise

        Raises:
            ValueError: if reason is not a known invalidation reason
        """
        if reason not in INVALIDATION_REASONS:
            raise ValueError(f"Invalid invalidation reason: {reason}. Must be one of {', '.join(INVALIDATION_REASONS)}")

        checkers = self._checkers()
        success = True
        for checker in checkers:
            try:
                checker.clear_team_cache(team_id)
            except Exception as e:
                success = False
                logger.error(f"Failed to invalidate feature cache for team_id={team_id}: {e}")

        try:
            shared = self._unowned_shared_cache(checkers)
            if shared is not None:
                shared.invalidate(team_id)
        except Exception as e:
            success = False
            logger.error(f"Failed to invalidate shared feature cache for team_id={team_id}: {e}")

        logger.info(
            f"Invalidated feature cache for team_id={team_id}, reason={reason}, "
            f"checkers={len(checkers)}, metadata={metadata or {}}"
        )
        return success

    def invalidate_team_by_customer(self, stripe_customer_id: str, reason: str = "subscription_change") -> bool:
        """
        Invalidate the team owning a Stripe customer

        Returns:
            False if no team has this customer
        """
        from ..db.engine import SessionLocal
        from ..db.models import Team

        db = SessionLocal()
        try:
            team = db.query(Team).filter(Team.stripe_customer_id == stripe_customer_id).first()
            team_id = team.id if team else None
        finally:
            db.close()

        if team_id is None:
            logger.warning(f"No team found for Stripe customer {stripe_customer_id}")
            return False

        return self.invalidate_team_cache(team_id, reason=reason, metadata={"stripe_customer_id": stripe_customer_id})

    # ========================================================================
    # Batch Invalidation
    # ========================================================================

    def invalidate_multiple_team_caches(self, team_ids: List[str], reason: str = "manual") -> int:
        """
        Invalidate several teams

        Returns:
            Number of successfully invalidated teams
        """
        count = 0
        for team_id in team_ids:
            if self.invalidate_team_cache(team_id, reason=reason):
                count += 1

        logger.info(f"Batch invalidated {count}/{len(team_ids)} team caches, reason={reason}")
        return count

    def clear_all_caches(self, reason: str = "manual") -> bool:
        """
        Clear every team's cached features in every registered checker

        Used by webhook handlers: any product, subscription or invoice change
        may alter any team's entitlements.
        """
        checkers = self._checkers()
        success = True
        for checker in checkers:
            try:
                checker.clear_all_cache()
            except Exception as e:
                success = False
                logger.error(f"Failed to clear feature cache of checker {getattr(checker, 'instance_id', '?')}: {e}")

        try:
            shared = self._unowned_shared_cache(checkers)
            if shared is not None:
                shared.clear()
        except Exception as e:
            success = False
            logger.error(f"Failed to clear shared feature cache: {e}")

        logger.warning(f"CLEARED ALL FEATURE CACHES - reason={reason}, checkers={len(checkers)}, at={datetime.utcnow().isoformat()}")
        return success

    # ========================================================================
    # Statistics and Monitoring
    # ========================================================================

    def get_invalidation_stats(self) -> dict:
        """
        Get cache invalidation statistics

        Returns:
            Dict with registered checker count and per-checker cache stats
        """
        checkers = self._checkers()
        stats = {
            "registered_checkers": len(checkers),
            "caches": [],
        }
        for checker in checkers:
            try:
                stats["caches"].append(checker.get_cache_stats())
            except Exception as e:
                stats["caches"].append({"instance_id": getattr(checker, "instance_id", None), "error": str(e)})
        return stats


# Global cache invalidation service instance
_invalidation_service: Optional[CacheInvalidationService] = None


def get_cache_invalidation_service() -> CacheInvalidationService:
    """
    Get global cache invalidation service instance

    Returns:
        CacheInvalidationService singleton
    """
    global _invalidation_service

    if _invalidation_service is None:
        _invalidation_service = CacheInvalidationService()

    return _invalidation_service


def reset_cache_invalidation_service():
    """Drop the global service (tests)"""
    global _invalidation_service
    _invalidation_service = None
