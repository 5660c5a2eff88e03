"""
Feature Access Service - team-facing view of entitlements

Stripe entitlements (through FeatureChecker) are the only source of truth for
paid features. Teams without an entitling subscription fall back to the free
tier features from tiers.yaml.
"""
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, Dict, List, Iterable, Set, Any
import logging

from ..db.models import Team, TeamSubscription, SubscriptionStatus, SubscriptionTier
from ..exceptions import TeamNotFoundError
from ..feature_keys import (
    FeatureKey,
    PLATFORM_FEATURES,
    all_feature_keys,
    platform_for_name,
)
from .feature_checker import FeatureChecker, get_global_feature_checker
from .subscription_sync import SubscriptionSyncService
from .tier_config import get_free_tier_features

logger = logging.getLogger(__name__)

FEATURE_SOURCE = "stripe_entitlements"


class FeatureAccessService:
    """Service for answering feature access questions about a team"""

    def __init__(self, db: Session, feature_checker: Optional[FeatureChecker] = None):
        self.db = db
        self.feature_checker = feature_checker or get_global_feature_checker()
        self.sync_service = SubscriptionSyncService(db)

    # ========================================================================
    # Resolution
    # ========================================================================

    def resolve_team(self, team_ref: str) -> Team:
        """
        Resolve a team by id, then by slug

        Raises:
            TeamNotFoundError: if neither matches
        """
        team = self.db.query(Team).filter(Team.id == team_ref).first()
        if team is None:
            team = self.db.query(Team).filter(Team.slug == team_ref).first()
        if team is None:
            raise TeamNotFoundError(team_ref)
        return team

    def _subscription(self, team_id: str) -> Optional[TeamSubscription]:
        return self.sync_service.get_team_subscription(team_id)

    def _effective_features(self, team_id: str, subscription: Optional[TeamSubscription] = None) -> Set[str]:
        """Stripe features, or the free tier when the team has no entitling subscription"""
        features = self.feature_checker.get_team_features(team_id)
        if features:
            return features

        if subscription is None:
            subscription = self._subscription(team_id)
        if subscription is None:
            return set(get_free_tier_features())
        # Paying team with nothing resolved: fail closed rather than grant free tier
        return set()

    # ========================================================================
    # Access checks
    # ========================================================================

    def get_feature_access(self, team_id: str) -> Dict[str, Any]:
        """
        Summarize a team's access

        Returns:
            Dict with has_access, features, tier, subscription_id, error
        """
        team = self.db.query(Team).filter(Team.id == team_id).first()
        if team is None:
            return {
                "has_access": False,
                "features": [],
                "tier": None,
                "subscription_id": None,
                "error": "Team not found",
            }

        try:
            subscription = self._subscription(team_id)
            features = self._effective_features(team_id, subscription)
            tier = subscription.tier if subscription else SubscriptionTier.FREE.value
            return {
                "has_access": bool(features),
                "features": sorted(features),
                "tier": tier,
                "subscription_id": subscription.stripe_subscription_id if subscription else None,
                "error": None,
            }
        except Exception as e:
            logger.error(f"Failed to get feature access for team {team_id}: {e}", exc_info=True)
            return {
                "has_access": False,
                "features": [],
                "tier": None,
                "subscription_id": None,
                "error": "Error checking feature access",
            }

    def has_feature(self, team_id: str, feature_key: str) -> bool:
        return feature_key in self._effective_features(team_id)

    def has_features(self, team_id: str, feature_keys: Iterable[str], require_all: bool = True) -> bool:
        """Check several features (all of them, or any of them)"""
        keys = list(feature_keys)
        if not keys:
            return True
        features = self._effective_features(team_id)
        if require_all:
            return all(key in features for key in keys)
        return any(key in features for key in keys)

    def missing_features(self, team_id: str, feature_keys: Iterable[str]) -> List[str]:
        features = self._effective_features(team_id)
        return [key for key in feature_keys if key not in features]

    def can_access_platform(self, team_id: str, platform: str) -> bool:
        """Check if the team's plan includes a review platform"""
        try:
            resolved = platform_for_name(platform)
        except ValueError:
            logger.debug(f"Unknown platform '{platform}' requested for team {team_id}")
            return False
        return self.has_feature(team_id, PLATFORM_FEATURES[resolved].value)

    def can_access_multi_location(self, team_id: str) -> bool:
        return self.has_feature(team_id, FeatureKey.LOCATIONS_MULTIPLE.value)

    def can_access_api(self, team_id: str) -> bool:
        return self.has_feature(team_id, FeatureKey.API_ACCESS.value)

    def get_all_available_features(self, team_id: str) -> List[str]:
        return sorted(self._effective_features(team_id))

    # ========================================================================
    # Tenant feature views
    # ========================================================================

    def get_tenant_features(self, team_ref: str) -> Dict[str, Any]:
        """
        Full feature map for a tenant over every known feature key

        Args:
            team_ref: Team id or slug

        Returns:
            Dict with team_id, features, metadata and resolved_at

        Raises:
            TeamNotFoundError: if the team does not exist
        """
        team = self.resolve_team(team_ref)
        subscription = self._subscription(team.id)
        enabled = self._effective_features(team.id, subscription)

        features = {key: key in enabled for key in all_feature_keys()}
        active_statuses = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)

        return {
            "team_id": team.id,
            "features": features,
            "metadata": {
                "has_active_subscription": bool(subscription and subscription.status in active_statuses),
                "subscription_status": subscription.status if subscription else None,
                "source": FEATURE_SOURCE,
                "feature_count": sum(1 for enabled_flag in features.values() if enabled_flag),
            },
            "resolved_at": datetime.utcnow(),
        }

    def check_tenant_features(self, team_ref: str, feature_keys: List[str]) -> Dict[str, bool]:
        """
        Check a list of features for a tenant

        Raises:
            ValueError: if feature_keys is empty
            TeamNotFoundError: if the team does not exist
        """
        if not feature_keys:
            raise ValueError("At least one feature key is required")
        team = self.resolve_team(team_ref)
        enabled = self._effective_features(team.id)
        return {key: key in enabled for key in feature_keys}

    def check_single_feature(self, team_ref: str, feature_key: str) -> bool:
        team = self.resolve_team(team_ref)
        return self.has_feature(team.id, feature_key)

    def invalidate_tenant_feature_cache(self, team_ref: str) -> bool:
        """Manually drop a tenant's cached entitlements"""
        from .cache_invalidation import get_cache_invalidation_service

        team = self.resolve_team(team_ref)
        return get_cache_invalidation_service().invalidate_team_cache(team.id, reason="manual")
