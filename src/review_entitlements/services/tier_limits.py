"""
Feature Extractor - derives tier, platform access and scrape limits from entitlements
Stripe product metadata is the source of truth for limits; tiers.yaml holds the defaults.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, Optional, Set

from sqlalchemy.orm import Session

from ..db.models import SubscriptionTier
from ..feature_keys import FeatureKey
from .feature_checker import FeatureChecker, get_global_feature_checker
from .stripe_service import StripeService, stripe_field
from .subscription_sync import SubscriptionSyncService
from .tier_config import get_tier_limits

logger = logging.getLogger(__name__)

# Stripe product metadata key -> limit field
METADATA_LIMIT_KEYS = {
    "maxReviewsPerBusiness": "max_reviews_per_business",
    "maxBusinessLocations": "max_business_locations",
    "reviewsScrapeIntervalHours": "reviews_scrape_interval_hours",
    "overviewScrapeIntervalHours": "overview_scrape_interval_hours",
    "historicalDataMonths": "historical_data_months",
    "maxConcurrentScrapes": "max_concurrent_scrapes",
}


@dataclass
class SubscriptionLimits:
    max_reviews_per_business: int
    max_business_locations: int
    reviews_scrape_interval_hours: int
    overview_scrape_interval_hours: int
    historical_data_months: int
    max_concurrent_scrapes: int


@dataclass
class ExtractedFeatures:
    tier: str
    platforms: Dict[str, bool] = field(default_factory=dict)
    limits: Optional[SubscriptionLimits] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def determine_tier(features: Set[str]) -> str:
    """Determine subscription tier from the team's features"""
    google = FeatureKey.GOOGLE_REVIEWS.value in features
    facebook = FeatureKey.FACEBOOK_REVIEWS.value in features
    tripadvisor = FeatureKey.TRIPADVISOR_REVIEWS.value in features
    booking = FeatureKey.BOOKING_REVIEWS.value in features

    if google and facebook and tripadvisor and booking and FeatureKey.REVIEWS_UNLIMITED.value in features:
        return SubscriptionTier.ENTERPRISE.value
    if google and (facebook or tripadvisor):
        return SubscriptionTier.PROFESSIONAL.value
    return SubscriptionTier.STARTER.value


class FeatureExtractor:
    """Extracts tier, platform flags and limits for a team"""

    def __init__(
        self,
        db: Session,
        feature_checker: Optional[FeatureChecker] = None,
        stripe_service: Optional[StripeService] = None,
    ):
        self.db = db
        self.feature_checker = feature_checker or get_global_feature_checker()
        self.stripe_service = stripe_service or self.feature_checker.stripe_service

    def extract_team_features(self, team_id: str) -> ExtractedFeatures:
        features = self.feature_checker.get_team_features(team_id)
        tier = determine_tier(features)

        platforms = {
            "google_reviews": FeatureKey.GOOGLE_REVIEWS.value in features,
            "facebook": FeatureKey.FACEBOOK_REVIEWS.value in features,
            "tripadvisor": FeatureKey.TRIPADVISOR_REVIEWS.value in features,
            "booking": FeatureKey.BOOKING_REVIEWS.value in features,
        }

        return ExtractedFeatures(
            tier=tier,
            platforms=platforms,
            limits=self.extract_limits(team_id, tier),
        )

    def extract_limits(self, team_id: str, tier: str) -> SubscriptionLimits:
        """Tier defaults overridden field by field by Stripe product metadata"""
        limits = get_tier_limits(tier) or get_tier_limits(SubscriptionTier.STARTER.value)
        limits.update(self.get_stripe_limits(team_id))
        return SubscriptionLimits(**limits)

    def get_stripe_limits(self, team_id: str) -> Dict[str, int]:
        """
        Limits from the team's Stripe product metadata

        Returns:
            Partial limits dict (empty when there is no product or Stripe fails)
        """
        subscription = SubscriptionSyncService(self.db).get_team_subscription(team_id)
        if subscription is None or not subscription.stripe_product_id:
            return {}

        try:
            product = self.stripe_service.get_product(subscription.stripe_product_id)
        except Exception as e:
            logger.error(f"Failed to load Stripe product {subscription.stripe_product_id} for team {team_id}: {e}")
            return {}

        metadata = stripe_field(product, "metadata") or {}
        overrides: Dict[str, int] = {}
        for metadata_key, limit_name in METADATA_LIMIT_KEYS.items():
            raw = stripe_field(metadata, metadata_key)
            if raw in (None, ""):
                continue
            try:
                overrides[limit_name] = int(raw)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring non-integer {metadata_key}={raw!r} on product {subscription.stripe_product_id}")
        return overrides
