"""
Feature registry - Stripe entitlement lookup keys
Keys follow the "platform.capability" convention used on Stripe entitlement features.
"""
import enum
from typing import Dict, List


class Platform(str, enum.Enum):
    """Review/social platforms a team can connect"""
    GOOGLE = "google"
    FACEBOOK = "facebook"
    TRIPADVISOR = "tripadvisor"
    BOOKING = "booking"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"


class FeatureKey(str, enum.Enum):
    """Stripe entitlement feature lookup keys"""
    # Google Business
    GOOGLE_OVERVIEW = "google.overview"
    GOOGLE_REVIEWS = "google.reviews"
    GOOGLE_ANALYTICS = "google.analytics"
    GOOGLE_COMPETITOR_ANALYSIS = "google.competitor_analysis"

    # Facebook
    FACEBOOK_OVERVIEW = "facebook.overview"
    FACEBOOK_REVIEWS = "facebook.reviews"
    FACEBOOK_ANALYTICS = "facebook.analytics"
    FACEBOOK_COMPETITOR_ANALYSIS = "facebook.competitor_analysis"

    # TripAdvisor
    TRIPADVISOR_OVERVIEW = "tripadvisor.overview"
    TRIPADVISOR_REVIEWS = "tripadvisor.reviews"
    TRIPADVISOR_ANALYTICS = "tripadvisor.analytics"
    TRIPADVISOR_COMPETITOR_ANALYSIS = "tripadvisor.competitor_analysis"

    # Booking.com
    BOOKING_OVERVIEW = "booking.overview"
    BOOKING_REVIEWS = "booking.reviews"
    BOOKING_ANALYTICS = "booking.analytics"
    BOOKING_COMPETITOR_ANALYSIS = "booking.competitor_analysis"

    # Instagram
    INSTAGRAM_OVERVIEW = "instagram.overview"
    INSTAGRAM_ANALYTICS = "instagram.analytics"
    INSTAGRAM_ENGAGEMENT = "instagram.engagement"
    INSTAGRAM_FOLLOWERS = "instagram.followers"

    # TikTok
    TIKTOK_OVERVIEW = "tiktok.overview"
    TIKTOK_ANALYTICS = "tiktok.analytics"
    TIKTOK_REACH = "tiktok.reach"

    # Cross-platform
    REVIEWS_UNLIMITED = "reviews.unlimited"
    LOCATIONS_MULTIPLE = "locations.multiple"
    API_ACCESS = "api.access"
    DATA_EXPORT = "data.export"
    ANALYTICS_ADVANCED = "analytics.advanced"


# Feature that unlocks each platform in the dashboard
PLATFORM_FEATURES: Dict[Platform, FeatureKey] = {
    Platform.GOOGLE: FeatureKey.GOOGLE_REVIEWS,
    Platform.FACEBOOK: FeatureKey.FACEBOOK_REVIEWS,
    Platform.TRIPADVISOR: FeatureKey.TRIPADVISOR_REVIEWS,
    Platform.BOOKING: FeatureKey.BOOKING_REVIEWS,
    Platform.INSTAGRAM: FeatureKey.INSTAGRAM_OVERVIEW,
    Platform.TIKTOK: FeatureKey.TIKTOK_OVERVIEW,
}

_PLATFORM_ALIASES = {
    "booking.com": Platform.BOOKING,
    "bookingcom": Platform.BOOKING,
    "google_business": Platform.GOOGLE,
    "gbp": Platform.GOOGLE,
}


def all_feature_keys() -> List[str]:
    """All known feature lookup keys"""
    return [key.value for key in FeatureKey]


def is_valid_feature_key(key: str) -> bool:
    return key in _FEATURE_KEY_VALUES


def features_for_platform(platform: Platform) -> List[str]:
    """Lookup keys scoped to a single platform"""
    prefix = f"{Platform(platform).value}."
    return [key.value for key in FeatureKey if key.value.startswith(prefix)]


def platform_for_name(name: str) -> Platform:
    """
    Resolve a platform name as it appears in URLs and payloads

    Raises:
        ValueError: if the name is not a known platform
    """
    normalized = (name or "").strip().lower()
    if normalized in _PLATFORM_ALIASES:
        return _PLATFORM_ALIASES[normalized]
    return Platform(normalized)


_FEATURE_KEY_VALUES = frozenset(all_feature_keys())
