"""
Database models for Review Entitlements
"""
from .team import (
    Team,
    TeamSubscription,
    SubscriptionStatus,
    SubscriptionTier,
    ENTITLED_STATUSES,
)
from .billing import BillingEvent
from .quota import TenantQuotaUsage

__all__ = [
    "Team",
    "TeamSubscription",
    "SubscriptionStatus",
    "SubscriptionTier",
    "ENTITLED_STATUSES",
    "BillingEvent",
    "TenantQuotaUsage",
]
