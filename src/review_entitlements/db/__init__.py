"""
Database module for Review Entitlements
"""
from .engine import engine, SessionLocal, get_db
from .base import Base
from .models import (
    Team,
    TeamSubscription,
    BillingEvent,
    TenantQuotaUsage,
)

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "Base",
    "Team",
    "TeamSubscription",
    "BillingEvent",
    "TenantQuotaUsage",
]
