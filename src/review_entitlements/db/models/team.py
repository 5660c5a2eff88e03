"""
Team and team subscription models
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import uuid

from ..base import Base


class SubscriptionStatus(str, enum.Enum):
    """Stripe subscription status enum"""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


# Statuses that still grant entitlements
ENTITLED_STATUSES = (
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.TRIALING.value,
    SubscriptionStatus.PAST_DUE.value,
)


class SubscriptionTier(str, enum.Enum):
    """Subscription tier enum"""
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


def _new_team_id() -> str:
    return uuid.uuid4().hex


class Team(Base):
    """Tenant (team) model"""
    __tablename__ = "teams"

    id = Column(String(64), primary_key=True, default=_new_team_id)
    slug = Column(String(128), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    stripe_customer_id = Column(String(255), nullable=True, unique=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    subscriptions = relationship("TeamSubscription", back_populates="team", cascade="all, delete-orphan")
    quota_usage = relationship("TenantQuotaUsage", back_populates="team", cascade="all, delete-orphan")


class TeamSubscription(Base):
    """Local mirror of a team's Stripe subscription"""
    __tablename__ = "team_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String(64), ForeignKey("teams.id"), nullable=False, index=True)
    stripe_subscription_id = Column(String(255), nullable=False, unique=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_product_id = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    tier = Column(String(32), nullable=False, default=SubscriptionTier.STARTER.value)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="subscriptions")
