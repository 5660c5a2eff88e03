"""
Subscription Sync Service - mirrors Stripe subscription state into team_subscriptions
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import Optional, Dict, Any
import logging

from ..db.models import (
    Team,
    TeamSubscription,
    BillingEvent,
    SubscriptionStatus,
    SubscriptionTier,
    ENTITLED_STATUSES,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENT_TYPES = (
    "subscription_created",
    "subscription_updated",
    "subscription_paused",
    "subscription_cancelled",
)

_KNOWN_STATUSES = {status.value for status in SubscriptionStatus}
_KNOWN_TIERS = {tier.value for tier in SubscriptionTier}


class SubscriptionSyncService:
    """Service for recording webhook events and syncing team subscriptions"""

    def __init__(self, db: Session):
        self.db = db

    def is_duplicate(self, provider_event_id: str) -> bool:
        """Check whether a webhook event was already processed"""
        if not provider_event_id:
            return False
        existing = self.db.query(BillingEvent).filter(
            BillingEvent.provider_event_id == provider_event_id
        ).first()
        return existing is not None

    def find_team_by_customer(self, customer_id: Optional[str]) -> Optional[Team]:
        if not customer_id:
            return None
        return self.db.query(Team).filter(Team.stripe_customer_id == customer_id).first()

    def record_event(
        self,
        parsed_event: Dict[str, Any],
        team_id: Optional[str] = None,
        commit: bool = True,
    ) -> Optional[BillingEvent]:
        """
        Store a processed webhook event

        Args:
            parsed_event: Output of StripeGateway.parse_webhook_event
            team_id: Team owning the event's customer, if known
            commit: Commit immediately; with False the row is only flushed so it
                commits together with the caller's other changes

        Returns:
            BillingEvent, or None if the event id was already stored (replay)
        """
        billing_event = BillingEvent(
            team_id=team_id,
            provider="stripe",
            event_type=parsed_event.get("stripe_event_type") or parsed_event.get("event_type", ""),
            provider_event_id=parsed_event["provider_event_id"],
            payload_json=_json_safe(parsed_event.get("raw_data") or {}),
        )
        self.db.add(billing_event)
        try:
            if commit:
                self.db.commit()
            else:
                self.db.flush()
        except IntegrityError:
            # Concurrent delivery of the same event won the insert
            self.db.rollback()
            logger.warning(f"Duplicate webhook event {parsed_event['provider_event_id']} - ignoring")
            return None
        return billing_event

    def forget_event(self, provider_event_id: str) -> bool:
        """Delete a recorded event so a redelivery is processed again"""
        deleted = self.db.query(BillingEvent).filter(
            BillingEvent.provider_event_id == provider_event_id
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def update_subscription_from_webhook(
        self,
        parsed_event: Dict[str, Any],
        commit: bool = True,
    ) -> Optional[TeamSubscription]:
        """
        Upsert the team's subscription from a parsed subscription event

        Args:
            parsed_event: Output of StripeGateway.parse_webhook_event
            commit: Commit immediately; with False the changes are only flushed

        Returns:
            Updated TeamSubscription, or None if the event carries no subscription
            or no team owns the customer
        """
        subscription_id = parsed_event.get("subscription_id")
        if not subscription_id:
            logger.warning(f"No subscription_id in webhook event {parsed_event.get('provider_event_id')}")
            return None

        team = self.find_team_by_customer(parsed_event.get("customer_id"))
        if team is None:
            logger.warning(
                f"No team found for Stripe customer {parsed_event.get('customer_id')} "
                f"(subscription {subscription_id})"
            )
            return None

        subscription = self.db.query(TeamSubscription).filter(
            TeamSubscription.stripe_subscription_id == subscription_id
        ).first()

        if subscription is None:
            subscription = TeamSubscription(
                team_id=team.id,
                stripe_subscription_id=subscription_id,
                tier=SubscriptionTier.STARTER.value,
            )
            self.db.add(subscription)

        subscription.team_id = team.id
        subscription.stripe_customer_id = parsed_event.get("customer_id")
        if parsed_event.get("product_id"):
            subscription.stripe_product_id = parsed_event["product_id"]

        if parsed_event.get("event_type") == "subscription_cancelled":
            subscription.status = SubscriptionStatus.CANCELED.value
        elif parsed_event.get("status") in _KNOWN_STATUSES:
            subscription.status = parsed_event["status"]
        elif parsed_event.get("status"):
            logger.warning(f"Unknown Stripe subscription status '{parsed_event['status']}' for {subscription_id}")

        tier = _tier_from_payload(parsed_event.get("raw_data") or {})
        if tier:
            subscription.tier = tier

        if parsed_event.get("current_period_end"):
            subscription.current_period_end = parsed_event["current_period_end"]
        subscription.cancel_at_period_end = bool(parsed_event.get("cancel_at_period_end", False))
        subscription.updated_at = datetime.utcnow()

        if commit:
            self.db.commit()
            self.db.refresh(subscription)
        else:
            self.db.flush()

        logger.info(
            f"Synced subscription {subscription_id} for team {team.id}: "
            f"status={subscription.status}, tier={subscription.tier}"
        )
        return subscription

    def get_team_subscription(self, team_id: str) -> Optional[TeamSubscription]:
        """Newest subscription that still grants entitlements (active, trialing, past_due)"""
        return self.db.query(TeamSubscription).filter(
            TeamSubscription.team_id == team_id,
            TeamSubscription.status.in_(ENTITLED_STATUSES),
        ).order_by(TeamSubscription.created_at.desc(), TeamSubscription.id.desc()).first()


def _tier_from_payload(data: Dict[str, Any]) -> Optional[str]:
    """Tier from subscription, price or expanded product metadata"""
    candidates = [(data.get("metadata") or {}).get("tier")]

    items = (data.get("items") or {}).get("data") or []
    if items:
        price = items[0].get("price") or {}
        candidates.append((price.get("metadata") or {}).get("tier"))
        product = price.get("product")
        if isinstance(product, dict):
            candidates.append((product.get("metadata") or {}).get("tier"))

    for candidate in candidates:
        if candidate and candidate.lower() in _KNOWN_TIERS:
            return candidate.lower()
    return None


def _json_safe(value: Any) -> Any:
    """Convert datetimes so the payload fits a JSON column"""
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value
