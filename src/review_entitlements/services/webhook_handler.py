"""
Product Webhook Handler - keeps cached entitlements consistent with Stripe

Any product, subscription, invoice or checkout event may change what some team
is entitled to, so supported events clear every feature cache wholesale.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..exceptions import WebhookProcessingError
from .cache_invalidation import get_cache_invalidation_service, CacheInvalidationService
from .metrics import increment_counter, STRIPE_WEBHOOKS
from .subscription_sync import SubscriptionSyncService, SUBSCRIPTION_EVENT_TYPES

logger = logging.getLogger(__name__)

SUPPORTED_EVENT_TYPES = (
    "product.created",
    "product.updated",
    "product.deleted",
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.paused",
    "customer.subscription.resumed",
    "customer.subscription.deleted",
    "invoice.payment_succeeded",
    "invoice.paid",
    "invoice.payment_failed",
)


@dataclass
class WebhookResult:
    """What handling a webhook event did"""
    event_type: str
    handled: bool = False
    cache_cleared: bool = False
    subscription_synced: bool = False
    duplicate: bool = False


class ProductWebhookHandler:
    """Processes parsed Stripe webhook events"""

    def __init__(self, db: Session, invalidation_service: Optional[CacheInvalidationService] = None):
        self.db = db
        self.sync_service = SubscriptionSyncService(db)
        self.invalidation_service = invalidation_service or get_cache_invalidation_service()

    def handle_event(self, parsed_event: Dict[str, Any]) -> WebhookResult:
        """
        Handle a parsed webhook event

        The subscription sync and the event record commit in one transaction. The
        record is deleted again when the caches could not be cleared.

        Args:
            parsed_event: Output of StripeGateway.parse_webhook_event

        Returns:
            WebhookResult

        Raises:
            WebhookProcessingError: if the sync or the cache clear failed
        """
        stripe_event_type = parsed_event.get("stripe_event_type") or parsed_event.get("event_type", "")
        provider_event_id = parsed_event.get("provider_event_id", "")
        result = WebhookResult(event_type=stripe_event_type)

        # Replay protection
        if self.sync_service.is_duplicate(provider_event_id):
            logger.warning(f"Duplicate webhook event {provider_event_id} - ignoring")
            result.duplicate = True
            self._count(result)
            return result

        result.handled = stripe_event_type in SUPPORTED_EVENT_TYPES
        team = self.sync_service.find_team_by_customer(parsed_event.get("customer_id"))

        try:
            if result.handled and parsed_event.get("event_type") in SUBSCRIPTION_EVENT_TYPES:
                synced = self.sync_service.update_subscription_from_webhook(parsed_event, commit=False)
                result.subscription_synced = synced is not None
            if provider_event_id:
                if self.sync_service.record_event(parsed_event, team.id if team else None, commit=False) is None:
                    result.handled = False
                    result.subscription_synced = False
                    result.duplicate = True
                    self._count(result)
                    return result
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to apply webhook {provider_event_id} ({stripe_event_type}): {e}", exc_info=True)
            raise WebhookProcessingError(provider_event_id, f"could not be applied: {e}") from e

        if not result.handled:
            logger.debug(f"Webhook event {stripe_event_type} not handled")
            self._count(result)
            return result

        result.cache_cleared = self.invalidation_service.clear_all_caches(reason=f"webhook:{stripe_event_type}")
        if not result.cache_cleared:
            if provider_event_id:
                self.sync_service.forget_event(provider_event_id)
            logger.error(f"Feature caches not cleared for webhook {provider_event_id}; awaiting redelivery")
            raise WebhookProcessingError(provider_event_id, "feature caches could not be cleared")

        logger.info(
            f"Processed webhook {provider_event_id} ({stripe_event_type}): "
            f"cache_cleared={result.cache_cleared}, subscription_synced={result.subscription_synced}"
        )
        self._count(result)
        return result

    @staticmethod
    def get_supported_event_types() -> List[str]:
        return list(SUPPORTED_EVENT_TYPES)

    def clear_team_cache(self, team_id: str) -> bool:
        """Invalidate one team, e.g. after a manual package change"""
        return self.invalidation_service.invalidate_team_cache(team_id, reason="package_change")

    @staticmethod
    def _count(result: WebhookResult):
        increment_counter(
            STRIPE_WEBHOOKS,
            labels={
                "event_type": result.event_type or "unknown",
                "handled": "duplicate" if result.duplicate else str(result.handled).lower(),
            },
        )
