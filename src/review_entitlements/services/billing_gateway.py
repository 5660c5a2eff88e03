"""
Billing Gateway - webhook verification and event parsing for the payment provider
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from datetime import datetime
import logging

import stripe

logger = logging.getLogger(__name__)


class BillingGateway(ABC):
    """Abstract base class for payment provider webhooks"""

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify webhook signature"""
        pass

    @abstractmethod
    def parse_webhook_event(self, payload: Dict) -> Dict[str, Any]:
        """Parse webhook event into standardized format"""
        pass


class StripeGateway(BillingGateway):
    """Stripe webhook gateway"""

    # Map Stripe events to our standard format
    EVENT_MAPPING = {
        "customer.subscription.created": "subscription_created",
        "customer.subscription.updated": "subscription_updated",
        "customer.subscription.paused": "subscription_paused",
        "customer.subscription.resumed": "subscription_updated",
        "customer.subscription.deleted": "subscription_cancelled",
        "invoice.paid": "payment_succeeded",
        "invoice.payment_succeeded": "payment_succeeded",
        "invoice.payment_failed": "payment_failed",
        "product.created": "product_updated",
        "product.updated": "product_updated",
        "product.deleted": "product_deleted",
        "checkout.session.completed": "checkout_completed",
    }

    def __init__(self, api_key: str, webhook_secret: str, is_test: bool = False):
        """
        Initialize Stripe gateway

        Args:
            api_key: Stripe API key (test or live)
            webhook_secret: Stripe webhook signing secret
            is_test: Whether using test mode
        """
        self.stripe = stripe
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.is_test = is_test

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify Stripe webhook signature"""
        try:
            self.stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret
            )
            return True
        except self.stripe.SignatureVerificationError:
            return False
        except Exception as e:
            logger.error(f"Stripe webhook verification failed: {e}")
            return False

    def parse_webhook_event(self, payload: Dict) -> Dict[str, Any]:
        """Parse Stripe webhook event"""
        stripe_event_type = payload.get("type", "")
        data = payload.get("data", {}).get("object", {}) or {}
        object_type = data.get("object", "")

        subscription_id = None
        product_id = None
        customer_id = data.get("customer")

        if object_type == "subscription":
            subscription_id = data.get("id")
            product_id = self._product_from_subscription(data)
        elif object_type == "invoice":
            subscription_id = data.get("subscription")
        elif object_type == "checkout.session":
            subscription_id = data.get("subscription")
        elif object_type == "product":
            product_id = data.get("id")
            customer_id = None

        current_period_end = data.get("current_period_end")
        if current_period_end is None and object_type == "subscription":
            # Newer API versions carry the period on subscription items
            items = (data.get("items") or {}).get("data") or []
            if items:
                current_period_end = items[0].get("current_period_end")

        return {
            "event_type": self.EVENT_MAPPING.get(stripe_event_type, stripe_event_type),
            "stripe_event_type": stripe_event_type,
            "provider_event_id": payload.get("id", ""),
            "object_type": object_type,
            "object_id": data.get("id"),
            "customer_id": customer_id,
            "subscription_id": subscription_id,
            "product_id": product_id,
            "status": data.get("status"),
            "cancel_at_period_end": bool(data.get("cancel_at_period_end", False)),
            "current_period_end": datetime.utcfromtimestamp(current_period_end) if current_period_end else None,
            "raw_data": data,
        }

    @staticmethod
    def _product_from_subscription(data: Dict) -> Optional[str]:
        items = (data.get("items") or {}).get("data") or []
        if not items:
            return None
        product = (items[0].get("price") or {}).get("product")
        if isinstance(product, dict):
            return product.get("id")
        return product


def get_billing_gateway(config) -> BillingGateway:
    """
    Factory function to get the Stripe billing gateway

    Args:
        config: Config object with payment provider settings

    Returns:
        BillingGateway instance
    """
    is_staging = config.ENV == "staging"
    api_key = config.get_stripe_secret_key()
    webhook_secret = config.get_stripe_webhook_secret()

    if not api_key:
        raise ValueError("Stripe API key not configured")
    if not webhook_secret:
        raise ValueError("Stripe webhook secret not configured")

    return StripeGateway(api_key, webhook_secret, is_test=is_staging)
