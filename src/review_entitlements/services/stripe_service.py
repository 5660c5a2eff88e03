"""
Stripe Service - subscription and product lookups used for entitlement resolution
"""
import logging
from typing import Any, Optional

import stripe

from ..exceptions import StripeNotConfiguredError

logger = logging.getLogger(__name__)

# Subscription statuses that entitle a team to its product's features
ENTITLING_STRIPE_STATUSES = ("active", "trialing")


def stripe_field(obj: Any, name: str) -> Any:
    """Read a field from a StripeObject or a plain dict"""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    # Subscript first: "items" is also a mapping method name
    try:
        return obj[name]
    except (KeyError, TypeError):
        return getattr(obj, name, None)


class StripeService:
    """Thin wrapper over the Stripe SDK calls the entitlement layer needs"""

    def __init__(self, api_key: Optional[str] = None):
        """
        Args:
            api_key: Stripe secret key (defaults to the key for the current environment)
        """
        if api_key is None:
            from ..config import config
            api_key = config.get_stripe_secret_key()
        self.api_key = api_key
        self.stripe = stripe

    def require_api_key(self) -> str:
        if not self.api_key:
            raise StripeNotConfiguredError("Stripe API key not configured")
        return self.api_key

    def get_current_subscription(self, customer_id: str) -> Optional[Any]:
        """
        Get the customer's current subscription

        Lists up to 10 subscriptions in any status and returns the first one
        that is active or trialing.

        Returns:
            Stripe Subscription object or None
        """
        api_key = self.require_api_key()
        subscriptions = self.stripe.Subscription.list(
            customer=customer_id,
            status="all",
            limit=10,
            api_key=api_key,
        )

        for subscription in stripe_field(subscriptions, "data") or []:
            if stripe_field(subscription, "status") in ENTITLING_STRIPE_STATUSES:
                return subscription

        logger.debug(f"No active or trialing subscription for customer {customer_id}")
        return None

    @staticmethod
    def get_product_id(subscription: Any) -> Optional[str]:
        """
        Product backing the subscription's first item

        The product may be an ID string or an expanded Product object.
        """
        items = stripe_field(stripe_field(subscription, "items"), "data") or []
        if not items:
            return None

        product = stripe_field(stripe_field(items[0], "price"), "product")
        if product is None or isinstance(product, str):
            return product
        return stripe_field(product, "id")

    def get_product(self, product_id: str) -> Any:
        """Retrieve a Stripe product (metadata carries plan limits)"""
        api_key = self.require_api_key()
        return self.stripe.Product.retrieve(product_id, api_key=api_key)


# Global Stripe service instance
_stripe_service: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get global Stripe service instance"""
    global _stripe_service
    if _stripe_service is None:
        _stripe_service = StripeService()
    return _stripe_service
