"""
Product Features Service - Stripe entitlement features attached to a product
"""
import logging
from typing import Optional, Set

from .stripe_service import StripeService, stripe_field

logger = logging.getLogger(__name__)


class ProductFeaturesService:
    """Resolves the entitlement lookup keys granted by a Stripe product"""

    def __init__(self, stripe_service: Optional[StripeService] = None):
        if stripe_service is None:
            from .stripe_service import get_stripe_service
            stripe_service = get_stripe_service()
        self.stripe_service = stripe_service

    def get_product_features(self, product_id: str) -> Set[str]:
        """
        List the entitlement features attached to a product

        Args:
            product_id: Stripe product ID

        Returns:
            Set of feature lookup keys

        Raises:
            stripe.StripeError: propagated to the caller
        """
        api_key = self.stripe_service.require_api_key()
        product_features = self.stripe_service.stripe.Product.list_features(
            product_id,
            limit=100,
            api_key=api_key,
        )

        features: Set[str] = set()
        for product_feature in product_features.auto_paging_iter():
            lookup_key = stripe_field(stripe_field(product_feature, "entitlement_feature"), "lookup_key")
            if lookup_key:
                features.add(lookup_key)
            else:
                logger.debug(f"Skipping product feature without lookup key on product {product_id}")

        logger.debug(f"Product {product_id} grants {len(features)} features")
        return features

    def product_has_feature(self, product_id: str, feature_key: str) -> bool:
        """Check if a product grants a specific feature"""
        return feature_key in self.get_product_features(product_id)
