"""
Stripe webhook route
Verifies the signature, records the event and clears cached entitlements
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
import json
import logging

from .config import config
from .db.engine import get_db
from .schemas import WebhookResponse
from .services.billing_gateway import get_billing_gateway
from .services.webhook_handler import ProductWebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/webhooks", tags=["Webhooks"])


@router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Stripe webhook endpoint with signature verification and replay protection
    """
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Missing stripe-signature header", "code": "MISSING_SIGNATURE"}
        )

    try:
        gateway = get_billing_gateway(config)
    except ValueError as e:
        logger.error(f"Stripe webhook received but gateway is not configured: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Stripe is not configured", "code": "SERVICE_UNAVAILABLE"}
        )

    body = await request.body()
    if not gateway.verify_webhook_signature(body, signature):
        logger.warning("Rejected Stripe webhook with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid webhook signature", "code": "INVALID_SIGNATURE"}
        )

    try:
        payload = json.loads(body.decode())
        parsed_event = gateway.parse_webhook_event(payload)
        result = ProductWebhookHandler(db).handle_event(parsed_event)
    except Exception as e:
        logger.error(f"Stripe webhook processing failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Webhook processing failed", "code": "WEBHOOK_ERROR"}
        )

    return {
        "status": "ok",
        "event_type": result.event_type,
        "handled": result.handled,
        "cache_cleared": result.cache_cleared,
        "duplicate": result.duplicate,
    }
