"""Webhook endpoints for external services"""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request

from verdict.api.deps import get_billing_service
from verdict.config import settings
from verdict.services.billing import BillingService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    billing: BillingService = Depends(get_billing_service),
) -> dict[str, str]:
    """Handle Stripe webhook events"""

    if not settings.is_payments_configured():
        raise HTTPException(status_code=503, detail="Payment functionality is disabled")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, settings.stripe_webhook_secret
        )
    except ValueError as e:
        logger.error(f"Invalid Stripe webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid Stripe webhook signature: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    logger.info(f"Received Stripe webhook: {event_type}")

    if event_type == "checkout.session.completed":
        session = event["data"]["object"]
        granted = await billing.handle_checkout_completed(dict(session))
        return {
            "message": "Webhook processed successfully",
            "event_type": event_type,
            "status": "credited" if granted else "ignored",
        }

    logger.info(f"Unhandled Stripe webhook event type: {event_type}")
    return {
        "message": "Webhook processed successfully",
        "event_type": event_type,
        "status": "ignored",
    }
