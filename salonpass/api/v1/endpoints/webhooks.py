from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
import stripe

from salonpass.api.deps import get_subscription_orchestrator
from salonpass.core.config import settings
from salonpass.core.exceptions import DomainError, ValidationError
from salonpass.schemas.subscription import PaymentOutcomeRequest, SubscriptionRead
from salonpass.services.payment_gateway import StripePaymentGateway
from salonpass.services.subscription import SubscriptionOrchestrator

router = APIRouter()


@router.post("/payments", response_model=SubscriptionRead)
async def payment_outcome(
    request: PaymentOutcomeRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    """Apply a gateway outcome delivered by callback"""
    return await orchestrator.apply_payment_outcome(request.subscription_id, request.outcome)


@router.post("/payments/stripe")
async def stripe_webhook(
    request: Request,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    """Handle Stripe payment events"""

    # Get payload and signature
    payload = await request.body()
    sig_header = request.headers.get('stripe-signature')

    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=503, detail="Webhook secret not configured")

    # Verify and construct event
    try:
        event = StripePaymentGateway.construct_webhook_event(
            payload=payload,
            sig_header=sig_header,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    logger.info(f"Received webhook event: {event['type']}")

    try:
        mapped = StripePaymentGateway.outcome_from_event(event)
        if mapped is None:
            return {"status": "ignored"}

        subscription_id, outcome = mapped
        await orchestrator.apply_gateway_outcome(subscription_id, outcome)

    except (DomainError, ValidationError) as e:
        # Stripe retries non-2xx responses; a rejected outcome will not succeed on retry
        logger.warning(f"Webhook {event['type']} not applied: {e}")
        return {"status": "rejected", "error": e.code}

    return {"status": "success"}
