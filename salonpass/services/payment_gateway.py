"""
Payment Gateway

Charges packages through Stripe and translates gateway results and webhook
events into PaymentOutcome values the reconciler understands.
"""

import asyncio
import stripe
from decimal import Decimal
from typing import Optional, Dict, Any
from loguru import logger

from salonpass.core.config import settings
from salonpass.core.exceptions import PaymentGatewayUnavailable, ValidationError
from salonpass.schemas.subscription import PaymentOutcome, PaymentOutcomeKind


# Initialize Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY


class PaymentGateway:
    """Gateway interface used by purchase and renew"""

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_auth: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> PaymentOutcome:
        """
        Charge a customer.

        Returns an AUTHORIZED, CAPTURED or FAILED outcome. Raises
        PaymentGatewayUnavailable when the gateway cannot be reached.
        """
        raise NotImplementedError


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class StripePaymentGateway(PaymentGateway):
    """Service for Stripe payment operations"""

    STATUS_OUTCOMES = {
        "succeeded": PaymentOutcomeKind.CAPTURED,
        "requires_capture": PaymentOutcomeKind.AUTHORIZED,
    }

    def __init__(self, capture_method: str = settings.STRIPE_CAPTURE_METHOD):
        self.capture_method = capture_method

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_auth: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> PaymentOutcome:
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                payment_method=payment_auth,
                confirm=True,
                capture_method=self.capture_method,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata=metadata or {},
            )
        except stripe.CardError as e:
            logger.warning(f"Card declined: {e.user_message}")
            return PaymentOutcome.failed(failure_reason=e.user_message or "card_declined")
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe rejected payment request: {e}")
            return PaymentOutcome.failed(failure_reason=str(e))
        except (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError, stripe.AuthenticationError) as e:
            logger.error(f"Stripe unavailable: {e}")
            raise PaymentGatewayUnavailable(f"Stripe unavailable: {e}")

        kind = self.STATUS_OUTCOMES.get(intent.status, PaymentOutcomeKind.FAILED)
        logger.info(f"Stripe PaymentIntent {intent.id} status={intent.status} -> {kind.value}")

        if kind == PaymentOutcomeKind.FAILED:
            return PaymentOutcome.failed(failure_reason=f"intent_{intent.status}", reference=intent.id)
        return PaymentOutcome(kind=kind, reference=intent.id)

    @staticmethod
    def construct_webhook_event(payload: bytes, sig_header: str, webhook_secret: str):
        """Verify a webhook signature and build the event"""
        return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)

    @staticmethod
    def outcome_from_event(event: Dict[str, Any]) -> Optional[tuple[Optional[int], PaymentOutcome]]:
        """
        Map a Stripe event to (subscription_id, outcome).

        subscription_id is None when the intent was created before the
        subscription existed; the reconciler then finds it by reference.
        Returns None for events that carry no payment outcome.
        """
        event_type = event["type"]
        data = event["data"]["object"]
        metadata = data.get("metadata") or {}
        subscription_id = int(metadata["subscription_id"]) if metadata.get("subscription_id") else None

        if event_type == "payment_intent.succeeded":
            return subscription_id, PaymentOutcome.captured(reference=data["id"])

        if event_type == "payment_intent.amount_capturable_updated":
            return subscription_id, PaymentOutcome.authorized(reference=data["id"])

        if event_type == "payment_intent.payment_failed":
            error = data.get("last_payment_error") or {}
            return subscription_id, PaymentOutcome.failed(
                failure_reason=error.get("message") or "payment_failed",
                reference=data["id"],
            )

        # Refunds come from Refund objects only; charge.refunded repeats them
        if event_type == "refund.created":
            if data.get("status") in ("failed", "canceled"):
                logger.warning(f"Ignoring Stripe refund {data.get('id')} with status {data['status']}")
                return None
            if not data.get("amount") or not data.get("payment_intent"):
                raise ValidationError(
                    "Refund event without an amount or payment intent",
                    details={"refund": data.get("id")}
                )
            return subscription_id, PaymentOutcome.refunded(
                amount=from_minor_units(data["amount"]),
                reference=data["payment_intent"],
            )

        logger.debug(f"Ignoring Stripe event {event_type}")
        return None


# Singleton instance
_payment_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Get singleton instance"""
    global _payment_gateway
    if _payment_gateway is None:
        _payment_gateway = StripePaymentGateway()
    return _payment_gateway
