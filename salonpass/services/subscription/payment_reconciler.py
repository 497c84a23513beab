"""
Payment Reconciler

Applies payment gateway outcomes (authorize, capture, fail, refund) to
subscriptions:

- first activation of a purchase creates the subscription
- a settled renewal opens a new period (and lifts a suspension inside the grace window)
- a failed charge suspends an active subscription; the same charge succeeding
  later inside the grace window reactivates it
- a full refund cancels the subscription, a partial refund only records money

The caller serializes outcomes per subscription and owns the transaction.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from salonpass.core.exceptions import (
    PaymentNotRefundable, ResourceNotFound, ValidationError
)
from salonpass.models.package import Package
from salonpass.models.payment import Payment, PaymentKind, PaymentStatus
from salonpass.models.subscription import Subscription, SubscriptionStatus
from salonpass.schemas.subscription import PaymentOutcome, PaymentOutcomeKind
from salonpass.services.audit_service import AuditAction, AuditService, get_audit_service
from salonpass.services.notification_service import NotificationType, SubscriptionNotice, queue_notice
from salonpass.services.subscription.quota_ledger import QuotaLedger
from salonpass.services.subscription.state_machine import SubscriptionStateMachine, TransitionReason
from salonpass.services.subscription.token_manager import RedemptionTokenManager


SUCCESSFUL_OUTCOMES = (PaymentOutcomeKind.AUTHORIZED, PaymentOutcomeKind.CAPTURED)

PAYMENT_STATUS_FOR_OUTCOME = {
    PaymentOutcomeKind.AUTHORIZED: PaymentStatus.AUTHORIZED,
    PaymentOutcomeKind.CAPTURED: PaymentStatus.CAPTURED,
    PaymentOutcomeKind.FAILED: PaymentStatus.FAILED,
}


class PaymentReconciler:

    def __init__(
        self,
        token_manager: RedemptionTokenManager,
        quota_ledger: QuotaLedger,
        state_machine: SubscriptionStateMachine,
        audit_service: Optional[AuditService] = None
    ):
        self.token_manager = token_manager
        self.quota_ledger = quota_ledger
        self.state_machine = state_machine
        self.audit_service = audit_service or get_audit_service()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def activate_purchase(
        self,
        db: AsyncSession,
        customer_id: int,
        package: Package,
        outcome: PaymentOutcome,
        actor: str,
        now: datetime,
        auto_renewal: bool = False
    ) -> Subscription:
        """Create the subscription for a purchase the gateway authorized or captured"""
        if outcome.kind not in SUCCESSFUL_OUTCOMES:
            raise ValidationError(
                f"Cannot activate a purchase on a {outcome.kind.value} outcome",
                details={"outcome": outcome.kind.value}
            )

        subscription = Subscription(
            customer_id=customer_id,
            package_id=package.id,
            visits_used=0,
            visits_remaining=package.visit_count,
            status=SubscriptionStatus.ACTIVE,
            start_date=now,
            end_date=now + timedelta(days=package.validity_days),
            auto_renewal=auto_renewal,
        )
        db.add(subscription)
        await db.flush()

        await self.token_manager.issue(db, subscription.id)
        self.audit_service.record(db, AuditAction.TOKEN_ISSUED, actor, subscription_id=subscription.id)

        payment = Payment(
            subscription_id=subscription.id,
            kind=PaymentKind.PURCHASE,
            amount=package.price,
            currency=package.currency,
            status=PAYMENT_STATUS_FOR_OUTCOME[outcome.kind],
            gateway_reference=outcome.reference,
            settled_at=now,
        )
        db.add(payment)
        await db.flush()

        self._audit_payment(db, subscription, payment, payment.status, actor)
        self.audit_service.record(
            db,
            AuditAction.SUBSCRIPTION_CREATED,
            actor,
            subscription_id=subscription.id,
            reason=f"purchase_{outcome.kind.value}",
            to_status=SubscriptionStatus.ACTIVE.value,
            details={
                "package_id": package.id,
                "payment_id": payment.id,
                "visits_remaining": subscription.visits_remaining,
                "end_date": subscription.end_date.isoformat(),
            },
        )
        queue_notice(db, SubscriptionNotice(
            type=NotificationType.SUBSCRIPTION_CREATED,
            customer_id=customer_id,
            subscription_id=subscription.id,
            context={"visits_remaining": subscription.visits_remaining},
        ))

        logger.info(
            f"Subscription {subscription.id} created for customer {customer_id} "
            f"(package {package.id}, payment {payment.id} {payment.status.value})"
        )
        return subscription

    async def record_charge(
        self,
        db: AsyncSession,
        subscription: Subscription,
        package: Package,
        outcome: PaymentOutcome,
        actor: str,
        now: datetime
    ) -> Payment:
        """Record a new renewal charge and apply its outcome"""
        if outcome.kind not in PAYMENT_STATUS_FOR_OUTCOME:
            raise ValidationError(
                f"A new charge cannot start as {outcome.kind.value}",
                details={"outcome": outcome.kind.value}
            )

        payment = Payment(
            subscription_id=subscription.id,
            kind=PaymentKind.RENEWAL,
            amount=package.price,
            currency=package.currency,
            status=PAYMENT_STATUS_FOR_OUTCOME[outcome.kind],
            gateway_reference=outcome.reference,
            failure_reason=outcome.failure_reason,
        )
        db.add(payment)
        await db.flush()

        await self._apply(db, subscription, payment, outcome, actor, now, fresh=True)
        return payment

    async def apply_outcome(
        self,
        db: AsyncSession,
        subscription_id: int,
        outcome: PaymentOutcome,
        actor: str,
        now: datetime
    ) -> Subscription:
        """
        Apply an outcome to an existing payment of the subscription.

        The payment is chosen by outcome.payment_id, then outcome.reference,
        then the subscription's most recent payment.
        """
        subscription = await db.get(Subscription, subscription_id, with_for_update=True)
        if subscription is None:
            raise ResourceNotFound("Subscription", subscription_id)

        payment = await self._target_payment(db, subscription, outcome)
        await self._apply(db, subscription, payment, outcome, actor, now)
        return subscription

    # ------------------------------------------------------------------
    # Outcome handling
    # ------------------------------------------------------------------

    async def _target_payment(
        self,
        db: AsyncSession,
        subscription: Subscription,
        outcome: PaymentOutcome
    ) -> Payment:
        query = select(Payment).where(Payment.subscription_id == subscription.id)

        if outcome.payment_id is not None:
            query = query.where(Payment.id == outcome.payment_id)
        elif outcome.reference:
            query = query.where(Payment.gateway_reference == outcome.reference)

        query = query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(1)
        payment = (await db.execute(query)).scalars().first()

        if payment is None:
            raise ResourceNotFound(
                "Payment",
                outcome.payment_id or outcome.reference or f"for subscription {subscription.id}"
            )
        return payment

    async def _apply(
        self,
        db: AsyncSession,
        subscription: Subscription,
        payment: Payment,
        outcome: PaymentOutcome,
        actor: str,
        now: datetime,
        fresh: bool = False
    ) -> None:
        """`fresh` marks a payment row created in this unit; its status is already set"""
        if outcome.kind == PaymentOutcomeKind.REFUNDED:
            await self._apply_refund(db, subscription, payment, outcome.amount, actor, now)
        elif outcome.kind in SUCCESSFUL_OUTCOMES:
            await self._apply_success(db, subscription, payment, outcome, actor, now, fresh)
        else:
            await self._apply_failure(db, subscription, payment, outcome, actor, now, fresh)
        await db.flush()

    async def _apply_success(self, db, subscription, payment, outcome, actor, now, fresh) -> None:
        if payment.status in (PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED):
            logger.warning(f"Ignoring {outcome.kind.value} for refunded payment {payment.id}")
            return

        previous = payment.status
        target = PAYMENT_STATUS_FOR_OUTCOME[outcome.kind]
        # A late AUTHORIZED never downgrades a capture
        if previous == PaymentStatus.CAPTURED:
            target = PaymentStatus.CAPTURED

        payment.status = target
        payment.gateway_reference = outcome.reference or payment.gateway_reference
        payment.failure_reason = None

        if fresh or target != previous:
            self._audit_payment(db, subscription, payment, previous, actor)
        else:
            logger.debug(f"Payment {payment.id} already {target.value}")

        if payment.kind == PaymentKind.RENEWAL and payment.settled_at is None:
            await self._settle_renewal(db, subscription, payment, actor, now)
        elif (
            payment.kind == PaymentKind.PURCHASE
            and previous == PaymentStatus.FAILED
            and subscription.status == SubscriptionStatus.SUSPENDED
        ):
            await self._recover_purchase(db, subscription, payment, actor, now)

    async def _apply_failure(self, db, subscription, payment, outcome, actor, now, fresh) -> None:
        if payment.status in (
            PaymentStatus.CAPTURED, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED
        ):
            logger.warning(
                f"Ignoring failure for payment {payment.id} already {payment.status.value}"
            )
            return

        previous = payment.status
        if previous == PaymentStatus.FAILED and not fresh:
            logger.debug(f"Payment {payment.id} already failed")
            return

        payment.status = PaymentStatus.FAILED
        payment.failure_reason = outcome.failure_reason or payment.failure_reason
        self._audit_payment(db, subscription, payment, previous, actor)

        if subscription.status == SubscriptionStatus.ACTIVE:
            reason = (
                TransitionReason.RENEWAL_PAYMENT_FAILED
                if payment.kind == PaymentKind.RENEWAL
                else TransitionReason.PAYMENT_CAPTURE_FAILED
            )
            await self.state_machine.transition(
                db, subscription, SubscriptionStatus.SUSPENDED, reason, actor, now
            )

    async def _apply_refund(self, db, subscription, payment, amount: Optional[Decimal], actor, now) -> None:
        if amount is None or amount <= 0:
            raise ValidationError("Refund amount must be positive", details={"payment_id": payment.id})

        if not payment.collected:
            raise PaymentNotRefundable(
                f"Payment {payment.id} is {payment.status.value} and cannot be refunded",
                details={"payment_id": payment.id, "status": payment.status.value}
            )

        refunded_total = (payment.refund_amount or Decimal("0")) + amount
        if refunded_total > payment.amount:
            raise ValidationError(
                f"Refund of {amount} exceeds the remaining amount on payment {payment.id}",
                details={
                    "payment_id": payment.id,
                    "amount": str(payment.amount),
                    "already_refunded": str(payment.refund_amount or 0),
                }
            )

        previous = payment.status
        payment.refund_amount = refunded_total
        payment.refund_date = now
        full_refund = refunded_total == payment.amount
        payment.status = PaymentStatus.REFUNDED if full_refund else PaymentStatus.PARTIALLY_REFUNDED

        self.audit_service.record(
            db,
            AuditAction.REFUND_RECORDED,
            actor,
            subscription_id=subscription.id,
            reason="full_refund" if full_refund else "partial_refund",
            details={
                "payment_id": payment.id,
                "refund": str(amount),
                "refund_total": str(refunded_total),
                "payment_status": f"{previous.value}->{payment.status.value}",
            },
        )

        if full_refund and subscription.status != SubscriptionStatus.CANCELLED:
            await self.state_machine.transition(
                db, subscription, SubscriptionStatus.CANCELLED,
                TransitionReason.FULL_REFUND, actor, now
            )
        elif full_refund:
            logger.info(
                f"Full refund on payment {payment.id}; subscription {subscription.id} "
                f"already {subscription.status.value}"
            )

    async def _settle_renewal(self, db, subscription, payment, actor, now) -> None:
        """Open the paid-for period once per renewal payment"""
        if subscription.status.is_terminal:
            logger.warning(
                f"Renewal payment {payment.id} settled on {subscription.status.value} "
                f"subscription {subscription.id}; manual refund required"
            )
            return

        if subscription.status == SubscriptionStatus.SUSPENDED and subscription.grace_elapsed(now):
            await self.state_machine.transition(
                db, subscription, SubscriptionStatus.CANCELLED,
                TransitionReason.GRACE_PERIOD_ELAPSED, actor, now
            )
            logger.warning(
                f"Late payment {payment.id} arrived after grace for subscription "
                f"{subscription.id}; manual refund required"
            )
            return

        package = await db.get(Package, subscription.package_id)
        snapshot = self.quota_ledger.reset(subscription, package)
        subscription.start_date = now
        subscription.end_date = now + timedelta(days=package.validity_days)
        subscription.expiry_warning_sent_at = None
        payment.settled_at = now

        if subscription.status == SubscriptionStatus.SUSPENDED:
            await self.state_machine.transition(
                db, subscription, SubscriptionStatus.ACTIVE,
                TransitionReason.LATE_PAYMENT_RECEIVED, actor, now
            )
        else:
            await db.flush()

        self.audit_service.record(
            db,
            AuditAction.PERIOD_RENEWED,
            actor,
            subscription_id=subscription.id,
            details={
                "payment_id": payment.id,
                "visits_remaining": snapshot.visits_remaining,
                "end_date": subscription.end_date.isoformat(),
            },
        )

    async def _recover_purchase(self, db, subscription, payment, actor, now) -> None:
        """The purchase charge went through after its capture failed; the period is kept"""
        if subscription.grace_elapsed(now):
            await self.state_machine.transition(
                db, subscription, SubscriptionStatus.CANCELLED,
                TransitionReason.GRACE_PERIOD_ELAPSED, actor, now
            )
            logger.warning(
                f"Purchase payment {payment.id} went through after grace for subscription "
                f"{subscription.id}; manual refund required"
            )
            return

        await self.state_machine.transition(
            db, subscription, SubscriptionStatus.ACTIVE,
            TransitionReason.LATE_PAYMENT_RECEIVED, actor, now
        )

    def _audit_payment(self, db, subscription, payment, previous: PaymentStatus, actor) -> None:
        self.audit_service.record(
            db,
            AuditAction.PAYMENT_RECORDED,
            actor,
            subscription_id=subscription.id,
            reason=payment.kind.value,
            details={
                "payment_id": payment.id,
                "payment_status": f"{previous.value}->{payment.status.value}",
                "reference": payment.gateway_reference,
            },
        )
