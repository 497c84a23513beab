"""
Subscription State Machine

Owns every status change:

    ACTIVE    -> EXPIRED | CANCELLED | SUSPENDED
    SUSPENDED -> ACTIVE | CANCELLED
    EXPIRED, CANCELLED are terminal

A full refund is the one exception: it also moves EXPIRED -> CANCELLED, so a
refunded package always ends up cancelled.

Each applied transition writes an audit entry (reason, actor, before/after
status) and queues a customer notice that is sent after the unit commits.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from salonpass.core.config import settings
from salonpass.core.exceptions import InvalidTransition
from salonpass.models.subscription import Subscription, SubscriptionStatus
from salonpass.services.audit_service import AuditAction, AuditService, get_audit_service
from salonpass.services.notification_service import NotificationType, SubscriptionNotice, queue_notice


class TransitionReason(str, Enum):
    """Reason codes recorded with every transition"""
    QUOTA_EXHAUSTED = "quota_exhausted"
    VALIDITY_ELAPSED = "validity_elapsed"
    RENEWAL_PAYMENT_FAILED = "renewal_payment_failed"
    PAYMENT_CAPTURE_FAILED = "payment_capture_failed"
    LATE_PAYMENT_RECEIVED = "late_payment_received"
    GRACE_PERIOD_ELAPSED = "grace_period_elapsed"
    CANCELLED_BY_CUSTOMER = "cancelled_by_customer"
    CANCELLED_BY_ADMIN = "cancelled_by_admin"
    FULL_REFUND = "full_refund"


ALLOWED_TRANSITIONS = {
    SubscriptionStatus.ACTIVE: frozenset({
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.SUSPENDED,
    }),
    SubscriptionStatus.SUSPENDED: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED,
    }),
    SubscriptionStatus.EXPIRED: frozenset(),
    SubscriptionStatus.CANCELLED: frozenset(),
}

REFUND_TRANSITIONS = {
    SubscriptionStatus.EXPIRED: frozenset({SubscriptionStatus.CANCELLED}),
}

NOTICES = {
    SubscriptionStatus.SUSPENDED: NotificationType.SUBSCRIPTION_SUSPENDED,
    SubscriptionStatus.EXPIRED: NotificationType.SUBSCRIPTION_EXPIRED,
    SubscriptionStatus.CANCELLED: NotificationType.SUBSCRIPTION_CANCELLED,
    SubscriptionStatus.ACTIVE: NotificationType.SUBSCRIPTION_REACTIVATED,
}


class SubscriptionStateMachine:
    """Validates and applies status transitions inside the caller's unit of work"""

    def __init__(
        self,
        audit_service: Optional[AuditService] = None,
        grace_days: int = settings.RENEWAL_GRACE_DAYS
    ):
        self.audit_service = audit_service or get_audit_service()
        self.grace_period = timedelta(days=grace_days)

    @staticmethod
    def can_transition(
        current: SubscriptionStatus,
        target: SubscriptionStatus,
        reason: Optional[TransitionReason] = None
    ) -> bool:
        if target in ALLOWED_TRANSITIONS[current]:
            return True
        return reason == TransitionReason.FULL_REFUND and target in REFUND_TRANSITIONS.get(current, ())

    async def transition(
        self,
        db: AsyncSession,
        subscription: Subscription,
        target: SubscriptionStatus,
        reason: TransitionReason,
        actor: str,
        now: datetime
    ) -> Subscription:
        """
        Move a subscription to `target`.

        Raises:
            InvalidTransition: if the move is not allowed from the current status
            StaleDataError: (from the flush) if a concurrent writer got there first
        """
        current = subscription.status
        if not self.can_transition(current, target, reason):
            raise InvalidTransition(subscription.id, current.value, target.value)

        if target == SubscriptionStatus.SUSPENDED:
            subscription.suspended_at = now
            subscription.grace_until = now + self.grace_period
        elif target == SubscriptionStatus.ACTIVE:
            subscription.suspended_at = None
            subscription.grace_until = None
        elif target == SubscriptionStatus.CANCELLED:
            subscription.cancelled_at = now

        subscription.status = target
        await db.flush()

        self.audit_service.record(
            db,
            AuditAction.STATUS_CHANGED,
            actor,
            subscription_id=subscription.id,
            reason=reason.value,
            from_status=current.value,
            to_status=target.value,
            details={"visits_remaining": subscription.visits_remaining},
        )

        queue_notice(db, SubscriptionNotice(
            type=NOTICES[target],
            customer_id=subscription.customer_id,
            subscription_id=subscription.id,
            context={
                "reason": reason.value,
                "grace_until": subscription.grace_until.isoformat() if subscription.grace_until else "",
            },
        ))

        logger.info(
            f"Subscription {subscription.id}: {current.value} -> {target.value} "
            f"({reason.value}, by {actor})"
        )
        return subscription

    async def evaluate_expiry(
        self,
        db: AsyncSession,
        subscription: Subscription,
        now: datetime,
        actor: str = "system"
    ) -> Optional[SubscriptionStatus]:
        """
        Apply the time/quota driven transitions that are due.

        ACTIVE with quota gone or validity over becomes EXPIRED; SUSPENDED past
        its grace deadline becomes CANCELLED. Anything else, including an
        already EXPIRED subscription, is left untouched and nothing is audited.

        Returns the new status, or None when nothing changed.
        """
        if subscription.status == SubscriptionStatus.ACTIVE and subscription.has_lapsed(now):
            reason = (
                TransitionReason.QUOTA_EXHAUSTED
                if subscription.visits_remaining <= 0
                else TransitionReason.VALIDITY_ELAPSED
            )
            await self.transition(db, subscription, SubscriptionStatus.EXPIRED, reason, actor, now)
            return SubscriptionStatus.EXPIRED

        if subscription.status == SubscriptionStatus.SUSPENDED and subscription.grace_elapsed(now):
            await self.transition(
                db, subscription, SubscriptionStatus.CANCELLED,
                TransitionReason.GRACE_PERIOD_ELAPSED, actor, now
            )
            return SubscriptionStatus.CANCELLED

        return None
