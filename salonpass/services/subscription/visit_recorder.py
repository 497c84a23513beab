"""
Visit Recorder

Turns a presented redemption token into an immutable Visit. Everything happens
inside the caller's transaction, so the quota decrement, the visit row and any
resulting expiry commit together or not at all.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from salonpass.core.config import settings
from salonpass.core.exceptions import (
    InvalidToken, QuotaExhausted, ResourceNotFound, SalonMismatch, SubscriptionNotActive
)
from salonpass.models.package import Package
from salonpass.models.subscription import Subscription, SubscriptionStatus
from salonpass.models.visit import Visit
from salonpass.services.audit_service import AuditAction, AuditService, get_audit_service
from salonpass.services.notification_service import NotificationType, SubscriptionNotice, queue_notice
from salonpass.services.subscription.quota_ledger import QuotaLedger
from salonpass.services.subscription.state_machine import SubscriptionStateMachine, TransitionReason
from salonpass.services.subscription.token_manager import RedemptionTokenManager


class VisitRecorder:

    def __init__(
        self,
        token_manager: RedemptionTokenManager,
        quota_ledger: QuotaLedger,
        state_machine: SubscriptionStateMachine,
        audit_service: Optional[AuditService] = None,
        low_quota_threshold: int = settings.LOW_QUOTA_THRESHOLD
    ):
        self.token_manager = token_manager
        self.quota_ledger = quota_ledger
        self.state_machine = state_machine
        self.audit_service = audit_service or get_audit_service()
        self.low_quota_threshold = low_quota_threshold

    async def redeem(
        self,
        db: AsyncSession,
        token: str,
        salon_id: int,
        timestamp: datetime,
        actor: str = "system",
        service_name: Optional[str] = None
    ) -> Visit:
        """
        Redeem one visit.

        Steps: resolve the token, lock the subscription, check it is usable at
        this salon, decrement the quota, write the visit, expire the
        subscription when the quota reaches zero.

        Raises:
            InvalidToken, SubscriptionNotActive, SalonMismatch, QuotaExhausted
        """
        subscription_id = await self.token_manager.resolve(db, token)

        subscription = await db.get(Subscription, subscription_id, with_for_update=True)
        if subscription is None:
            raise InvalidToken()

        if subscription.status != SubscriptionStatus.ACTIVE:
            # A subscription that ended by using up its visits reports the quota
            if subscription.visits_remaining <= 0:
                raise QuotaExhausted(subscription.id)
            raise SubscriptionNotActive(subscription.id, subscription.status.value)

        if timestamp >= subscription.end_date:
            raise SubscriptionNotActive(subscription.id, SubscriptionStatus.EXPIRED.value)

        package = await db.get(Package, subscription.package_id)
        if package is None:
            raise ResourceNotFound("Package", subscription.package_id)

        if package.salon_id != salon_id:
            raise SalonMismatch(subscription.id, package.salon_id, salon_id)

        snapshot = await self.quota_ledger.decrement(db, subscription.id)
        await db.refresh(subscription)

        visit = Visit(
            subscription_id=subscription.id,
            customer_id=subscription.customer_id,
            salon_id=salon_id,
            service_name=service_name,
            redeemed_at=timestamp,
        )
        db.add(visit)
        await db.flush()

        self.audit_service.record(
            db,
            AuditAction.VISIT_REDEEMED,
            actor,
            subscription_id=subscription.id,
            details={
                "visit_id": visit.id,
                "salon_id": salon_id,
                "visits_used": snapshot.visits_used,
                "visits_remaining": snapshot.visits_remaining,
            },
        )

        if snapshot.exhausted:
            await self.state_machine.transition(
                db, subscription, SubscriptionStatus.EXPIRED,
                TransitionReason.QUOTA_EXHAUSTED, actor, timestamp
            )
        elif snapshot.visits_remaining <= self.low_quota_threshold:
            queue_notice(db, SubscriptionNotice(
                type=NotificationType.LOW_QUOTA,
                customer_id=subscription.customer_id,
                subscription_id=subscription.id,
                context={"visits_remaining": snapshot.visits_remaining},
            ))

        logger.info(
            f"Visit {visit.id} redeemed on subscription {subscription.id} at salon {salon_id} "
            f"({snapshot.visits_remaining} left)"
        )
        return visit
