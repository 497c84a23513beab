"""
Quota Ledger

Visit counters for a subscription. The decrement is a single conditional UPDATE
so concurrent redemptions can never drive visits_remaining below zero.
"""

from dataclasses import dataclass
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from salonpass.core.clock import utcnow
from salonpass.core.exceptions import QuotaExhausted, ResourceNotFound
from salonpass.models.package import Package
from salonpass.models.subscription import Subscription


@dataclass(frozen=True)
class QuotaSnapshot:
    """Counters as committed by the last ledger operation"""
    visits_used: int
    visits_remaining: int

    @property
    def exhausted(self) -> bool:
        return self.visits_remaining == 0


class QuotaLedger:
    """Tracks visits used / remaining; visits_used + visits_remaining == package.visit_count"""

    async def decrement(self, db: AsyncSession, subscription_id: int) -> QuotaSnapshot:
        """
        Consume one visit.

        Raises:
            QuotaExhausted: if visits_remaining is already 0
            ResourceNotFound: if the subscription does not exist

        The in-session Subscription instance is stale afterwards; callers that
        keep using it must refresh it.
        """
        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.visits_remaining > 0,
            )
            .values(
                visits_used=Subscription.visits_used + 1,
                visits_remaining=Subscription.visits_remaining - 1,
                version=Subscription.version + 1,
                updated_at=utcnow(),
            )
            .returning(Subscription.visits_used, Subscription.visits_remaining)
            .execution_options(synchronize_session=False)
        )
        row = (await db.execute(stmt)).first()

        if row is None:
            exists = await db.scalar(select(Subscription.id).where(Subscription.id == subscription_id))
            if exists is None:
                raise ResourceNotFound("Subscription", subscription_id)
            logger.info(f"Quota exhausted for subscription {subscription_id}")
            raise QuotaExhausted(subscription_id)

        snapshot = QuotaSnapshot(visits_used=row[0], visits_remaining=row[1])
        logger.debug(
            f"Subscription {subscription_id} quota: used={snapshot.visits_used} "
            f"remaining={snapshot.visits_remaining}"
        )
        return snapshot

    async def snapshot(self, db: AsyncSession, subscription_id: int) -> QuotaSnapshot:
        row = (await db.execute(
            select(Subscription.visits_used, Subscription.visits_remaining)
            .where(Subscription.id == subscription_id)
        )).first()
        if row is None:
            raise ResourceNotFound("Subscription", subscription_id)
        return QuotaSnapshot(visits_used=row[0], visits_remaining=row[1])

    def reset(self, subscription: Subscription, package: Package) -> QuotaSnapshot:
        """Give a new period the package's full quota"""
        subscription.visits_used = 0
        subscription.visits_remaining = package.visit_count
        return QuotaSnapshot(visits_used=0, visits_remaining=package.visit_count)
