"""
Notification Service


Fire-and-forget customer notifications for lifecycle events. Notices are queued on
the session during a unit of work and dispatched only after it commits, so a
rolled-back operation never notifies anybody.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from salonpass.core.clock import utcnow
from salonpass.models.notification import Notification


PENDING_NOTICES_KEY = "pending_notices"


class NotificationType(str, Enum):
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_SUSPENDED = "subscription_suspended"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_REACTIVATED = "subscription_reactivated"
    LOW_QUOTA = "low_quota"
    EXPIRING_SOON = "expiring_soon"


TEMPLATES = {
    NotificationType.SUBSCRIPTION_CREATED: (
        "Subscription activated",
        "Your package subscription #{subscription_id} is active with {visits_remaining} visits.",
    ),
    NotificationType.SUBSCRIPTION_SUSPENDED: (
        "Renewal payment failed",
        "We could not charge your renewal for subscription #{subscription_id}. "
        "Pay before {grace_until} to keep it.",
    ),
    NotificationType.SUBSCRIPTION_EXPIRED: (
        "Subscription ended",
        "Subscription #{subscription_id} has ended ({reason}).",
    ),
    NotificationType.SUBSCRIPTION_CANCELLED: (
        "Subscription cancelled",
        "Subscription #{subscription_id} was cancelled ({reason}).",
    ),
    NotificationType.SUBSCRIPTION_REACTIVATED: (
        "Subscription reactivated",
        "Payment received, subscription #{subscription_id} is active again.",
    ),
    NotificationType.LOW_QUOTA: (
        "Almost out of visits",
        "Only {visits_remaining} visit(s) left on subscription #{subscription_id}.",
    ),
    NotificationType.EXPIRING_SOON: (
        "Subscription expiring soon",
        "Subscription #{subscription_id} expires on {end_date}. {renewal_hint}",
    ),
}


@dataclass
class SubscriptionNotice:
    """One notification addressed to a subscription's owner"""
    type: NotificationType
    customer_id: int
    subscription_id: int
    context: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["type"] = self.type.value
        payload["context"] = {k: str(v) for k, v in self.context.items()}
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SubscriptionNotice":
        return cls(
            type=NotificationType(payload["type"]),
            customer_id=int(payload["customer_id"]),
            subscription_id=int(payload["subscription_id"]),
            context=dict(payload.get("context") or {}),
        )

    def render(self) -> tuple[str, str]:
        title, template = TEMPLATES[self.type]
        values = {"subscription_id": self.subscription_id, **self.context}
        try:
            return title, template.format(**values)
        except KeyError:
            return title, f"{title} (subscription #{self.subscription_id})"


def queue_notice(db: AsyncSession, notice: SubscriptionNotice) -> None:
    """Hold a notice until the session's unit of work commits"""
    db.info.setdefault(PENDING_NOTICES_KEY, []).append(notice)


def take_pending_notices(db: AsyncSession) -> List[SubscriptionNotice]:
    return db.info.pop(PENDING_NOTICES_KEY, [])


class NotificationService:
    """Delivery interface; implementations must never raise into the caller"""

    async def send(self, notice: SubscriptionNotice) -> None:
        raise NotImplementedError

    async def send_all(self, notices: List[SubscriptionNotice]) -> None:
        for notice in notices:
            await self.send(notice)


class CeleryNotificationService(NotificationService):
    """Hands notices to the notifications worker queue"""

    async def send(self, notice: SubscriptionNotice) -> None:
        from salonpass.workers.tasks.subscription_tasks import send_subscription_notification_task

        try:
            send_subscription_notification_task.delay(notice.to_payload())
            logger.debug(f"Queued {notice.type.value} notice for subscription {notice.subscription_id}")
        except Exception as e:
            # Delivery is best effort; the lifecycle change has already committed
            logger.warning(
                f"Could not queue {notice.type.value} notice for subscription "
                f"{notice.subscription_id}: {e}"
            )


async def store_notification(db: AsyncSession, notice: SubscriptionNotice) -> Notification:
    """Persist a notice as a Notification row (runs in the worker)"""
    title, message = notice.render()
    notification = Notification(
        customer_id=notice.customer_id,
        subscription_id=notice.subscription_id,
        type=notice.type.value,
        title=title,
        message=message,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.commit()
    logger.info(f"Stored {notice.type.value} notification for customer {notice.customer_id}")
    return notification


# Singleton instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get singleton instance"""
    global _notification_service
    if _notification_service is None:
        _notification_service = CeleryNotificationService()
    return _notification_service
