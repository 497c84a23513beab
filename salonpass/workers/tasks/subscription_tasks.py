"""
Subscription Tasks

Celery tasks for the expiry sweep, expiring-soon warnings and notification delivery.
"""

from celery import shared_task
from loguru import logger


@shared_task(name="subscriptions.run_expiry_sweep")
def run_expiry_sweep_task():
    """
    Expire lapsed subscriptions (scheduled every few minutes).
    """
    import asyncio
    from salonpass.services.subscription import get_orchestrator

    async def _run():
        return await get_orchestrator().sweep_expired()

    try:
        result = asyncio.run(_run())
        logger.info(
            f"Expiry sweep examined {result.examined}, expired {len(result.expired)}, "
            f"cancelled {len(result.cancelled)}"
        )
        return result.model_dump()
    except Exception as e:
        logger.error(f"Expiry sweep error: {e}", exc_info=True)
        raise


@shared_task(name="subscriptions.notify_expiring")
def notify_expiring_subscriptions_task():
    """
    Send expiring-soon warnings (scheduled daily at 09:00 UTC).
    """
    import asyncio
    from salonpass.services.subscription import get_orchestrator

    async def _run():
        return await get_orchestrator().notify_expiring_soon()

    try:
        warned = asyncio.run(_run())
        logger.info(f"Expiring-soon warnings sent: {warned}")
        return {"warned": warned}
    except Exception as e:
        logger.error(f"Expiring-soon warning error: {e}", exc_info=True)
        raise


@shared_task(name="subscriptions.send_notification", bind=True, max_retries=3, default_retry_delay=30)
def send_subscription_notification_task(self, payload: dict):
    """
    Persist a customer notification for a committed lifecycle event.
    """
    import asyncio
    from salonpass.db.session import get_db_context
    from salonpass.services.notification_service import SubscriptionNotice, store_notification

    notice = SubscriptionNotice.from_payload(payload)

    async def _run():
        async with get_db_context() as db:
            notification = await store_notification(db, notice)
            return notification.id

    try:
        notification_id = asyncio.run(_run())
        return {"notification_id": notification_id}
    except Exception as e:
        logger.error(f"Notification delivery error for subscription {notice.subscription_id}: {e}")
        raise self.retry(exc=e)
