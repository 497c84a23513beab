"""
Unit tests for subscription status transitions and expiry evaluation.
"""

import pytest
from datetime import timedelta

from salonpass.core.exceptions import InvalidTransition
from salonpass.models.subscription import SubscriptionStatus
from salonpass.services.notification_service import NotificationType, take_pending_notices
from salonpass.services.subscription.state_machine import SubscriptionStateMachine, TransitionReason
from tests.conftest import NOW


ACTIVE = SubscriptionStatus.ACTIVE
SUSPENDED = SubscriptionStatus.SUSPENDED
EXPIRED = SubscriptionStatus.EXPIRED
CANCELLED = SubscriptionStatus.CANCELLED


@pytest.mark.parametrize("current,target,allowed", [
    (ACTIVE, EXPIRED, True),
    (ACTIVE, CANCELLED, True),
    (ACTIVE, SUSPENDED, True),
    (SUSPENDED, ACTIVE, True),
    (SUSPENDED, CANCELLED, True),
    (SUSPENDED, EXPIRED, False),
    (EXPIRED, ACTIVE, False),
    (EXPIRED, CANCELLED, False),
    (CANCELLED, ACTIVE, False),
    (CANCELLED, SUSPENDED, False),
])
def test_transition_table(current, target, allowed):
    assert SubscriptionStateMachine.can_transition(current, target) is allowed


@pytest.mark.parametrize("current,target,allowed", [
    (EXPIRED, CANCELLED, True),
    (EXPIRED, ACTIVE, False),
    (CANCELLED, ACTIVE, False),
])
def test_full_refund_may_cancel_an_expired_subscription(current, target, allowed):
    assert SubscriptionStateMachine.can_transition(current, target, TransitionReason.FULL_REFUND) is allowed


async def test_only_a_refund_cancels_an_expired_subscription(state_machine, db_session, make_subscription):
    subscription = await make_subscription(status=EXPIRED)

    with pytest.raises(InvalidTransition):
        await state_machine.transition(
            db_session, subscription, CANCELLED, TransitionReason.CANCELLED_BY_ADMIN, "admin:1", NOW
        )

    await state_machine.transition(
        db_session, subscription, CANCELLED, TransitionReason.FULL_REFUND, "admin:1", NOW
    )
    assert subscription.status == CANCELLED


async def test_suspension_sets_grace_deadline(state_machine, db_session, make_subscription):
    subscription = await make_subscription()

    await state_machine.transition(
        db_session, subscription, SUSPENDED, TransitionReason.RENEWAL_PAYMENT_FAILED, "system", NOW
    )

    assert subscription.status == SUSPENDED
    assert subscription.suspended_at == NOW
    assert subscription.grace_until == NOW + timedelta(days=7)


async def test_reactivation_clears_suspension(state_machine, db_session, make_subscription):
    subscription = await make_subscription()
    await state_machine.transition(
        db_session, subscription, SUSPENDED, TransitionReason.RENEWAL_PAYMENT_FAILED, "system", NOW
    )

    await state_machine.transition(
        db_session, subscription, ACTIVE, TransitionReason.LATE_PAYMENT_RECEIVED, "system", NOW + timedelta(days=2)
    )

    assert subscription.status == ACTIVE
    assert subscription.suspended_at is None
    assert subscription.grace_until is None


async def test_transition_writes_audit_entry_and_queues_notice(
    state_machine, audit_service, db_session, make_subscription
):
    subscription = await make_subscription()

    await state_machine.transition(
        db_session, subscription, CANCELLED, TransitionReason.CANCELLED_BY_CUSTOMER, "customer:1", NOW
    )
    await db_session.flush()

    assert subscription.cancelled_at == NOW
    assert await audit_service.count_for_subscription(db_session, subscription.id) == 1
    notices = take_pending_notices(db_session)
    assert [n.type for n in notices] == [NotificationType.SUBSCRIPTION_CANCELLED]
    assert notices[0].context["reason"] == "cancelled_by_customer"


async def test_terminal_status_cannot_move(state_machine, db_session, make_subscription):
    subscription = await make_subscription(status=EXPIRED)

    with pytest.raises(InvalidTransition) as exc_info:
        await state_machine.transition(
            db_session, subscription, ACTIVE, TransitionReason.LATE_PAYMENT_RECEIVED, "system", NOW
        )

    assert exc_info.value.from_status == "expired"
    assert subscription.status == EXPIRED


async def test_evaluate_expiry_on_elapsed_validity(state_machine, db_session, make_subscription):
    subscription = await make_subscription(start_date=NOW, end_date=NOW + timedelta(days=30))

    assert await state_machine.evaluate_expiry(db_session, subscription, NOW + timedelta(days=29)) is None
    assert await state_machine.evaluate_expiry(db_session, subscription, NOW + timedelta(days=30)) == EXPIRED
    assert subscription.status == EXPIRED


async def test_evaluate_expiry_on_exhausted_quota(state_machine, db_session, make_subscription):
    subscription = await make_subscription(visits_used=5, visits_remaining=0)

    assert await state_machine.evaluate_expiry(db_session, subscription, NOW) == EXPIRED


async def test_evaluate_expiry_is_idempotent(state_machine, audit_service, db_session, make_subscription):
    subscription = await make_subscription(visits_used=5, visits_remaining=0)
    await state_machine.evaluate_expiry(db_session, subscription, NOW)
    await db_session.flush()
    entries = await audit_service.count_for_subscription(db_session, subscription.id)

    assert await state_machine.evaluate_expiry(db_session, subscription, NOW) is None
    assert await state_machine.evaluate_expiry(db_session, subscription, NOW + timedelta(days=90)) is None
    await db_session.flush()

    assert await audit_service.count_for_subscription(db_session, subscription.id) == entries


async def test_suspension_cancelled_only_after_grace(state_machine, db_session, make_subscription):
    subscription = await make_subscription()
    await state_machine.transition(
        db_session, subscription, SUSPENDED, TransitionReason.RENEWAL_PAYMENT_FAILED, "system", NOW
    )

    on_deadline = subscription.grace_until
    assert await state_machine.evaluate_expiry(db_session, subscription, on_deadline) is None
    assert subscription.status == SUSPENDED

    assert await state_machine.evaluate_expiry(
        db_session, subscription, on_deadline + timedelta(seconds=1)
    ) == CANCELLED
    assert subscription.status == CANCELLED
