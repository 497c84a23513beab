"""
Subscription Orchestrator

Public facade of the subscription engine. Every call is one unit of work:

- one session and one transaction per unit, rolled back on any error
- units touching the same subscription are serialized in-process by a keyed lock
- optimistic-concurrency conflicts are retried a few times, then surfaced
- notices queued during the unit are dispatched only after it commits
- rejected attempts are written to the audit log in a separate transaction

Gateway calls (purchase, renew) happen outside the database transaction.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Hashable, List, Optional, TypeVar
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from loguru import logger

from salonpass.core.clock import utcnow
from salonpass.core.config import settings
from salonpass.core.exceptions import (
    ConflictError,
    DomainError,
    NotSubscriptionOwner,
    PackageUnavailable,
    PaymentDeclined,
    PersistenceUnavailable,
    ResourceNotFound,
    SubscriptionEngineError,
    SubscriptionNotActive,
    ValidationError,
)
from salonpass.core.locks import KeyedLock
from salonpass.db.session import async_session
from salonpass.models.customer import Customer
from salonpass.models.package import Package
from salonpass.models.payment import Payment
from salonpass.models.subscription import Subscription, SubscriptionStatus
from salonpass.models.visit import Visit
from salonpass.schemas.subscription import (
    Actor,
    ActorKind,
    PaymentOutcome,
    PaymentOutcomeKind,
    PaymentOutcomeRequest,
    PurchaseRequest,
    RedeemRequest,
    RedemptionRead,
    RenewRequest,
    SubscriptionRead,
    SweepResult,
    VisitRead,
)
from salonpass.services.audit_service import AuditAction, AuditService, get_audit_service
from salonpass.services.notification_service import (
    NotificationService,
    NotificationType,
    SubscriptionNotice,
    get_notification_service,
    queue_notice,
    take_pending_notices,
)
from salonpass.services.payment_gateway import PaymentGateway, get_payment_gateway
from salonpass.services.subscription.payment_reconciler import PaymentReconciler
from salonpass.services.subscription.quota_ledger import QuotaLedger
from salonpass.services.subscription.state_machine import SubscriptionStateMachine, TransitionReason
from salonpass.services.subscription.token_manager import RedemptionTokenManager
from salonpass.services.subscription.visit_recorder import VisitRecorder


T = TypeVar("T")

CONFLICT_BACKOFF_SECONDS = 0.05

PERSISTENCE_ERRORS = (OperationalError, InterfaceError, OSError)

RENEWAL_HINTS = {
    True: "It renews automatically with your saved payment method.",
    False: "Renew it to keep your remaining visits.",
}


class SubscriptionOrchestrator:
    """Coordinates the lifecycle components behind one transactional boundary per call"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        notification_service: Optional[NotificationService] = None,
        audit_service: Optional[AuditService] = None,
        token_manager: Optional[RedemptionTokenManager] = None,
        clock: Callable[[], datetime] = utcnow,
        max_conflict_retries: int = settings.CONFLICT_MAX_RETRIES,
        grace_days: int = settings.RENEWAL_GRACE_DAYS,
        low_quota_threshold: int = settings.LOW_QUOTA_THRESHOLD,
        expiry_warning_days: int = settings.EXPIRY_WARNING_DAYS
    ):
        self.session_factory = session_factory or async_session
        self.payment_gateway = payment_gateway or get_payment_gateway()
        self.notification_service = notification_service or get_notification_service()
        self.audit_service = audit_service or get_audit_service()
        self.clock = clock
        self.max_conflict_retries = max_conflict_retries
        self.expiry_warning = timedelta(days=expiry_warning_days)

        self.token_manager = token_manager or RedemptionTokenManager()
        self.quota_ledger = QuotaLedger()
        self.state_machine = SubscriptionStateMachine(self.audit_service, grace_days=grace_days)
        self.visit_recorder = VisitRecorder(
            self.token_manager,
            self.quota_ledger,
            self.state_machine,
            self.audit_service,
            low_quota_threshold=low_quota_threshold,
        )
        self.reconciler = PaymentReconciler(
            self.token_manager,
            self.quota_ledger,
            self.state_machine,
            self.audit_service,
        )

        self.locks = KeyedLock()

    # ------------------------------------------------------------------
    # Unit-of-work plumbing
    # ------------------------------------------------------------------

    async def _run_unit(
        self,
        key: Optional[Hashable],
        work: Callable[[AsyncSession], Awaitable[T]],
        operation: str
    ) -> T:
        """Run `work` in its own transaction, retrying optimistic-concurrency conflicts"""
        attempt = 0
        while True:
            attempt += 1
            try:
                if key is None:
                    return await self._execute(work)
                async with self.locks.hold(key):
                    return await self._execute(work)
            except SubscriptionEngineError as e:
                if not e.is_retryable():
                    raise
                if attempt > self.max_conflict_retries:
                    logger.warning(f"{operation} gave up after {attempt} conflicting attempts (key={key})")
                    raise
                logger.info(f"{operation} conflicted (key={key}), retry {attempt}/{self.max_conflict_retries}")
                await asyncio.sleep(CONFLICT_BACKOFF_SECONDS * attempt)

    async def _execute(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as db:
            try:
                async with db.begin():
                    result = await work(db)
            except StaleDataError as e:
                raise ConflictError(f"Concurrent modification: {e}") from e
            except IntegrityError as e:
                raise ConflictError(f"Write rejected by a constraint: {e.orig}") from e
            except PERSISTENCE_ERRORS as e:
                logger.error(f"Database unavailable: {e}")
                raise PersistenceUnavailable(str(e)) from e
            finally:
                # Taken on every path; only a committed unit reaches the dispatch below
                notices = take_pending_notices(db)

        if notices:
            await self.notification_service.send_all(notices)
        return result

    async def _read(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with self.session_factory() as db:
                return await work(db)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Database unavailable: {e}")
            raise PersistenceUnavailable(str(e)) from e

    @staticmethod
    def _validate(model: type[BaseModel], **data: Any) -> BaseModel:
        try:
            return model(**data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {model.__name__}",
                details={"errors": e.errors(include_url=False, include_context=False, include_input=False)}
            ) from e

    async def _audit_rejection(
        self,
        operation: str,
        actor: str,
        subscription_id: Optional[int],
        error: SubscriptionEngineError
    ) -> None:
        """Record a rejected attempt after its own unit rolled back"""
        subscription_id = error.details.get("subscription_id", subscription_id)
        logger.warning(f"{operation} rejected for subscription {subscription_id}: {error}")

        if isinstance(error, PersistenceUnavailable):
            return

        async def work(db: AsyncSession):
            self.audit_service.record(
                db,
                AuditAction.ATTEMPT_REJECTED,
                actor,
                subscription_id=subscription_id,
                reason=error.code,
                outcome="rejected",
                details={"operation": operation, "message": error.message},
            )

        try:
            await self._execute(work)
        except SubscriptionEngineError as e:
            # The original rejection is what the caller needs to see
            logger.error(f"Could not audit rejected {operation}: {e}")

    async def _guarded(
        self,
        operation: str,
        actor: str,
        subscription_id: Optional[int],
        call: Awaitable[T]
    ) -> T:
        try:
            return await call
        except SubscriptionEngineError as e:
            await self._audit_rejection(operation, actor, subscription_id, e)
            raise

    async def _settle_lapse(self, subscription_id: int, now: datetime) -> None:
        """Apply an expiry a rejected redemption observed but could not commit"""

        async def work(db: AsyncSession):
            subscription = await db.get(Subscription, subscription_id, with_for_update=True)
            if subscription is not None:
                await self.state_machine.evaluate_expiry(db, subscription, now)

        await self._run_unit(subscription_id, work, "settle_lapse")

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    async def purchase(
        self,
        customer_id: int,
        package_id: int,
        payment_auth: str,
        actor: Optional[Actor] = None,
        auto_renewal: bool = False
    ) -> SubscriptionRead:
        """
        Buy a package: charge the gateway, then create and activate the subscription.

        Raises:
            ValidationError, ResourceNotFound, PackageUnavailable, PaymentDeclined,
            PaymentGatewayUnavailable
        """
        label = (actor or Actor(kind=ActorKind.CUSTOMER, id=customer_id)).label()
        return await self._guarded(
            "purchase", label, None,
            self._purchase(customer_id, package_id, payment_auth, auto_renewal, label)
        )

    async def _purchase(self, customer_id, package_id, payment_auth, auto_renewal, label) -> SubscriptionRead:
        request = self._validate(
            PurchaseRequest,
            customer_id=customer_id,
            package_id=package_id,
            payment_auth=payment_auth,
            auto_renewal=auto_renewal,
        )
        package = await self._read(lambda db: self._load_purchasable(db, request.customer_id, request.package_id))

        outcome = await self.payment_gateway.charge(
            package.price,
            package.currency,
            request.payment_auth,
            metadata={"customer_id": str(request.customer_id), "package_id": str(package.id)},
        )
        if outcome.kind == PaymentOutcomeKind.FAILED:
            raise PaymentDeclined(
                f"Payment declined: {outcome.failure_reason or 'unknown reason'}",
                details={"package_id": package.id, "reference": outcome.reference},
            )

        now = self.clock()

        async def work(db: AsyncSession) -> SubscriptionRead:
            locked_package = await self._load_purchasable(db, request.customer_id, request.package_id)
            subscription = await self.reconciler.activate_purchase(
                db, request.customer_id, locked_package, outcome, label, now,
                auto_renewal=request.auto_renewal,
            )
            return SubscriptionRead.model_validate(subscription)

        try:
            return await self._run_unit(("customer", request.customer_id), work, "purchase")
        except SubscriptionEngineError:
            logger.error(
                f"Charge {outcome.reference} succeeded but the subscription for customer "
                f"{request.customer_id} was not created; manual refund required"
            )
            raise

    @staticmethod
    async def _load_purchasable(db: AsyncSession, customer_id: int, package_id: int) -> Package:
        customer = await db.get(Customer, customer_id)
        if customer is None:
            raise ResourceNotFound("Customer", customer_id)

        package = await db.get(Package, package_id)
        if package is None:
            raise ResourceNotFound("Package", package_id)
        if not package.is_active:
            raise PackageUnavailable(
                f"Package {package_id} is not available for purchase",
                details={"package_id": package_id}
            )
        return package

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    async def redeem(
        self,
        token: str,
        salon_id: int,
        service_name: Optional[str] = None,
        actor: Optional[Actor] = None
    ) -> RedemptionRead:
        """
        Redeem one visit at a salon.

        Raises:
            ValidationError, InvalidToken, SubscriptionNotActive, SalonMismatch,
            QuotaExhausted
        """
        label = (actor or Actor(kind=ActorKind.SALON, id=salon_id)).label()
        return await self._guarded("redeem", label, None, self._redeem(token, salon_id, service_name, label))

    async def _redeem(self, token, salon_id, service_name, label) -> RedemptionRead:
        request = self._validate(RedeemRequest, token=token, salon_id=salon_id, service_name=service_name)
        subscription_id = await self._read(lambda db: self.token_manager.resolve(db, request.token))
        now = self.clock()

        async def work(db: AsyncSession) -> RedemptionRead:
            visit = await self.visit_recorder.redeem(
                db, request.token, request.salon_id, now, label, request.service_name
            )
            subscription = await db.get(Subscription, visit.subscription_id)
            return RedemptionRead(
                **VisitRead.model_validate(visit).model_dump(),
                visits_used=subscription.visits_used,
                visits_remaining=subscription.visits_remaining,
                subscription_status=subscription.status,
            )

        try:
            return await self._run_unit(subscription_id, work, "redeem")
        except SubscriptionNotActive as e:
            if e.status == SubscriptionStatus.EXPIRED.value:
                try:
                    await self._settle_lapse(subscription_id, now)
                except SubscriptionEngineError as settle_error:
                    # The sweep applies it later; the caller still gets the rejection
                    logger.error(f"Could not expire subscription {subscription_id}: {settle_error}")
            raise

    # ------------------------------------------------------------------
    # Cancellation and renewal
    # ------------------------------------------------------------------

    async def cancel(self, subscription_id: int, actor: Actor) -> SubscriptionRead:
        """
        Cancel an ACTIVE or SUSPENDED subscription.

        Customers may only cancel their own subscriptions; salons cannot cancel.
        """
        label = actor.label()

        async def work(db: AsyncSession) -> SubscriptionRead:
            subscription = await self._locked_subscription(db, subscription_id)

            if actor.kind == ActorKind.CUSTOMER:
                self._check_owner(subscription, actor)
                reason = TransitionReason.CANCELLED_BY_CUSTOMER
            elif actor.kind in (ActorKind.ADMIN, ActorKind.SYSTEM):
                reason = TransitionReason.CANCELLED_BY_ADMIN
            else:
                raise NotSubscriptionOwner(
                    f"{label} cannot cancel subscription {subscription_id}",
                    details={"subscription_id": subscription_id}
                )

            await self.state_machine.transition(
                db, subscription, SubscriptionStatus.CANCELLED, reason, label, self.clock()
            )
            return SubscriptionRead.model_validate(subscription)

        return await self._guarded(
            "cancel", label, subscription_id,
            self._run_unit(subscription_id, work, "cancel")
        )

    async def renew(
        self,
        subscription_id: int,
        payment_auth: str,
        actor: Optional[Actor] = None
    ) -> SubscriptionRead:
        """
        Charge a renewal and apply its outcome.

        A captured or authorized charge opens a new period (and reactivates a
        subscription suspended inside its grace window); a failed charge
        suspends an ACTIVE subscription. Terminal subscriptions cannot renew.
        """
        label = (actor or Actor.system()).label()
        return await self._guarded(
            "renew", label, subscription_id,
            self._renew(subscription_id, payment_auth, actor, label)
        )

    async def _renew(self, subscription_id, payment_auth, actor, label) -> SubscriptionRead:
        request = self._validate(RenewRequest, payment_auth=payment_auth)

        async def load(db: AsyncSession):
            subscription = await db.get(Subscription, subscription_id)
            if subscription is None:
                raise ResourceNotFound("Subscription", subscription_id)
            if actor is not None and actor.kind == ActorKind.CUSTOMER:
                self._check_owner(subscription, actor)
            if subscription.status.is_terminal:
                raise SubscriptionNotActive(subscription.id, subscription.status.value)
            return await db.get(Package, subscription.package_id)

        package = await self._read(load)

        outcome = await self.payment_gateway.charge(
            package.price,
            package.currency,
            request.payment_auth,
            metadata={"subscription_id": str(subscription_id), "kind": "renewal"},
        )
        now = self.clock()

        async def work(db: AsyncSession) -> SubscriptionRead:
            subscription = await self._locked_subscription(db, subscription_id)
            await self.reconciler.record_charge(db, subscription, package, outcome, label, now)
            return SubscriptionRead.model_validate(subscription)

        return await self._run_unit(subscription_id, work, "renew")

    # ------------------------------------------------------------------
    # Gateway callbacks
    # ------------------------------------------------------------------

    async def apply_payment_outcome(
        self,
        subscription_id: int,
        outcome: PaymentOutcome,
        actor: Optional[Actor] = None
    ) -> SubscriptionRead:
        """Apply an asynchronous gateway outcome to the subscription's payment"""
        label = (actor or Actor.system()).label()
        return await self._guarded(
            "apply_payment_outcome", label, subscription_id,
            self._apply_payment_outcome(subscription_id, outcome, label)
        )

    async def _apply_payment_outcome(self, subscription_id, outcome, label) -> SubscriptionRead:
        request = self._validate(PaymentOutcomeRequest, subscription_id=subscription_id, outcome=outcome)

        async def work(db: AsyncSession) -> SubscriptionRead:
            subscription = await self.reconciler.apply_outcome(
                db, request.subscription_id, request.outcome, label, self.clock()
            )
            return SubscriptionRead.model_validate(subscription)

        return await self._run_unit(request.subscription_id, work, "apply_payment_outcome")

    async def apply_gateway_outcome(
        self,
        subscription_id: Optional[int],
        outcome: PaymentOutcome
    ) -> SubscriptionRead:
        """Apply a webhook outcome, finding the subscription by gateway reference when unknown"""
        if subscription_id is None:
            if not outcome.reference:
                raise ValidationError("Gateway event names neither a subscription nor a payment")
            subscription_id = await self._read(lambda db: self._subscription_for_reference(db, outcome.reference))
        return await self.apply_payment_outcome(subscription_id, outcome)

    @staticmethod
    async def _subscription_for_reference(db: AsyncSession, reference: str) -> int:
        subscription_id = await db.scalar(
            select(Payment.subscription_id).where(Payment.gateway_reference == reference).limit(1)
        )
        if subscription_id is None:
            raise ResourceNotFound("Payment", reference)
        return subscription_id

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    async def sweep_expired(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Expire lapsed ACTIVE subscriptions and cancel suspensions past grace.

        Each candidate is re-evaluated under its own lock and row lock, so the
        sweep never double-applies a transition a redemption already made.
        """
        now = now or self.clock()

        candidate_ids = await self._read(lambda db: self._sweep_candidates(db, now))
        result = SweepResult(examined=len(candidate_ids))

        for subscription_id in candidate_ids:
            async def work(db: AsyncSession, subscription_id=subscription_id):
                subscription = await db.get(Subscription, subscription_id, with_for_update=True)
                if subscription is None:
                    return None
                return await self.state_machine.evaluate_expiry(db, subscription, now)

            try:
                applied = await self._run_unit(subscription_id, work, "sweep")
            except (ConflictError, DomainError) as e:
                logger.warning(f"Sweep skipped subscription {subscription_id}: {e}")
                result.failed.append(subscription_id)
                continue

            if applied == SubscriptionStatus.EXPIRED:
                result.expired.append(subscription_id)
            elif applied == SubscriptionStatus.CANCELLED:
                result.cancelled.append(subscription_id)

        logger.info(
            f"Expiry sweep: examined={result.examined} expired={len(result.expired)} "
            f"cancelled={len(result.cancelled)} failed={len(result.failed)}"
        )
        return result

    @staticmethod
    async def _sweep_candidates(db: AsyncSession, now: datetime) -> List[int]:
        query = select(Subscription.id).where(
            or_(
                and_(
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    or_(Subscription.end_date <= now, Subscription.visits_remaining <= 0),
                ),
                and_(
                    Subscription.status == SubscriptionStatus.SUSPENDED,
                    Subscription.grace_until < now,
                ),
            )
        ).order_by(Subscription.id)
        return list((await db.execute(query)).scalars().all())

    async def notify_expiring_soon(self, now: Optional[datetime] = None) -> int:
        """Warn owners of ACTIVE subscriptions ending soon; once per period"""
        now = now or self.clock()
        horizon = now + self.expiry_warning

        async def candidates(db: AsyncSession) -> List[int]:
            query = select(Subscription.id).where(
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.end_date > now,
                Subscription.end_date <= horizon,
                Subscription.expiry_warning_sent_at.is_(None),
            ).order_by(Subscription.id)
            return list((await db.execute(query)).scalars().all())

        warned = 0
        for subscription_id in await self._read(candidates):
            async def work(db: AsyncSession, subscription_id=subscription_id) -> bool:
                subscription = await db.get(Subscription, subscription_id, with_for_update=True)
                if (
                    subscription is None
                    or subscription.status != SubscriptionStatus.ACTIVE
                    or subscription.expiry_warning_sent_at is not None
                ):
                    return False
                subscription.expiry_warning_sent_at = now
                await db.flush()
                queue_notice(db, SubscriptionNotice(
                    type=NotificationType.EXPIRING_SOON,
                    customer_id=subscription.customer_id,
                    subscription_id=subscription.id,
                    context={
                        "end_date": subscription.end_date.strftime("%Y-%m-%d"),
                        "renewal_hint": RENEWAL_HINTS[subscription.auto_renewal],
                    },
                ))
                return True

            try:
                if await self._run_unit(subscription_id, work, "notify_expiring_soon"):
                    warned += 1
            except ConflictError as e:
                logger.warning(f"Expiry warning skipped for subscription {subscription_id}: {e}")

        logger.info(f"Sent {warned} expiring-soon warnings")
        return warned

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_subscription(self, subscription_id: int) -> SubscriptionRead:
        async def work(db: AsyncSession) -> SubscriptionRead:
            subscription = await db.get(Subscription, subscription_id)
            if subscription is None:
                raise ResourceNotFound("Subscription", subscription_id)
            return SubscriptionRead.model_validate(subscription)

        return await self._read(work)

    async def get_subscription_by_token(self, token: str) -> SubscriptionRead:
        subscription_id = await self._read(lambda db: self.token_manager.resolve(db, token))
        return await self.get_subscription(subscription_id)

    async def list_visits(self, subscription_id: int) -> List[VisitRead]:
        async def work(db: AsyncSession) -> List[VisitRead]:
            result = await db.execute(
                select(Visit)
                .where(Visit.subscription_id == subscription_id)
                .order_by(Visit.redeemed_at, Visit.id)
            )
            return [VisitRead.model_validate(v) for v in result.scalars().all()]

        return await self._read(work)

    async def list_customer_subscriptions(
        self,
        customer_id: int,
        status: Optional[SubscriptionStatus] = None
    ) -> List[SubscriptionRead]:
        async def work(db: AsyncSession) -> List[SubscriptionRead]:
            query = select(Subscription).where(Subscription.customer_id == customer_id)
            if status is not None:
                query = query.where(Subscription.status == status)
            result = await db.execute(query.order_by(Subscription.created_at.desc(), Subscription.id.desc()))
            return [SubscriptionRead.model_validate(s) for s in result.scalars().all()]

        return await self._read(work)

    async def list_salon_subscriptions(
        self,
        salon_id: int,
        status: Optional[SubscriptionStatus] = None
    ) -> List[SubscriptionRead]:
        """Subscriptions to any package the salon sells, newest first"""
        async def work(db: AsyncSession) -> List[SubscriptionRead]:
            query = (
                select(Subscription)
                .join(Package, Package.id == Subscription.package_id)
                .where(Package.salon_id == salon_id)
            )
            if status is not None:
                query = query.where(Subscription.status == status)
            result = await db.execute(query.order_by(Subscription.created_at.desc(), Subscription.id.desc()))
            return [SubscriptionRead.model_validate(s) for s in result.scalars().all()]

        return await self._read(work)

    async def list_salon_visits(
        self,
        salon_id: int,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> List[VisitRead]:
        """Visits redeemed at the salon, newest first, optionally within [since, until)"""
        async def work(db: AsyncSession) -> List[VisitRead]:
            query = select(Visit).where(Visit.salon_id == salon_id)
            if since is not None:
                query = query.where(Visit.redeemed_at >= since)
            if until is not None:
                query = query.where(Visit.redeemed_at < until)
            result = await db.execute(query.order_by(Visit.redeemed_at.desc(), Visit.id.desc()))
            return [VisitRead.model_validate(v) for v in result.scalars().all()]

        return await self._read(work)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _locked_subscription(db: AsyncSession, subscription_id: int) -> Subscription:
        subscription = await db.get(Subscription, subscription_id, with_for_update=True)
        if subscription is None:
            raise ResourceNotFound("Subscription", subscription_id)
        return subscription

    @staticmethod
    def _check_owner(subscription: Subscription, actor: Actor) -> None:
        if actor.id != subscription.customer_id:
            raise NotSubscriptionOwner(
                f"Customer {actor.id} does not own subscription {subscription.id}",
                details={"subscription_id": subscription.id, "customer_id": actor.id}
            )


# Singleton instance
_orchestrator: Optional[SubscriptionOrchestrator] = None


def get_orchestrator() -> SubscriptionOrchestrator:
    """Get singleton instance"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SubscriptionOrchestrator()
    return _orchestrator
