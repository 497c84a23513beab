import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from salonpass.db.base import Base
from salonpass.db.session import build_session_factory
from salonpass.models.audit_log import AuditLog
from salonpass.schemas.subscription import PaymentOutcome
from salonpass.services.audit_service import AuditService
from salonpass.services.notification_service import NotificationService, SubscriptionNotice
from salonpass.services.payment_gateway import PaymentGateway
from salonpass.services.subscription import SubscriptionOrchestrator, SubscriptionStateMachine
from tests.factories import CustomerFactory, PackageFactory, SubscriptionFactory

NOW = datetime(2025, 3, 1, 10, 0, 0)


class FrozenClock:
    """Deterministic clock the tests move by hand"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeGateway(PaymentGateway):
    """Returns queued outcomes, or a capture when nothing is queued"""

    def __init__(self):
        self.outcomes: List[PaymentOutcome] = []
        self.charges: List[dict] = []

    def queue(self, *outcomes: PaymentOutcome) -> None:
        self.outcomes.extend(outcomes)

    async def charge(self, amount, currency, payment_auth, metadata=None) -> PaymentOutcome:
        self.charges.append({
            "amount": amount,
            "currency": currency,
            "payment_auth": payment_auth,
            "metadata": metadata or {},
        })
        if self.outcomes:
            return self.outcomes.pop(0)
        return PaymentOutcome.captured(reference=f"pi_test_{len(self.charges)}")


class RecordingNotifier(NotificationService):
    def __init__(self):
        self.sent: List[SubscriptionNotice] = []

    async def send(self, notice: SubscriptionNotice) -> None:
        self.sent.append(notice)

    def types(self) -> list:
        return [n.type for n in self.sent]


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'salonpass_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit_service() -> AuditService:
    return AuditService()


@pytest.fixture
def state_machine(audit_service) -> SubscriptionStateMachine:
    return SubscriptionStateMachine(audit_service, grace_days=7)


@pytest.fixture
def orchestrator(session_factory, gateway, notifier, audit_service, clock) -> SubscriptionOrchestrator:
    return SubscriptionOrchestrator(
        session_factory=session_factory,
        payment_gateway=gateway,
        notification_service=notifier,
        audit_service=audit_service,
        clock=clock,
        max_conflict_retries=3,
        grace_days=7,
        low_quota_threshold=1,
        expiry_warning_days=3,
    )


@pytest.fixture
def seed(session_factory):
    """Commit objects in their own session and return them with ids assigned"""

    async def _seed(*objects):
        async with session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects if len(objects) > 1 else objects[0]

    return _seed


@pytest.fixture
async def customer(seed):
    return await seed(CustomerFactory())


@pytest.fixture
async def package(seed):
    return await seed(PackageFactory(salon_id=1, visit_count=5, validity_days=30, price=Decimal("250.00")))


@pytest.fixture
def make_subscription(db_session, customer, package):
    """Insert a subscription into db_session (flushed, not committed)"""

    async def _make(**overrides):
        overrides.setdefault("start_date", NOW)
        subscription = SubscriptionFactory(
            customer_id=customer.id,
            package_id=package.id,
            **overrides
        )
        db_session.add(subscription)
        await db_session.flush()
        return subscription

    return _make


async def audit_entries(session_factory, subscription_id: Optional[int] = None, action: Optional[str] = None):
    async with session_factory() as session:
        query = select(AuditLog).order_by(AuditLog.id)
        if subscription_id is not None:
            query = query.where(AuditLog.subscription_id == subscription_id)
        if action is not None:
            query = query.where(AuditLog.action == action)
        return list((await session.execute(query)).scalars().all())


@pytest.fixture
async def client(orchestrator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test orchestrator"""
    from salonpass.api.deps import get_subscription_orchestrator
    from salonpass.main import app

    app.dependency_overrides[get_subscription_orchestrator] = lambda: orchestrator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
