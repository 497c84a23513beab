from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, CheckConstraint,
    Enum as SQLEnum
)
from sqlalchemy.orm import validates
from salonpass.core.clock import utcnow
from salonpass.core.exceptions import AlreadyIssued, ValidationError
from salonpass.db.base_class import Base
import enum

class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED)

class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("visits_remaining >= 0", name="ck_subscriptions_remaining_non_negative"),
        CheckConstraint("visits_used >= 0", name="ck_subscriptions_used_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Owner
    customer_id = Column(
        Integer,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False, index=True)

    # Redemption
    redemption_token = Column(String(64), unique=True, index=True, nullable=True)

    # Quota
    visits_used = Column(Integer, default=0, nullable=False)
    visits_remaining = Column(Integer, nullable=False)

    # Lifecycle
    status = Column(SQLEnum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False, index=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    auto_renewal = Column(Boolean, default=False, nullable=False)

    # Suspension (failed renewal)
    suspended_at = Column(DateTime, nullable=True)
    grace_until = Column(DateTime, nullable=True, index=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Set once per period so the daily warning goes out a single time
    expiry_warning_sent_at = Column(DateTime, nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("redemption_token")
    def _validate_token(self, key, value):
        if self.redemption_token is not None and value != self.redemption_token:
            raise AlreadyIssued(self.id)
        return value

    @validates("package_id")
    def _validate_package(self, key, value):
        if self.package_id is not None and value != self.package_id:
            raise ValidationError(
                "A subscription's package cannot be changed; purchase a new package instead",
                details={"subscription_id": self.id}
            )
        return value

    def has_lapsed(self, now) -> bool:
        """Validity window over or quota gone"""
        return now >= self.end_date or self.visits_remaining <= 0

    def grace_elapsed(self, now) -> bool:
        return self.grace_until is not None and now > self.grace_until

    def __repr__(self):
        return f"<Subscription {self.id} - {self.status.value} ({self.visits_remaining} left)>"
