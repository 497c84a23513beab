from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint,
    Enum as SQLEnum
)
from salonpass.core.clock import utcnow
from salonpass.db.base_class import Base
import enum

class PaymentKind(str, enum.Enum):
    PURCHASE = "purchase"
    RENEWAL = "renewal"

class PaymentStatus(str, enum.Enum):
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"

class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        CheckConstraint(
            "refund_amount IS NULL OR refund_amount <= amount",
            name="ck_payments_refund_within_amount"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Reference only: payments are financial history and outlive the subscription
    subscription_id = Column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    kind = Column(SQLEnum(PaymentKind), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="SAR")
    status = Column(SQLEnum(PaymentStatus), nullable=False, index=True)

    # Gateway
    gateway_reference = Column(String(120), nullable=True, index=True)
    failure_reason = Column(String(255), nullable=True)

    # Refunds
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_date = Column(DateTime, nullable=True)

    # When the charge's effect (activation or a new renewal period) was applied
    settled_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def collected(self) -> bool:
        return self.status in (
            PaymentStatus.AUTHORIZED,
            PaymentStatus.CAPTURED,
            PaymentStatus.PARTIALLY_REFUNDED,
        )

    def __repr__(self):
        return f"<Payment {self.id} - {self.kind.value} {self.amount} {self.status.value}>"
