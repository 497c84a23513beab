from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

from salonpass.models.subscription import SubscriptionStatus


class ActorKind(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SALON = "salon"
    SYSTEM = "system"


class Actor(BaseModel):
    """Who triggered an operation; recorded on every audit entry"""
    kind: ActorKind
    id: Optional[int] = None

    def label(self) -> str:
        return self.kind.value if self.id is None else f"{self.kind.value}:{self.id}"

    @classmethod
    def system(cls) -> "Actor":
        return cls(kind=ActorKind.SYSTEM)


# ============================================================================
# Requests
# ============================================================================

class PurchaseRequest(BaseModel):
    """Schema for buying a package"""
    customer_id: int = Field(..., gt=0)
    package_id: int = Field(..., gt=0)
    payment_auth: str = Field(..., min_length=1, max_length=255)
    auto_renewal: bool = False


class RedeemRequest(BaseModel):
    """Schema for redeeming one visit at a salon"""
    token: str = Field(..., min_length=1, max_length=64)
    salon_id: int = Field(..., gt=0)
    service_name: Optional[str] = Field(None, max_length=120)

    @field_validator('token')
    @classmethod
    def token_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Token must not be blank')
        return v


class CancelRequest(BaseModel):
    """Schema for cancelling a subscription"""
    actor: Actor


class RenewRequest(BaseModel):
    """Schema for charging a renewal"""
    payment_auth: str = Field(..., min_length=1, max_length=255)


class PaymentOutcomeKind(str, Enum):
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentOutcome(BaseModel):
    """A gateway result, delivered synchronously or by callback"""
    kind: PaymentOutcomeKind
    amount: Optional[Decimal] = Field(None, gt=0)
    payment_id: Optional[int] = Field(None, gt=0)
    reference: Optional[str] = None
    failure_reason: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def amount_two_decimals(cls, v):
        if v is not None and v != v.quantize(Decimal('0.01')):
            raise ValueError('Amount must have at most two decimal places')
        return v

    @classmethod
    def authorized(cls, reference: Optional[str] = None, **kwargs) -> "PaymentOutcome":
        return cls(kind=PaymentOutcomeKind.AUTHORIZED, reference=reference, **kwargs)

    @classmethod
    def captured(cls, reference: Optional[str] = None, **kwargs) -> "PaymentOutcome":
        return cls(kind=PaymentOutcomeKind.CAPTURED, reference=reference, **kwargs)

    @classmethod
    def failed(cls, failure_reason: Optional[str] = None, **kwargs) -> "PaymentOutcome":
        return cls(kind=PaymentOutcomeKind.FAILED, failure_reason=failure_reason, **kwargs)

    @classmethod
    def refunded(cls, amount: Decimal, **kwargs) -> "PaymentOutcome":
        return cls(kind=PaymentOutcomeKind.REFUNDED, amount=amount, **kwargs)


class PaymentOutcomeRequest(BaseModel):
    """Schema for a gateway callback"""
    subscription_id: int = Field(..., gt=0)
    outcome: PaymentOutcome


# ============================================================================
# Responses
# ============================================================================

class SubscriptionRead(BaseModel):
    """Schema for subscription response"""
    id: int
    customer_id: int
    package_id: int
    redemption_token: Optional[str]
    visits_used: int
    visits_remaining: int
    status: SubscriptionStatus
    start_date: datetime
    end_date: datetime
    auto_renewal: bool = False
    suspended_at: Optional[datetime] = None
    grace_until: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VisitRead(BaseModel):
    """Schema for visit response"""
    id: int
    subscription_id: int
    customer_id: int
    salon_id: int
    service_name: Optional[str]
    redeemed_at: datetime

    class Config:
        from_attributes = True


class RedemptionRead(VisitRead):
    """Visit plus the subscription counters right after the redemption"""
    visits_used: int
    visits_remaining: int
    subscription_status: SubscriptionStatus


class SweepResult(BaseModel):
    """Summary of one expiry sweep pass"""
    examined: int = 0
    expired: list[int] = Field(default_factory=list)
    cancelled: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
