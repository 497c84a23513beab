"""
Subscription Engine - Error Classes

Error taxonomy shared by the lifecycle services, the workers and the HTTP layer.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors that can occur"""
    VALIDATION = "validation"
    DOMAIN = "domain"
    CONFLICT = "conflict"
    FATAL = "fatal"


class SubscriptionEngineError(Exception):
    """Base exception for all subscription engine errors"""

    category = ErrorCategory.DOMAIN
    code = "subscription_error"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return f"[{self.category.value}:{self.code}] {self.message}"

    def is_retryable(self) -> bool:
        """Check if this error should trigger an internal retry"""
        return self.category == ErrorCategory.CONFLICT


# ============================================================================
# Validation
# ============================================================================

class ValidationError(SubscriptionEngineError):
    """Raised when input is malformed; no state has been touched"""

    category = ErrorCategory.VALIDATION
    code = "validation_error"


# ============================================================================
# Domain errors (expected, user-facing)
# ============================================================================

class DomainError(SubscriptionEngineError):
    """Raised when a business rule rejects the operation"""

    category = ErrorCategory.DOMAIN
    code = "domain_error"


class QuotaExhausted(DomainError):
    """Raised when a subscription has no visits left"""

    code = "quota_exhausted"

    def __init__(self, subscription_id: int, **kwargs):
        super().__init__(
            f"Subscription {subscription_id} has no remaining visits",
            details={"subscription_id": subscription_id},
            **kwargs
        )
        self.subscription_id = subscription_id


class SubscriptionNotActive(DomainError):
    """Raised when a subscription cannot be used in its current status"""

    code = "subscription_not_active"

    def __init__(self, subscription_id: int, status: str, **kwargs):
        super().__init__(
            f"Subscription {subscription_id} is not active (status: {status})",
            details={"subscription_id": subscription_id, "status": status},
            **kwargs
        )
        self.subscription_id = subscription_id
        self.status = status


class SalonMismatch(DomainError):
    """Raised when a token is presented at a salon that does not own the package"""

    code = "salon_mismatch"

    def __init__(self, subscription_id: int, expected_salon_id: int, salon_id: int):
        super().__init__(
            f"Subscription {subscription_id} is not valid at salon {salon_id}",
            details={
                "subscription_id": subscription_id,
                "expected_salon_id": expected_salon_id,
                "salon_id": salon_id,
            }
        )
        self.subscription_id = subscription_id


class InvalidToken(DomainError):
    """Raised when a redemption token does not resolve to a subscription"""

    code = "invalid_token"

    def __init__(self, message: str = "Invalid redemption token", **kwargs):
        super().__init__(message, **kwargs)


class AlreadyIssued(DomainError):
    """Raised on a second attempt to issue a redemption token"""

    code = "already_issued"

    def __init__(self, subscription_id: int):
        super().__init__(
            f"Redemption token already issued for subscription {subscription_id}",
            details={"subscription_id": subscription_id}
        )
        self.subscription_id = subscription_id


class InvalidTransition(DomainError):
    """Raised when the state machine forbids a status change"""

    code = "invalid_transition"

    def __init__(self, subscription_id: Optional[int], from_status: str, to_status: str):
        super().__init__(
            f"Subscription {subscription_id} cannot move from {from_status} to {to_status}",
            details={
                "subscription_id": subscription_id,
                "from_status": from_status,
                "to_status": to_status,
            }
        )
        self.subscription_id = subscription_id
        self.from_status = from_status
        self.to_status = to_status


class ResourceNotFound(DomainError):
    """Raised when a referenced record does not exist"""

    code = "not_found"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            details={"resource": resource, "resource_id": resource_id}
        )


class PackageUnavailable(DomainError):
    """Raised when a package cannot be purchased"""

    code = "package_unavailable"


class PaymentDeclined(DomainError):
    """Raised when the gateway declines the purchase charge"""

    code = "payment_declined"


class PaymentNotRefundable(DomainError):
    """Raised when a refund targets a payment that never collected money"""

    code = "payment_not_refundable"


class NotSubscriptionOwner(DomainError):
    """Raised when a customer acts on somebody else's subscription"""

    code = "not_subscription_owner"


# ============================================================================
# Concurrency
# ============================================================================

class ConflictError(SubscriptionEngineError):
    """Raised when an optimistic-concurrency check detects a concurrent write"""

    category = ErrorCategory.CONFLICT
    code = "conflict"

    def __init__(self, message: str = "Concurrent modification detected", **kwargs):
        super().__init__(message, **kwargs)


# ============================================================================
# Fatal (collaborator unreachable)
# ============================================================================

class FatalError(SubscriptionEngineError):
    """Raised when a collaborator is unreachable; never retried here"""

    category = ErrorCategory.FATAL
    code = "fatal"


class PersistenceUnavailable(FatalError):
    """Raised when the database cannot be reached"""

    code = "persistence_unavailable"

    def __init__(self, message: str = "Persistence store unavailable", **kwargs):
        super().__init__(message, **kwargs)


class PaymentGatewayUnavailable(FatalError):
    """Raised when the payment gateway cannot be reached"""

    code = "payment_gateway_unavailable"

    def __init__(self, message: str = "Payment gateway unavailable", **kwargs):
        super().__init__(message, **kwargs)
