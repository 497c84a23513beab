# Import all models here so Base.metadata knows every table
from salonpass.db.base_class import Base
from salonpass.models.customer import Customer
from salonpass.models.package import Package
from salonpass.models.subscription import Subscription, SubscriptionStatus
from salonpass.models.visit import Visit
from salonpass.models.payment import Payment, PaymentKind, PaymentStatus
from salonpass.models.audit_log import AuditLog
from salonpass.models.notification import Notification

__all__ = [
    "Base",
    "Customer",
    "Package",
    "Subscription",
    "SubscriptionStatus",
    "Visit",
    "Payment",
    "PaymentKind",
    "PaymentStatus",
    "AuditLog",
    "Notification",
]
