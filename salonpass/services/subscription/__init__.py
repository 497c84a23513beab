"""
Subscription Lifecycle Package

Quota ledger, redemption tokens, status state machine, visit recording and
payment reconciliation, coordinated by the orchestrator.
"""

from salonpass.services.subscription.quota_ledger import QuotaLedger, QuotaSnapshot
from salonpass.services.subscription.token_manager import RedemptionTokenManager
from salonpass.services.subscription.state_machine import (
    SubscriptionStateMachine,
    TransitionReason,
    ALLOWED_TRANSITIONS,
)
from salonpass.services.subscription.visit_recorder import VisitRecorder
from salonpass.services.subscription.payment_reconciler import PaymentReconciler
from salonpass.services.subscription.orchestrator import (
    SubscriptionOrchestrator,
    get_orchestrator,
)

__all__ = [
    # Components
    'QuotaLedger',
    'QuotaSnapshot',
    'RedemptionTokenManager',
    'SubscriptionStateMachine',
    'TransitionReason',
    'ALLOWED_TRANSITIONS',
    'VisitRecorder',
    'PaymentReconciler',

    # Facade
    'SubscriptionOrchestrator',
    'get_orchestrator',
]
