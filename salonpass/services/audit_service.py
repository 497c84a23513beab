"""
Audit Logging Service

Appends every subscription lifecycle transition, and every rejected attempt,
to the audit_logs table.
"""

from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from salonpass.core.clock import utcnow
from salonpass.models.audit_log import AuditLog


class AuditAction(str, Enum):
    """Enumeration of auditable actions"""
    SUBSCRIPTION_CREATED = "subscription_created"
    TOKEN_ISSUED = "token_issued"
    STATUS_CHANGED = "status_changed"
    VISIT_REDEEMED = "visit_redeemed"
    PAYMENT_RECORDED = "payment_recorded"
    REFUND_RECORDED = "refund_recorded"
    PERIOD_RENEWED = "period_renewed"
    ATTEMPT_REJECTED = "attempt_rejected"


class AuditService:
    """
    Writes audit entries into the caller's session.

    Entries are not flushed here; the caller's unit of work decides whether they
    commit together with the change they describe.
    """

    def record(
        self,
        db: AsyncSession,
        action: AuditAction,
        actor: str,
        subscription_id: Optional[int] = None,
        reason: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        outcome: str = "applied",
    ) -> AuditLog:
        """
        Record an auditable action.

        Args:
            db: Database session
            action: Type of action performed
            actor: Who performed it (e.g. 'customer:12', 'system')
            subscription_id: Affected subscription (None when it could not be resolved)
            reason: Reason code for the change
            from_status: Status before the change
            to_status: Status after the change
            details: Additional details as JSON
            outcome: 'applied' or 'rejected'
        """
        entry = AuditLog(
            subscription_id=subscription_id,
            action=action.value,
            actor=actor,
            reason=reason,
            outcome=outcome,
            from_status=from_status,
            to_status=to_status,
            details=details or {},
            created_at=utcnow(),
        )
        db.add(entry)

        logger.info(
            f"Audit: {action.value} [{outcome}] by {actor} on subscription {subscription_id}"
            + (f" {from_status}->{to_status}" if to_status else "")
            + (f" ({reason})" if reason else "")
        )
        return entry

    async def count_for_subscription(self, db: AsyncSession, subscription_id: int) -> int:
        result = await db.execute(
            select(func.count(AuditLog.id)).where(AuditLog.subscription_id == subscription_id)
        )
        return result.scalar_one()


# Singleton instance
_audit_service: Optional[AuditService] = None


def get_audit_service() -> AuditService:
    """Get singleton instance of AuditService"""
    global _audit_service
    if _audit_service is None:
        _audit_service = AuditService()
    return _audit_service
