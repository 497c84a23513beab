from sqlalchemy import Column, Integer, String, DateTime, JSON
from salonpass.core.clock import utcnow
from salonpass.db.base_class import Base

class AuditLog(Base):
    """Append-only record of every lifecycle transition and rejected attempt"""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    
    # No foreign key: entries must survive whatever happens to the subscription row
    subscription_id = Column(Integer, nullable=True, index=True)
    
    action = Column(String(50), nullable=False, index=True)
    actor = Column(String(80), nullable=False)
    reason = Column(String(50), nullable=True)
    outcome = Column(String(20), nullable=False, default="applied")  # applied, rejected
    
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    
    details = Column(JSON, nullable=False, default=dict)
    
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog {self.id} {self.action} {self.from_status}->{self.to_status}>"
