from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, event
from salonpass.core.clock import utcnow
from salonpass.core.exceptions import ValidationError
from salonpass.db.base_class import Base

class Visit(Base):
    """A single successful redemption. Rows are written once and never updated."""

    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, index=True)
    
    # References (history outlives the subscription's active life)
    subscription_id = Column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    customer_id = Column(Integer, nullable=False, index=True)
    salon_id = Column(Integer, nullable=False, index=True)
    
    service_name = Column(String(120), nullable=True)
    
    # Timestamps
    redeemed_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Visit {self.id} - subscription:{self.subscription_id} salon:{self.salon_id}>"


@event.listens_for(Visit, "before_update")
def _reject_visit_update(mapper, connection, target):
    raise ValidationError(
        f"Visit {target.id} is immutable",
        details={"visit_id": target.id, "subscription_id": target.subscription_id}
    )
