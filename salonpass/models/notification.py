from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text
from salonpass.core.clock import utcnow
from salonpass.db.base_class import Base

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    
    # Recipient
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    
    # Notification details
    type = Column(String(40), nullable=False, index=True)  # subscription_created, subscription_suspended, low_quota, ...
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    
    # Related subscription (optional)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True)
    
    # Status
    is_read = Column(Boolean, default=False, index=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, index=True)
    read_at = Column(DateTime, nullable=True)
    
    def __repr__(self):
        return f"<Notification {self.id} - {self.type}>"
