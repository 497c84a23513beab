from sqlalchemy import Column, Integer, String, DateTime
from salonpass.core.clock import utcnow
from salonpass.db.base_class import Base

class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone = Column(String(32), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Customer {self.id} - {self.full_name}>"
