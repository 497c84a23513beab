from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, CheckConstraint
from salonpass.core.clock import utcnow
from salonpass.db.base_class import Base

class Package(Base):
    __tablename__ = "packages"
    __table_args__ = (
        CheckConstraint("visit_count > 0", name="ck_packages_visit_count_positive"),
        CheckConstraint("validity_days > 0", name="ck_packages_validity_positive"),
        CheckConstraint("price >= 0", name="ck_packages_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    
    # Owning salon (salon listings live outside this service)
    salon_id = Column(Integer, nullable=False, index=True)
    
    name = Column(String(120), nullable=False)
    visit_count = Column(Integer, nullable=False)
    validity_days = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="SAR")
    
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Package {self.id} - {self.name} ({self.visit_count} visits)>"
