"""
Acceptance Token database model.

Single-use capability letting a driver accept one booking through a
messaging deep link.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from motorpool.app.db.session import Base


class AcceptanceToken(Base):
    """
    Acceptance token.
    
    Deleted on first successful redemption. A row found past expire_at is
    void even if it has not been purged yet.
    """
    __tablename__ = "acceptance_tokens"
    
    token = Column(String(128), primary_key=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False, index=True)
    
    # Naive UTC, compared against datetime.utcnow()
    expire_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<AcceptanceToken(booking_id={self.booking_id}, driver_id={self.driver_id}, expire_at={self.expire_at})>"
