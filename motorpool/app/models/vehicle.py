"""
Vehicle database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from motorpool.app.db.session import Base


class Vehicle(Base):
    """Pool vehicle. Only active vehicles can be assigned to a booking."""
    __tablename__ = "vehicles"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    plate_number = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)  # e.g., "Toyota Commuter"
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate_number}')>"
