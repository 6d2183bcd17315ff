"""
Booking database model.

One vehicle-usage request from creation to closure.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from motorpool.app.db.session import Base
from motorpool.app.models.dispatch_enums import BookingStatus


class Booking(Base):
    """
    Booking model.
    
    start_at and end_at hold local civil time exactly as entered (naive, no
    timezone conversion). Status only moves along the booking lifecycle
    table; see services/booking_lifecycle.py.
    """
    __tablename__ = "bookings"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_code = Column(String(50), unique=True, nullable=False, index=True)
    
    # Ownership
    requester_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    
    # Status
    status = Column(Enum(BookingStatus), default=BookingStatus.REQUESTED, nullable=False, index=True)
    
    # Assignment
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=True, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    driver_attempts = Column(Integer, default=0, nullable=False)
    
    # Trip details
    purpose = Column(Text, nullable=False)
    destination = Column(String(255), nullable=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=True)
    
    # Mileage
    start_mileage = Column(Integer, nullable=True)
    end_mileage = Column(Integer, nullable=True)
    distance = Column(Integer, nullable=True)
    
    # Timestamps (naive UTC)
    assigned_at = Column(DateTime, nullable=True)
    driver_accepted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Booking(id={self.id}, code='{self.request_code}', status='{self.status.value}')>"
