"""
Mileage Log database model.

One row per completed booking, written in the completion transaction.
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from motorpool.app.db.session import Base


class MileageLog(Base):
    __tablename__ = "mileage_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, unique=True, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=True, index=True)
    
    start_mileage = Column(Integer, nullable=False)
    end_mileage = Column(Integer, nullable=False)
    distance = Column(Integer, nullable=False)
    
    logged_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<MileageLog(booking_id={self.booking_id}, distance={self.distance})>"
