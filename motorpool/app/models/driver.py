"""
Driver database model.

Drivers form the dispatch rotation. Among active drivers queue_order is a
dense 1..N ranking maintained only by the queue manager.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from motorpool.app.db.session import Base
from motorpool.app.models.dispatch_enums import DriverStatus


class Driver(Base):
    """
    Driver model.
    
    external_identity is the driver's messaging account id (LINE user id).
    It is unique: binding it to a driver clears it from any previous holder.
    """
    __tablename__ = "drivers"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    external_identity = Column(String(100), unique=True, nullable=True, index=True)
    
    # Rotation
    active = Column(Boolean, default=True, nullable=False, index=True)
    status = Column(Enum(DriverStatus), default=DriverStatus.AVAILABLE, nullable=False, index=True)
    queue_order = Column(Integer, nullable=False, index=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.full_name}', queue_order={self.queue_order}, status='{self.status.value}')>"
