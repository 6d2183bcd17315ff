"""
Outbound Notification database model.

Messages are written here inside the business transaction and delivered
to the messaging API after commit.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum
from sqlalchemy.sql import func
from motorpool.app.db.session import Base
from motorpool.app.models.dispatch_enums import NotificationStatus
import enum


class NotificationEvent(str, enum.Enum):
    JOB_ASSIGNED = "JOB_ASSIGNED"
    JOB_COMPLETED = "JOB_COMPLETED"
    PENDING_REMINDER = "PENDING_REMINDER"


class OutboundNotification(Base):
    """
    Outbox row.
    Delivery failures only flip the row to FAILED; they never touch bookings.
    """
    __tablename__ = "outbound_notifications"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Recipient (messaging account id)
    recipient_identity = Column(String(100), nullable=False, index=True)
    
    # Content
    event = Column(Enum(NotificationEvent), nullable=False)
    payload = Column(JSON, nullable=False)  # Messages as sent to the push API
    booking_id = Column(Integer, nullable=True, index=True)
    
    # Delivery state
    status = Column(Enum(NotificationStatus), default=NotificationStatus.PENDING, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    
    def __repr__(self):
        return f"<OutboundNotification(id={self.id}, event='{self.event.value}', status='{self.status.value}')>"
