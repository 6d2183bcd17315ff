"""
Audit Log Database Model.

Tracks dispatch actions (assignments, acceptances, queue changes) for
later review.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from motorpool.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.
    
    Rows are added to the caller's session so they commit or roll back
    together with the change they describe.
    """
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Who performed the action (None for scheduled jobs and link-based actions)
    actor_id = Column(Integer, index=True, nullable=True)
    
    # What action was performed
    action = Column(String(100), nullable=False, index=True)
    
    # What it touched
    booking_id = Column(Integer, index=True, nullable=True)
    driver_id = Column(Integer, index=True, nullable=True)
    
    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)
    
    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', booking={self.booking_id}, driver={self.driver_id})>"
