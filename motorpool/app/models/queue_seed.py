"""
Queue Seed Application model.

Records which priority-seed versions have been applied to the rotation.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from motorpool.app.db.session import Base


class QueueSeedApplication(Base):
    __tablename__ = "queue_seed_applications"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    version = Column(String(100), unique=True, nullable=False)
    names = Column(JSON, nullable=False)
    applied_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<QueueSeedApplication(version='{self.version}')>"
