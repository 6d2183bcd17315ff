"""
User database model.

Requesters, admins and driver accounts. Login itself is handled elsewhere;
this table backs the real-time active check on every request.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from motorpool.app.db.session import Base
from motorpool.app.models.enums import UserRole


class User(Base):
    """
    User model for caller identity.
    
    DRIVER accounts point at their driver record through driver_id.
    """
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    
    role = Column(Enum(UserRole), default=UserRole.REQUESTER, nullable=False)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
