"""
Audit logging service for dispatch actions.

Audit rows join the caller's transaction: they are flushed, never
committed here, so a rolled-back transition leaves no audit trace.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from motorpool.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_APPROVED = "BOOKING_APPROVED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    DRIVER_ACCEPTED = "DRIVER_ACCEPTED"
    DRIVER_SELF_CLAIMED = "DRIVER_SELF_CLAIMED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    
    # Queue
    QUEUE_ADVANCED = "QUEUE_ADVANCED"
    QUEUE_RENUMBERED = "QUEUE_RENUMBERED"
    QUEUE_SEEDED = "QUEUE_SEEDED"
    
    # Driver registry
    DRIVER_REGISTERED = "DRIVER_REGISTERED"
    DRIVER_IDENTITY_LINKED = "DRIVER_IDENTITY_LINKED"
    DRIVER_ACTIVATION_CHANGED = "DRIVER_ACTIVATION_CHANGED"
    DRIVER_STATUS_CHANGED = "DRIVER_STATUS_CHANGED"
    DRIVERS_RESET = "DRIVERS_RESET"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    booking_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record a dispatch event in the current transaction.
    
    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action, None for system/link actions
        booking_id: Booking affected, if any
        driver_id: Driver affected, if any
        metadata: Additional context as JSON
        
    Returns:
        Pending AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        booking_id=booking_id,
        driver_id=driver_id,
        meta_data=metadata
    )
    
    db.add(audit_log)
    await db.flush()
    
    return audit_log


async def get_booking_history(
    db: AsyncSession,
    booking_id: int,
    limit: int = 50
) -> list[AuditLog]:
    """
    Get audit history for a booking, most recent first.
    """
    query = select(AuditLog).where(
        AuditLog.booking_id == booking_id
    ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()
