"""
Booking API endpoints.

Requesters create and cancel bookings; admins approve, reject and assign;
drivers claim jobs assigned to them. Each endpoint is one transaction:
the service raises on any failed guard and get_db rolls back, otherwise the
endpoint commits and hands queued notifications to the dispatcher.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.exceptions import AuthorizationError
from motorpool.app.core.dependencies import get_current_user
from motorpool.app.core.guards import require_role, is_admin
from motorpool.app.db.session import get_db
from motorpool.app.models.dispatch_enums import BookingStatus
from motorpool.app.models.enums import UserRole
from motorpool.app.schemas.audit import AuditLogResponse, AuditTrailResponse
from motorpool.app.schemas.booking import (
    AssignRequest, AssignResponse, BookingCreate, BookingResponse,
    RetroBookingCreate, booking_list, booking_response
)
from motorpool.app.services import booking_lifecycle
from motorpool.app.services.audit import get_booking_history
from motorpool.app.services.notification_service import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: dict = Depends(require_role([UserRole.REQUESTER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Submit a booking request (status REQUESTED)."""
    booking = await booking_lifecycle.create_booking(
        db,
        requester_id=current_user["user_id"],
        purpose=payload.purpose,
        start_at=payload.start_at,
        end_at=payload.end_at,
        destination=payload.destination,
        vehicle_id=payload.vehicle_id,
    )
    await db.commit()
    return booking_response(booking)


@router.post("/retro", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_retro_booking(
    payload: RetroBookingCreate,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Backdated booking entered by an admin (status PENDING_RETRO)."""
    booking = await booking_lifecycle.create_retro_booking(
        db,
        requester_id=payload.requester_id,
        purpose=payload.purpose,
        start_at=payload.start_at,
        end_at=payload.end_at,
        destination=payload.destination,
        vehicle_id=payload.vehicle_id,
        actor_id=current_user["user_id"],
    )
    await db.commit()
    return booking_response(booking)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """All bookings, newest first, optionally filtered by status (Admin only)."""
    return booking_list(await booking_lifecycle.list_bookings(db, status_filter))


@router.get("/mine", response_model=List[BookingResponse])
async def list_my_bookings(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return booking_list(await booking_lifecycle.list_bookings_for_requester(db, current_user["user_id"]))


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Booking detail with its off-hours flag.
    
    Visible to the requester, the assigned driver and admins.
    """
    booking = await booking_lifecycle.get_booking(db, booking_id)
    
    allowed = (
        is_admin(current_user)
        or booking.requester_id == current_user["user_id"]
        or (booking.driver_id is not None and booking.driver_id == current_user.get("driver_id"))
    )
    if not allowed:
        raise AuthorizationError("You do not have access to this booking", details={"booking_id": booking_id})
    
    return booking_response(booking)


@router.get("/{booking_id}/history", response_model=AuditTrailResponse)
async def get_history(
    booking_id: int = Path(..., description="Booking ID"),
    limit: int = Query(50, ge=1, le=500),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail of a booking, most recent first (admin-only)."""
    await booking_lifecycle.get_booking(db, booking_id)
    logs = await get_booking_history(db=db, booking_id=booking_id, limit=limit)
    
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )


@router.post("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    booking = await booking_lifecycle.approve(db, booking_id, actor_id=current_user["user_id"])
    await db.commit()
    return booking_response(booking)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    booking = await booking_lifecycle.reject(db, booking_id, actor_id=current_user["user_id"])
    await db.commit()
    return booking_response(booking)


@router.post("/{booking_id}/assign", response_model=AssignResponse)
async def assign_booking(
    payload: AssignRequest,
    background_tasks: BackgroundTasks,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """
    Assign a driver and vehicle (Admin only).
    
    Without driverId the head of the driver queue is chosen. The driver is
    reserved, an acceptance link is issued and sent to the driver once the
    assignment is committed.
    """
    booking, driver, token = await booking_lifecycle.assign(
        db,
        booking_id,
        vehicle_id=payload.vehicle_id,
        driver_id=payload.driver_id,
        actor_id=current_user["user_id"],
    )
    await db.commit()
    background_tasks.add_task(dispatcher.deliver_pending)
    
    return AssignResponse(
        booking=booking_response(booking),
        driver_id=driver.id,
        token_expires_at=token.expire_at,
        notification_queued=bool(driver.external_identity),
    )


@router.post("/{booking_id}/claim", response_model=BookingResponse)
async def claim_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    db: AsyncSession = Depends(get_db)
):
    """Accept a job assigned to the calling driver without the link."""
    booking = await booking_lifecycle.self_claim(db, booking_id, current_user.get("driver_id"))
    await db.commit()
    return booking_response(booking)


@router.put("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a booking. Requesters may cancel their own; admins any."""
    booking = await booking_lifecycle.cancel(
        db,
        booking_id,
        requester_id=current_user["user_id"],
        is_admin=is_admin(current_user),
    )
    await db.commit()
    return booking_response(booking)
