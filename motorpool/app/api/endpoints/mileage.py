"""
Mileage endpoints.

Link-based like the acceptance endpoint: drivers report odometer readings
from the messaging app.
"""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.db.session import get_db
from motorpool.app.schemas.booking import BookingResponse, booking_response
from motorpool.app.schemas.mileage import FinishMileageRequest, StartMileageRequest
from motorpool.app.services import booking_lifecycle
from motorpool.app.services.notification_service import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/mileage", tags=["Mileage"])


@router.post("/start", response_model=BookingResponse)
async def record_start(
    payload: StartMileageRequest,
    db: AsyncSession = Depends(get_db)
):
    """Record the start reading: ACCEPTED -> STARTED."""
    booking = await booking_lifecycle.record_start_mileage(db, payload.booking_id, payload.start_mileage)
    await db.commit()
    return booking_response(booking)


@router.post("/finish", response_model=BookingResponse)
async def record_finish(
    payload: FinishMileageRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Record the end reading: STARTED -> COMPLETED, and send the trip summary."""
    booking = await booking_lifecycle.finish_trip(
        db, payload.booking_id, payload.start_mileage, payload.end_mileage
    )
    await db.commit()
    background_tasks.add_task(dispatcher.deliver_pending)
    return booking_response(booking)
