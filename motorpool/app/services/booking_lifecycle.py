"""
Booking lifecycle service.

Owns every booking status transition:

    REQUESTED / PENDING_RETRO -> APPROVED | REJECTED
    APPROVED / REQUESTED      -> ASSIGNED   (driver BUSY, token issued)
    ASSIGNED                  -> ACCEPTED   (token redeem or self-claim)
    ACCEPTED                  -> STARTED    (start mileage)
    STARTED                   -> COMPLETED  (end mileage)
    any non-terminal          -> CANCELLED

Each transition is a conditional UPDATE ... WHERE status IN (allowed).
Zero affected rows means the guard failed or a concurrent caller won; the
function then raises and the caller rolls the transaction back. Functions
never commit.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.config import settings
from motorpool.app.core.exceptions import (
    AuthorizationError, InfrastructureError, NotFoundError, StateConflictError, ValidationError
)
from motorpool.app.models.acceptance_token import AcceptanceToken
from motorpool.app.models.booking import Booking
from motorpool.app.models.dispatch_enums import BookingStatus, DriverStatus, TERMINAL_STATUSES
from motorpool.app.models.driver import Driver
from motorpool.app.models.mileage_log import MileageLog
from motorpool.app.models.notification import NotificationEvent
from motorpool.app.models.user import User
from motorpool.app.models.vehicle import Vehicle
from motorpool.app.services import acceptance_tokens, driver_queue
from motorpool.app.services.audit import log_event, AuditAction
from motorpool.app.services.driver_registry import get_driver
from motorpool.app.services.notification_service import (
    NotificationService, assignment_messages, completion_messages, reminder_messages
)

logger = logging.getLogger(__name__)

MileageInput = Union[int, str, None]


def _local_now() -> datetime:
    """Current local civil time, naive."""
    try:
        zone = ZoneInfo(settings.local_timezone)
    except ZoneInfoNotFoundError:
        logger.error("Unknown local_timezone setting: %s", settings.local_timezone)
        raise InfrastructureError("Server timezone is misconfigured")
    return datetime.now(zone).replace(tzinfo=None)


def parse_mileage(value: MileageInput, field: str) -> int:
    """
    Parse an odometer reading.

    Accepts integers and numeric strings. Anything else, or a negative
    number, raises ValidationError.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", details={"field": field})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if isinstance(value, int):
        parsed = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number", details={"field": field, "value": value})
        if number != number or number in (float("inf"), float("-inf")) or not number.is_integer():
            raise ValidationError(f"{field} must be a whole number", details={"field": field, "value": value})
        parsed = int(number)

    if parsed < 0:
        raise ValidationError(f"{field} must not be negative", details={"field": field, "value": parsed})
    return parsed


def _require_booking_id(booking_id: Optional[int]) -> None:
    if booking_id is None:
        raise ValidationError("booking_id is required", details={"field": "booking_id"})


async def generate_request_code(db: AsyncSession, now: Optional[datetime] = None) -> str:
    """
    Next request code for the local day: <PREFIX>-YYYYMMDD-NNN.
    """
    day = (now or _local_now()).strftime("%Y%m%d")
    stem = f"{settings.request_code_prefix}-{day}-"

    result = await db.execute(
        select(func.max(Booking.request_code)).where(Booking.request_code.like(f"{stem}%"))
    )
    last = result.scalar()
    running = int(last.rsplit("-", 1)[-1]) + 1 if last else 1
    return f"{stem}{running:03d}"


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


async def list_bookings_for_requester(db: AsyncSession, requester_id: int) -> List[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.requester_id == requester_id)
        .order_by(Booking.start_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


async def list_bookings(db: AsyncSession, status: Optional[BookingStatus] = None) -> List[Booking]:
    query = select(Booking).order_by(Booking.start_at.desc(), Booking.id.desc())
    if status is not None:
        query = query.where(Booking.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _transition(
    db: AsyncSession,
    booking_id: int,
    allowed: Iterable[BookingStatus],
    target: BookingStatus,
    *conditions: Any,
    **values: Any
) -> bool:
    """Conditional status update. True if exactly this booking moved."""
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.in_(list(allowed)), *conditions)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _conflict(booking: Booking, action: str, allowed: Iterable[BookingStatus], status_code: int = 409) -> StateConflictError:
    return StateConflictError(
        f"Cannot {action} booking in status {booking.status.value}",
        details={
            "booking_id": booking.id,
            "status": booking.status.value,
            "allowed": [s.value for s in allowed],
        },
        status_code=status_code
    )


async def _require_transition(
    db: AsyncSession,
    booking_id: int,
    allowed: List[BookingStatus],
    target: BookingStatus,
    action: str,
    **values: Any
) -> Booking:
    if not await _transition(db, booking_id, allowed, target, **values):
        booking = await get_booking(db, booking_id)
        raise _conflict(booking, action, allowed)
    return await get_booking(db, booking_id)


async def _get_vehicle(db: AsyncSession, vehicle_id: int) -> Vehicle:
    result = await db.execute(select(Vehicle).where(Vehicle.id == vehicle_id))
    vehicle = result.scalar_one_or_none()
    if not vehicle:
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


async def create_booking(
    db: AsyncSession,
    requester_id: int,
    purpose: str,
    start_at: datetime,
    end_at: Optional[datetime] = None,
    destination: Optional[str] = None,
    vehicle_id: Optional[int] = None,
    retro: bool = False,
    actor_id: Optional[int] = None
) -> Booking:
    """
    Create a booking in REQUESTED (or PENDING_RETRO for backdated entries).

    Raises:
        ValidationError: empty purpose, end before start
        NotFoundError: requested vehicle does not exist
    """
    if not purpose or not purpose.strip():
        raise ValidationError("Purpose is required")
    if end_at is not None and end_at < start_at:
        raise ValidationError(
            "end_at must not be before start_at",
            details={"start_at": start_at.isoformat(), "end_at": end_at.isoformat()}
        )
    if vehicle_id is not None:
        await _get_vehicle(db, vehicle_id)

    booking = Booking(
        request_code=await generate_request_code(db),
        requester_id=requester_id,
        status=BookingStatus.PENDING_RETRO if retro else BookingStatus.REQUESTED,
        purpose=purpose.strip(),
        destination=destination,
        start_at=start_at,
        end_at=end_at,
        vehicle_id=vehicle_id,
        driver_attempts=0,
    )
    db.add(booking)
    await db.flush()

    await log_event(
        db=db,
        action=AuditAction.BOOKING_CREATED,
        actor_id=actor_id if actor_id is not None else requester_id,
        booking_id=booking.id,
        metadata={"request_code": booking.request_code, "status": booking.status.value}
    )
    logger.info("Booking %s created (%s)", booking.request_code, booking.status.value)
    return booking


async def create_retro_booking(
    db: AsyncSession,
    requester_id: int,
    purpose: str,
    start_at: datetime,
    end_at: Optional[datetime] = None,
    destination: Optional[str] = None,
    vehicle_id: Optional[int] = None,
    actor_id: Optional[int] = None
) -> Booking:
    """Backdated entry made by an admin on behalf of requester_id."""
    result = await db.execute(select(User).where(User.id == requester_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Requester", requester_id)

    return await create_booking(
        db,
        requester_id=requester_id,
        purpose=purpose,
        start_at=start_at,
        end_at=end_at,
        destination=destination,
        vehicle_id=vehicle_id,
        retro=True,
        actor_id=actor_id,
    )


async def approve(db: AsyncSession, booking_id: int, actor_id: Optional[int] = None) -> Booking:
    booking = await _require_transition(
        db, booking_id,
        [BookingStatus.REQUESTED, BookingStatus.PENDING_RETRO],
        BookingStatus.APPROVED,
        "approve"
    )
    await log_event(db=db, action=AuditAction.BOOKING_APPROVED, actor_id=actor_id, booking_id=booking.id)
    logger.info("Booking %s approved", booking.id)
    return booking


async def reject(db: AsyncSession, booking_id: int, actor_id: Optional[int] = None) -> Booking:
    booking = await _require_transition(
        db, booking_id,
        [BookingStatus.REQUESTED, BookingStatus.PENDING_RETRO],
        BookingStatus.REJECTED,
        "reject"
    )
    await log_event(db=db, action=AuditAction.BOOKING_REJECTED, actor_id=actor_id, booking_id=booking.id)
    logger.info("Booking %s rejected", booking.id)
    return booking


async def assign(
    db: AsyncSession,
    booking_id: int,
    vehicle_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None
) -> Tuple[Booking, Driver, AcceptanceToken]:
    """
    Assign a driver and a vehicle to an APPROVED (or REQUESTED) booking.

    Without driver_id the head of the rotation is used. The driver is
    reserved (AVAILABLE -> BUSY), an acceptance token is issued and the
    assignment message is queued for delivery after commit.

    Raises:
        NotFoundError: booking, driver or vehicle missing
        StateConflictError: booking not assignable, driver not available,
            vehicle inactive, nobody in the rotation is available
        ValidationError: no vehicle given and none requested on the booking

    Returns:
        (booking, driver, token)
    """
    allowed = [BookingStatus.APPROVED, BookingStatus.REQUESTED]
    now = now or datetime.utcnow()

    booking = await get_booking(db, booking_id)
    if booking.status not in allowed:
        raise _conflict(booking, "assign", allowed)

    vehicle_id = vehicle_id if vehicle_id is not None else booking.vehicle_id
    if vehicle_id is None:
        raise ValidationError("vehicleId is required", details={"booking_id": booking.id})
    vehicle = await _get_vehicle(db, vehicle_id)
    if not vehicle.is_active:
        raise StateConflictError("Vehicle is not active", details={"vehicle_id": vehicle.id})

    if driver_id is None:
        driver = await driver_queue.select_next(db, lock=True)
        if driver is None:
            raise StateConflictError("No driver available", details={"booking_id": booking.id})
    else:
        driver = await get_driver(db, driver_id)

    # Reserve the driver
    reserved = await db.execute(
        update(Driver)
        .where(
            Driver.id == driver.id,
            Driver.active.is_(True),
            Driver.status == DriverStatus.AVAILABLE
        )
        .values(status=DriverStatus.BUSY)
        .execution_options(synchronize_session=False)
    )
    if reserved.rowcount != 1:
        driver = await get_driver(db, driver.id)
        raise StateConflictError(
            "Driver is not available",
            details={"driver_id": driver.id, "status": driver.status.value, "active": driver.active}
        )

    booking = await _require_transition(
        db, booking.id, allowed, BookingStatus.ASSIGNED, "assign",
        driver_id=driver.id,
        vehicle_id=vehicle.id,
        assigned_at=now,
    )
    driver = await get_driver(db, driver.id)

    token = await acceptance_tokens.issue(db, booking.id, driver.id, now=now)
    await NotificationService.enqueue(
        db,
        driver.external_identity,
        NotificationEvent.JOB_ASSIGNED,
        assignment_messages(booking, driver, token.token),
        booking_id=booking.id
    )

    await log_event(
        db=db,
        action=AuditAction.DRIVER_ASSIGNED,
        actor_id=actor_id,
        booking_id=booking.id,
        driver_id=driver.id,
        metadata={"vehicle_id": vehicle.id, "from_queue": driver_id is None}
    )
    logger.info("Booking %s assigned to driver %s, vehicle %s", booking.id, driver.id, vehicle.id)
    return booking, driver, token


async def mark_accepted(
    db: AsyncSession,
    booking_id: int,
    driver_id: int,
    allowed: List[BookingStatus],
    now: Optional[datetime] = None
) -> bool:
    """
    booking -> ACCEPTED for its assigned driver, and free the driver.

    Returns:
        False if the booking was not in allowed or not assigned to driver_id
    """
    moved = await _transition(
        db, booking_id, allowed, BookingStatus.ACCEPTED,
        Booking.driver_id == driver_id,
        driver_accepted_at=now or datetime.utcnow(),
        driver_attempts=Booking.driver_attempts + 1,
    )
    if not moved:
        return False

    await db.execute(
        update(Driver)
        .where(Driver.id == driver_id, Driver.status == DriverStatus.BUSY)
        .values(status=DriverStatus.AVAILABLE)
        .execution_options(synchronize_session=False)
    )
    return True


async def self_claim(db: AsyncSession, booking_id: int, driver_id: Optional[int]) -> Booking:
    """
    Accept a booking as its driver without a token.

    Outstanding acceptance tokens for the booking are deleted.

    Raises:
        AuthorizationError: caller is not the booking's driver
        StateConflictError: booking is not ASSIGNED or REQUESTED
    """
    allowed = [BookingStatus.ASSIGNED, BookingStatus.REQUESTED]

    booking = await get_booking(db, booking_id)
    if driver_id is None or booking.driver_id != driver_id:
        raise AuthorizationError("This job is not assigned to you", details={"booking_id": booking.id})
    if booking.status not in allowed:
        raise _conflict(booking, "claim", allowed)

    if not await mark_accepted(db, booking.id, driver_id, allowed):
        booking = await get_booking(db, booking.id)
        raise _conflict(booking, "claim", allowed)

    await acceptance_tokens.discard_for_booking(db, booking.id)
    await log_event(
        db=db,
        action=AuditAction.DRIVER_SELF_CLAIMED,
        booking_id=booking.id,
        driver_id=driver_id
    )
    logger.info("Booking %s claimed by driver %s", booking.id, driver_id)
    return await get_booking(db, booking.id)


async def record_start_mileage(db: AsyncSession, booking_id: Optional[int], value: MileageInput) -> Booking:
    """
    ACCEPTED -> STARTED with the odometer reading at departure.

    Raises:
        ValidationError: booking id or value missing, value not numeric or negative
        NotFoundError: booking missing
        StateConflictError: start already recorded (400), or booking not ACCEPTED
    """
    _require_booking_id(booking_id)
    start = parse_mileage(value, "start_mileage")
    booking = await get_booking(db, booking_id)

    if booking.start_mileage is not None:
        raise StateConflictError(
            "Start mileage already recorded",
            details={"booking_id": booking.id, "start_mileage": booking.start_mileage},
            status_code=400
        )

    moved = await _transition(
        db, booking.id, [BookingStatus.ACCEPTED], BookingStatus.STARTED,
        Booking.start_mileage.is_(None),
        start_mileage=start,
    )
    if not moved:
        booking = await get_booking(db, booking.id)
        if booking.start_mileage is not None:
            raise StateConflictError(
                "Start mileage already recorded",
                details={"booking_id": booking.id},
                status_code=400
            )
        raise _conflict(booking, "start", [BookingStatus.ACCEPTED])

    await log_event(
        db=db,
        action=AuditAction.TRIP_STARTED,
        booking_id=booking.id,
        driver_id=booking.driver_id,
        metadata={"start_mileage": start}
    )
    logger.info("Booking %s started at %s km", booking.id, start)
    return await get_booking(db, booking.id)


async def finish_trip(
    db: AsyncSession,
    booking_id: Optional[int],
    start_value: MileageInput,
    end_value: MileageInput,
    now: Optional[datetime] = None
) -> Booking:
    """
    STARTED -> COMPLETED with the closing odometer reading.

    The supplied start must equal the recorded one. Writes the mileage log,
    frees the driver (rotating them to the back when configured) and queues
    the completion summary.

    Raises:
        ValidationError: missing booking id, missing or non-numeric values, end < start,
            start differs from the recorded start
        NotFoundError: booking missing
        StateConflictError: booking not STARTED
    """
    _require_booking_id(booking_id)
    start = parse_mileage(start_value, "start_mileage")
    end = parse_mileage(end_value, "end_mileage")
    if end < start:
        raise ValidationError(
            "end_mileage must not be less than start_mileage",
            details={"start_mileage": start, "end_mileage": end}
        )

    booking = await get_booking(db, booking_id)
    if booking.status != BookingStatus.STARTED:
        raise _conflict(booking, "finish", [BookingStatus.STARTED])
    if booking.start_mileage != start:
        raise ValidationError(
            "start_mileage does not match the recorded start",
            details={"recorded": booking.start_mileage, "supplied": start}
        )

    distance = end - start
    moved = await _transition(
        db, booking.id, [BookingStatus.STARTED], BookingStatus.COMPLETED,
        Booking.start_mileage == start,
        end_mileage=end,
        distance=distance,
        completed_at=now or datetime.utcnow(),
    )
    if not moved:
        booking = await get_booking(db, booking.id)
        raise _conflict(booking, "finish", [BookingStatus.STARTED])

    db.add(MileageLog(
        booking_id=booking.id,
        driver_id=booking.driver_id,
        vehicle_id=booking.vehicle_id,
        start_mileage=start,
        end_mileage=end,
        distance=distance,
    ))

    if booking.driver_id is not None:
        await db.execute(
            update(Driver)
            .where(Driver.id == booking.driver_id, Driver.status != DriverStatus.OFF)
            .values(status=DriverStatus.AVAILABLE)
            .execution_options(synchronize_session=False)
        )
        if settings.rotate_on_completion:
            await driver_queue.move_to_back(db, booking.driver_id)

    booking = await get_booking(db, booking.id)
    if booking.driver_id is not None:
        driver = await get_driver(db, booking.driver_id)
        await NotificationService.enqueue(
            db,
            driver.external_identity,
            NotificationEvent.JOB_COMPLETED,
            completion_messages(booking),
            booking_id=booking.id
        )

    await log_event(
        db=db,
        action=AuditAction.TRIP_COMPLETED,
        booking_id=booking.id,
        driver_id=booking.driver_id,
        metadata={"start_mileage": start, "end_mileage": end, "distance": distance}
    )
    logger.info("Booking %s completed, %s km", booking.id, distance)
    return booking


async def cancel(
    db: AsyncSession,
    booking_id: int,
    requester_id: Optional[int],
    is_admin: bool = False
) -> Booking:
    """
    Cancel a non-terminal booking.

    Only the requester (or an admin) may cancel. Cancelling an ASSIGNED
    booking releases the reserved driver and deletes its acceptance tokens.

    Raises:
        AuthorizationError: caller does not own the booking
        StateConflictError: booking already terminal (400)
    """
    booking = await get_booking(db, booking_id)
    if not is_admin and booking.requester_id != requester_id:
        raise AuthorizationError("You can only cancel your own bookings", details={"booking_id": booking.id})

    if booking.status in TERMINAL_STATUSES:
        raise _conflict(
            booking, "cancel",
            [s for s in BookingStatus if s not in TERMINAL_STATUSES],
            status_code=400
        )

    previous = booking.status
    if not await _transition(db, booking.id, [previous], BookingStatus.CANCELLED):
        booking = await get_booking(db, booking.id)
        raise _conflict(booking, "cancel", [previous])

    if previous == BookingStatus.ASSIGNED and booking.driver_id is not None:
        await db.execute(
            update(Driver)
            .where(Driver.id == booking.driver_id, Driver.status == DriverStatus.BUSY)
            .values(status=DriverStatus.AVAILABLE)
            .execution_options(synchronize_session=False)
        )
        await acceptance_tokens.discard_for_booking(db, booking.id)

    await log_event(
        db=db,
        action=AuditAction.BOOKING_CANCELLED,
        actor_id=requester_id,
        booking_id=booking.id,
        driver_id=booking.driver_id,
        metadata={"from": previous.value, "by_admin": is_admin}
    )
    logger.info("Booking %s cancelled from %s", booking.id, previous.value)
    return await get_booking(db, booking.id)


async def remind_pending_jobs(db: AsyncSession, today: Optional[datetime] = None) -> int:
    """
    Queue one reminder per driver holding ASSIGNED or STARTED bookings that
    start today or earlier (local time).

    Returns:
        Number of reminders queued
    """
    day_end = (today or _local_now()).replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)

    result = await db.execute(
        select(Booking)
        .where(
            Booking.status.in_([BookingStatus.ASSIGNED, BookingStatus.STARTED]),
            Booking.driver_id.is_not(None),
            Booking.start_at < day_end
        )
        .order_by(Booking.start_at, Booking.id)
    )
    by_driver: Dict[int, List[Booking]] = defaultdict(list)
    for booking in result.scalars().all():
        by_driver[booking.driver_id].append(booking)

    queued = 0
    for driver_id, bookings in by_driver.items():
        driver = await get_driver(db, driver_id)
        notif = await NotificationService.enqueue(
            db,
            driver.external_identity,
            NotificationEvent.PENDING_REMINDER,
            reminder_messages(bookings)
        )
        if notif is not None:
            queued += 1

    logger.info("Pending-job reminders queued for %s driver(s)", queued)
    return queued
