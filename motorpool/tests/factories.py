"""
Test data builders shared by the test modules.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.jwt import create_access_token
from motorpool.app.models.booking import Booking
from motorpool.app.models.dispatch_enums import BookingStatus, DriverStatus
from motorpool.app.models.driver import Driver
from motorpool.app.models.enums import UserRole
from motorpool.app.models.user import User
from motorpool.app.models.vehicle import Vehicle


async def make_driver(
    db: AsyncSession,
    full_name: str,
    queue_order: int,
    status: DriverStatus = DriverStatus.AVAILABLE,
    active: bool = True,
    external_identity: Optional[str] = None
) -> Driver:
    driver = Driver(
        full_name=full_name,
        queue_order=queue_order,
        status=status,
        active=active,
        external_identity=external_identity,
    )
    db.add(driver)
    await db.flush()
    return driver


async def make_user(
    db: AsyncSession,
    username: str,
    role: UserRole,
    driver_id: Optional[int] = None,
    is_active: bool = True
) -> User:
    user = User(username=username, full_name=username.title(), role=role, driver_id=driver_id, is_active=is_active)
    db.add(user)
    await db.flush()
    return user


async def make_vehicle(db: AsyncSession, plate_number: str = "1กข-1234", is_active: bool = True) -> Vehicle:
    vehicle = Vehicle(plate_number=plate_number, name="Toyota Commuter", is_active=is_active)
    db.add(vehicle)
    await db.flush()
    return vehicle


async def make_booking(
    db: AsyncSession,
    requester_id: int,
    status: BookingStatus = BookingStatus.APPROVED,
    start_at: datetime = datetime(2024, 3, 4, 9, 0),
    request_code: Optional[str] = None,
    **fields: Any
) -> Booking:
    count = len((await db.execute(Booking.__table__.select())).all())
    booking = Booking(
        request_code=request_code or f"ENV-20240304-{count + 1:03d}",
        requester_id=requester_id,
        status=status,
        purpose="Site inspection",
        destination="Provincial office",
        start_at=start_at,
        driver_attempts=0,
        **fields
    )
    db.add(booking)
    await db.flush()
    return booking


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token({
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "driver_id": user.driver_id,
    })
    return {"Authorization": f"Bearer {token}"}