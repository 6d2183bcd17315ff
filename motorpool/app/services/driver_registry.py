"""
Driver registry service.

Registration, messaging identity binding, activation and the stuck-driver
reset. Rank changes are delegated to the queue manager.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.exceptions import NotFoundError, ValidationError
from motorpool.app.models.dispatch_enums import DriverStatus
from motorpool.app.models.driver import Driver
from motorpool.app.services import driver_queue
from motorpool.app.services.audit import log_event, AuditAction

logger = logging.getLogger(__name__)


async def get_driver(db: AsyncSession, driver_id: int) -> Driver:
    result = await db.execute(
        select(Driver)
        .where(Driver.id == driver_id)
        .execution_options(populate_existing=True)
    )
    driver = result.scalar_one_or_none()
    if not driver:
        raise NotFoundError("Driver", driver_id)
    return driver


async def find_driver_by_identity(db: AsyncSession, external_identity: str) -> Optional[Driver]:
    result = await db.execute(
        select(Driver)
        .where(Driver.external_identity == external_identity)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_drivers(db: AsyncSession) -> List[Driver]:
    result = await db.execute(
        select(Driver)
        .order_by(Driver.active.desc(), Driver.queue_order, Driver.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _release_identity(db: AsyncSession, external_identity: str, keep_driver_id: Optional[int] = None) -> None:
    """Clear external_identity from whoever holds it (except keep_driver_id)."""
    stmt = update(Driver).where(Driver.external_identity == external_identity)
    if keep_driver_id is not None:
        stmt = stmt.where(Driver.id != keep_driver_id)
    result = await db.execute(
        stmt.values(external_identity=None).execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("Messaging identity released from %s previous holder(s)", result.rowcount)


async def register_driver(
    db: AsyncSession,
    full_name: str,
    phone: Optional[str] = None,
    external_identity: Optional[str] = None,
    actor_id: Optional[int] = None
) -> Driver:
    """
    Register a driver at the back of the rotation.

    Raises:
        ValidationError: empty name
    """
    if not full_name or not full_name.strip():
        raise ValidationError("Driver name is required")

    if external_identity:
        await _release_identity(db, external_identity)

    # Lock the current ranking so concurrent registrations serialize
    await driver_queue.lock_drivers(db)
    queue_order = await driver_queue.next_queue_order(db)

    driver = Driver(
        full_name=full_name.strip(),
        phone=phone,
        external_identity=external_identity or None,
        active=True,
        status=DriverStatus.AVAILABLE,
        queue_order=queue_order,
    )
    db.add(driver)
    await db.flush()

    await log_event(
        db=db,
        action=AuditAction.DRIVER_REGISTERED,
        actor_id=actor_id,
        driver_id=driver.id,
        metadata={"queue_order": queue_order}
    )
    logger.info("Driver %s registered at queue position %s", driver.id, queue_order)
    return driver


async def link_external_identity(
    db: AsyncSession,
    driver_id: int,
    external_identity: str,
    actor_id: Optional[int] = None
) -> Driver:
    """
    Bind a messaging identity to a driver.

    Any other driver holding the identity loses it first. An inactive driver
    is reactivated at the back of the rotation; an OFF driver becomes
    AVAILABLE.
    """
    if not external_identity or not external_identity.strip():
        raise ValidationError("External identity is required")
    external_identity = external_identity.strip()

    driver = await get_driver(db, driver_id)
    await _release_identity(db, external_identity, keep_driver_id=driver.id)

    was_active = driver.active
    driver.external_identity = external_identity
    driver.active = True
    if driver.status == DriverStatus.OFF:
        driver.status = DriverStatus.AVAILABLE
    await db.flush()

    if not was_active:
        await driver_queue.move_to_back(db, driver.id)

    await log_event(
        db=db,
        action=AuditAction.DRIVER_IDENTITY_LINKED,
        actor_id=actor_id,
        driver_id=driver.id,
        metadata={"reactivated": not was_active}
    )
    return await get_driver(db, driver.id)


async def set_driver_active(
    db: AsyncSession,
    driver_id: int,
    active: bool,
    actor_id: Optional[int] = None
) -> Driver:
    """
    Activate or deactivate a driver, keeping the active ranking dense.
    """
    driver = await get_driver(db, driver_id)
    if driver.active == active:
        return driver

    driver.active = active
    await db.flush()

    if active:
        await driver_queue.move_to_back(db, driver.id)
    else:
        await driver_queue.renumber_all(db)

    await log_event(
        db=db,
        action=AuditAction.DRIVER_ACTIVATION_CHANGED,
        actor_id=actor_id,
        driver_id=driver.id,
        metadata={"active": active}
    )
    return await get_driver(db, driver.id)


async def set_driver_status(
    db: AsyncSession,
    driver_id: int,
    status: DriverStatus,
    actor_id: Optional[int] = None
) -> Driver:
    """
    Admin toggle between AVAILABLE and OFF. BUSY is only set by assignment.
    """
    if status == DriverStatus.BUSY:
        raise ValidationError("BUSY is set by assignment, not manually")

    driver = await get_driver(db, driver_id)
    previous = driver.status
    driver.status = status
    await db.flush()

    await log_event(
        db=db,
        action=AuditAction.DRIVER_STATUS_CHANGED,
        actor_id=actor_id,
        driver_id=driver.id,
        metadata={"from": previous.value, "to": status.value}
    )
    return driver


async def reset_stuck_drivers(db: AsyncSession) -> int:
    """
    Return every BUSY driver to AVAILABLE. OFF drivers are left alone.

    Recovery for drivers reserved by flows that were abandoned. Runs from
    the daily scheduled job and the admin ops endpoint.

    Returns:
        Number of drivers reset
    """
    result = await db.execute(
        update(Driver)
        .where(Driver.status == DriverStatus.BUSY)
        .values(status=DriverStatus.AVAILABLE)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0

    await log_event(db=db, action=AuditAction.DRIVERS_RESET, metadata={"reset_count": count})
    logger.info("Reset %s stuck driver(s) to AVAILABLE", count)
    return count
