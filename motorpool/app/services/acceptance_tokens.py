"""
Acceptance token protocol.

A token lets the assigned driver accept one booking from a messaging deep
link. Tokens are single use: redeem deletes the row in the same
transaction that moves the booking to ACCEPTED and frees the driver, so
either all three changes commit or none do.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.config import settings
from motorpool.app.core.exceptions import (
    AuthorizationError, ExpiredTokenError, InvalidTokenError,
    StateConflictError, ValidationError
)
from motorpool.app.models.acceptance_token import AcceptanceToken
from motorpool.app.models.booking import Booking
from motorpool.app.models.dispatch_enums import BookingStatus
from motorpool.app.services.audit import log_event, AuditAction
from motorpool.app.services.driver_registry import find_driver_by_identity

logger = logging.getLogger(__name__)


async def issue(
    db: AsyncSession,
    booking_id: int,
    driver_id: int,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None
) -> AcceptanceToken:
    """
    Create a token for booking_id, valid for ttl (configured default 24h).
    """
    ttl = ttl if ttl is not None else timedelta(hours=settings.acceptance_token_ttl_hours)
    now = now or datetime.utcnow()

    token = AcceptanceToken(
        token=secrets.token_urlsafe(32),
        booking_id=booking_id,
        driver_id=driver_id,
        expire_at=now + ttl,
    )
    db.add(token)
    await db.flush()

    logger.info("Acceptance token issued for booking %s, driver %s, expires %s", booking_id, driver_id, token.expire_at)
    return token


async def find(db: AsyncSession, token: str, lock: bool = False) -> Optional[AcceptanceToken]:
    query = select(AcceptanceToken).where(AcceptanceToken.token == token)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def consume(db: AsyncSession, token: str) -> bool:
    """Delete a token. False if another transaction already deleted it."""
    result = await db.execute(
        delete(AcceptanceToken)
        .where(AcceptanceToken.token == token)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def discard_for_booking(db: AsyncSession, booking_id: int) -> int:
    """Delete every outstanding token of a booking."""
    result = await db.execute(
        delete(AcceptanceToken)
        .where(AcceptanceToken.booking_id == booking_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def purge_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Garbage-collect expired tokens. Redeem never relies on this."""
    now = now or datetime.utcnow()
    result = await db.execute(
        delete(AcceptanceToken)
        .where(AcceptanceToken.expire_at < now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def redeem(
    db: AsyncSession,
    token: str,
    external_identity: str,
    now: Optional[datetime] = None
) -> Booking:
    """
    Accept a booking through its acceptance link.

    Steps, all in the caller's transaction:
    1. token must exist (InvalidTokenError)
    2. token must not be expired (ExpiredTokenError)
    3. external_identity must belong to the driver the token and the
       booking are bound to (AuthorizationError)
    4. booking ASSIGNED -> ACCEPTED, driver -> AVAILABLE, token deleted

    Raises:
        ValidationError: missing token or identity
        StateConflictError: booking no longer ASSIGNED, or the token was
            consumed concurrently. The caller must roll back.

    Returns:
        The accepted booking
    """
    from motorpool.app.services import booking_lifecycle

    if not token or not external_identity:
        raise ValidationError(
            "token and externalId are required",
            details={"token": bool(token), "externalId": bool(external_identity)}
        )
    now = now or datetime.utcnow()

    row = await find(db, token, lock=True)
    if row is None:
        raise InvalidTokenError()

    if now > row.expire_at:
        logger.info("Expired acceptance token presented for booking %s", row.booking_id)
        raise ExpiredTokenError(row.expire_at)

    booking = await booking_lifecycle.get_booking(db, row.booking_id)
    driver = await find_driver_by_identity(db, external_identity)
    if driver is None or driver.id != row.driver_id or driver.id != booking.driver_id:
        raise AuthorizationError(
            "This job is not assigned to you",
            details={"booking_id": booking.id}
        )

    accepted = await booking_lifecycle.mark_accepted(
        db, booking.id, driver.id, allowed=[BookingStatus.ASSIGNED], now=now
    )
    if not accepted:
        current = await booking_lifecycle.get_booking(db, booking.id)
        raise StateConflictError(
            f"Cannot accept booking in status {current.status.value}",
            details={"booking_id": booking.id, "status": current.status.value}
        )

    if not await consume(db, token):
        raise StateConflictError("Acceptance link was already used", details={"booking_id": booking.id})

    await log_event(
        db=db,
        action=AuditAction.DRIVER_ACCEPTED,
        booking_id=booking.id,
        driver_id=driver.id,
        metadata={"via": "token"}
    )
    logger.info("Booking %s accepted by driver %s via link", booking.id, driver.id)

    return await booking_lifecycle.get_booking(db, booking.id)
