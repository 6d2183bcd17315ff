"""
Concurrency Tests.

Two sessions racing on the same rows: the loser's conditional update
matches nothing and the operation reports a conflict instead of
overwriting the winner.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.exceptions import StateConflictError
from motorpool.app.models.dispatch_enums import BookingStatus, DriverStatus
from motorpool.app.services import acceptance_tokens, booking_lifecycle
from motorpool.app.services.driver_registry import get_driver
from motorpool.tests.factories import make_booking


@pytest.mark.asyncio
async def test_assign_after_concurrent_cancel_conflicts(db_session, people):
    alice_id = people["alice"].id
    booking = await make_booking(db_session, people["requester"].id, vehicle_id=people["vehicle"].id)
    await db_session.commit()
    stale = await booking_lifecycle.get_booking(db_session, booking.id)
    assert stale.status == BookingStatus.APPROVED

    async with AsyncSession(db_session.bind, expire_on_commit=False) as other:
        await booking_lifecycle.cancel(other, booking.id, people["requester"].id)
        await other.commit()

    with pytest.raises(StateConflictError):
        await booking_lifecycle.assign(db_session, booking.id)
    await db_session.rollback()

    assert (await get_driver(db_session, alice_id)).status == DriverStatus.AVAILABLE


@pytest.mark.asyncio
async def test_second_acceptance_loses(db_session, people):
    booking = await make_booking(db_session, people["requester"].id, vehicle_id=people["vehicle"].id)
    _, driver, _ = await booking_lifecycle.assign(db_session, booking.id)
    await db_session.commit()

    assert await booking_lifecycle.mark_accepted(
        db_session, booking.id, driver.id, allowed=[BookingStatus.ASSIGNED]
    )
    assert not await booking_lifecycle.mark_accepted(
        db_session, booking.id, driver.id, allowed=[BookingStatus.ASSIGNED]
    )

    refreshed = await booking_lifecycle.get_booking(db_session, booking.id)
    assert refreshed.driver_attempts == 1


@pytest.mark.asyncio
async def test_token_consumed_only_once(db_session, people):
    booking = await make_booking(db_session, people["requester"].id, vehicle_id=people["vehicle"].id)
    _, _, token = await booking_lifecycle.assign(db_session, booking.id)
    await db_session.commit()

    assert await acceptance_tokens.consume(db_session, token.token)
    assert not await acceptance_tokens.consume(db_session, token.token)


@pytest.mark.asyncio
async def test_back_to_back_assignments_take_different_drivers(db_session, people):
    first = await make_booking(db_session, people["requester"].id, vehicle_id=people["vehicle"].id)
    second = await make_booking(db_session, people["requester"].id, vehicle_id=people["vehicle"].id)
    await db_session.commit()

    _, first_driver, _ = await booking_lifecycle.assign(db_session, first.id)
    await db_session.commit()
    _, second_driver, _ = await booking_lifecycle.assign(db_session, second.id)
    await db_session.commit()

    assert first_driver.id == people["alice"].id
    assert second_driver.id == people["bob"].id
