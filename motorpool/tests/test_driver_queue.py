"""
Driver queue manager tests.

Rotation order, dense ranking and versioned priority seeds.
"""

import pytest

from motorpool.app.core.exceptions import NotFoundError, ValidationError
from motorpool.app.models.dispatch_enums import DriverStatus
from motorpool.app.services import driver_queue
from motorpool.tests.factories import make_driver


async def _order(db):
    return [(d.full_name, d.queue_order) for d in await driver_queue.list_queue(db)]


@pytest.mark.asyncio
async def test_select_next_skips_busy_off_and_inactive(db_session):
    await make_driver(db_session, "Busy", 1, status=DriverStatus.BUSY)
    await make_driver(db_session, "Off", 2, status=DriverStatus.OFF)
    await make_driver(db_session, "Gone", 3, active=False)
    await make_driver(db_session, "Ready", 4)
    await make_driver(db_session, "Later", 5)
    
    driver = await driver_queue.select_next(db_session)
    assert driver.full_name == "Ready"


@pytest.mark.asyncio
async def test_select_next_empty(db_session):
    await make_driver(db_session, "Busy", 1, status=DriverStatus.BUSY)
    assert await driver_queue.select_next(db_session) is None


@pytest.mark.asyncio
async def test_move_to_front_rotates_available_drivers(db_session):
    """A(1) B(2) C(3) D(4): advancing C gives C, D, A, B."""
    a = await make_driver(db_session, "A", 1)
    await make_driver(db_session, "B", 2)
    c = await make_driver(db_session, "C", 3)
    await make_driver(db_session, "D", 4)
    
    changed = await driver_queue.move_to_front(db_session, c.id)
    
    assert changed is True
    assert await _order(db_session) == [("C", 1), ("D", 2), ("A", 3), ("B", 4)]
    assert (await driver_queue.select_next(db_session)).id == c.id
    
    # Already first: no-op, idempotent
    assert await driver_queue.move_to_front(db_session, c.id) is False
    assert await _order(db_session) == [("C", 1), ("D", 2), ("A", 3), ("B", 4)]
    assert a.id != c.id


@pytest.mark.asyncio
async def test_move_to_front_keeps_busy_driver_slot(db_session):
    await make_driver(db_session, "A", 1)
    await make_driver(db_session, "B", 2, status=DriverStatus.BUSY)
    c = await make_driver(db_session, "C", 3)
    
    await driver_queue.move_to_front(db_session, c.id)
    
    assert await _order(db_session) == [("C", 1), ("B", 2), ("A", 3)]


@pytest.mark.asyncio
async def test_move_to_front_rejects_ineligible_driver(db_session):
    await make_driver(db_session, "A", 1)
    busy = await make_driver(db_session, "B", 2, status=DriverStatus.BUSY)
    
    with pytest.raises(NotFoundError):
        await driver_queue.move_to_front(db_session, busy.id)
    with pytest.raises(NotFoundError):
        await driver_queue.move_to_front(db_session, 9999)


@pytest.mark.asyncio
async def test_move_to_back(db_session):
    a = await make_driver(db_session, "A", 1)
    await make_driver(db_session, "B", 2)
    await make_driver(db_session, "C", 3)
    
    assert await driver_queue.move_to_back(db_session, a.id) is True
    assert await _order(db_session) == [("B", 1), ("C", 2), ("A", 3)]


@pytest.mark.asyncio
async def test_renumber_closes_gaps(db_session):
    await make_driver(db_session, "A", 2)
    await make_driver(db_session, "B", 5)
    await make_driver(db_session, "Gone", 3, active=False)
    await make_driver(db_session, "C", 9)
    
    drivers = await driver_queue.renumber_all(db_session)
    
    assert [(d.full_name, d.queue_order) for d in drivers] == [("A", 1), ("B", 2), ("C", 3)]
    gone = [d for d in await driver_queue.lock_drivers(db_session, active_only=False) if not d.active]
    assert gone[0].queue_order == 4


@pytest.mark.asyncio
async def test_next_queue_order(db_session):
    assert await driver_queue.next_queue_order(db_session) == 1
    await make_driver(db_session, "A", 1)
    await make_driver(db_session, "B", 2)
    await make_driver(db_session, "Gone", 7, active=False)
    assert await driver_queue.next_queue_order(db_session) == 3


@pytest.mark.asyncio
async def test_seed_priority_front_loads_matches(db_session):
    await make_driver(db_session, "Anan Boonmee", 1)
    await make_driver(db_session, "Somchai Jaidee", 2)
    await make_driver(db_session, "Preecha Suksan", 3)
    await make_driver(db_session, "Somsak Jaidee", 4)
    
    applied, drivers = await driver_queue.seed_priority(db_session, "2024-03", ["preecha", "jaidee"])
    
    assert applied is True
    assert [(d.full_name, d.queue_order) for d in drivers] == [
        ("Preecha Suksan", 1),
        ("Somchai Jaidee", 2),
        ("Somsak Jaidee", 3),
        ("Anan Boonmee", 4),
    ]


@pytest.mark.asyncio
async def test_seed_version_applies_once(db_session):
    await make_driver(db_session, "Anan", 1)
    b = await make_driver(db_session, "Boon", 2)
    
    applied, _ = await driver_queue.seed_priority(db_session, "v1", ["boon"])
    assert applied is True
    
    # Rotation moves on, then the same seed version is sent again
    await driver_queue.move_to_back(db_session, b.id)
    applied, drivers = await driver_queue.seed_priority(db_session, "v1", ["boon"])
    
    assert applied is False
    assert [d.full_name for d in drivers] == ["Anan", "Boon"]


@pytest.mark.asyncio
async def test_seed_match_modes(db_session):
    await make_driver(db_session, "Ann", 1)
    await make_driver(db_session, "Joann", 2)
    
    _, drivers = await driver_queue.seed_priority(db_session, "exact", ["ANN"], match="exact")
    assert [d.full_name for d in drivers] == ["Ann", "Joann"]
    
    _, drivers = await driver_queue.seed_priority(db_session, "prefix", ["jo"], match="prefix")
    assert [d.full_name for d in drivers] == ["Joann", "Ann"]
    
    with pytest.raises(ValidationError):
        await driver_queue.seed_priority(db_session, "bad", ["x"], match="regex")
