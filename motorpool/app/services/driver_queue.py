"""
Driver queue manager.

Keeps the dispatch rotation: among active drivers queue_order is a dense
1..N ranking, and the AVAILABLE driver with the lowest rank is offered the
next job.

Every reorder reads the driver rows FOR UPDATE and writes the new ranking
with one UPDATE ... CASE statement, inside the caller's transaction. A
crash can therefore never leave half of a reorder applied.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.exceptions import NotFoundError, ValidationError
from motorpool.app.models.dispatch_enums import DriverStatus
from motorpool.app.models.driver import Driver
from motorpool.app.models.queue_seed import QueueSeedApplication

logger = logging.getLogger(__name__)


def _substring(seed: str, name: str) -> bool:
    return seed.casefold() in name.casefold()


def _prefix(seed: str, name: str) -> bool:
    return name.casefold().startswith(seed.casefold())


def _exact(seed: str, name: str) -> bool:
    return name.casefold() == seed.casefold()


SEED_MATCHERS: Dict[str, Callable[[str, str], bool]] = {
    "substring": _substring,
    "prefix": _prefix,
    "exact": _exact,
}


async def lock_drivers(db: AsyncSession, active_only: bool = True) -> List[Driver]:
    query = select(Driver).order_by(Driver.queue_order, Driver.id).with_for_update()
    if active_only:
        query = query.where(Driver.active.is_(True))
    result = await db.execute(query.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def _apply_order(db: AsyncSession, ranking: Dict[int, int]) -> None:
    """Write {driver_id: queue_order} as a single statement."""
    if not ranking:
        return
    await db.execute(
        update(Driver)
        .where(Driver.id.in_(list(ranking)))
        .values(queue_order=case(ranking, value=Driver.id))
        .execution_options(synchronize_session=False)
    )


def _dense_ranking(ordered: Sequence[Driver]) -> Dict[int, int]:
    return {
        driver.id: position
        for position, driver in enumerate(ordered, start=1)
        if driver.queue_order != position
    }


async def list_queue(db: AsyncSession) -> List[Driver]:
    """Active drivers in rotation order."""
    result = await db.execute(
        select(Driver)
        .where(Driver.active.is_(True))
        .order_by(Driver.queue_order, Driver.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def select_next(db: AsyncSession, lock: bool = False) -> Optional[Driver]:
    """
    Return the active, AVAILABLE driver with the smallest queue_order.

    Args:
        db: Database session
        lock: Lock the selected row (used when the caller reserves the driver)

    Returns:
        The driver, or None if nobody is available
    """
    query = (
        select(Driver)
        .where(Driver.active.is_(True), Driver.status == DriverStatus.AVAILABLE)
        .order_by(Driver.queue_order, Driver.id)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def next_queue_order(db: AsyncSession) -> int:
    """Rank for a newly activated driver: one past the last active driver."""
    result = await db.execute(
        select(func.max(Driver.queue_order)).where(Driver.active.is_(True))
    )
    return (result.scalar() or 0) + 1


async def move_to_front(db: AsyncSession, driver_id: int) -> bool:
    """
    Rotate the AVAILABLE ordering so driver_id comes first.

    The driver's predecessors move behind the old tail, keeping their
    relative order. Eligible drivers rotate through the ranks they already
    hold, so BUSY and OFF drivers keep their positions and the active
    ranking stays dense.

    Returns:
        True if the order changed, False if the driver was already first

    Raises:
        NotFoundError: driver is not active and AVAILABLE
    """
    drivers = await lock_drivers(db)
    eligible = [d for d in drivers if d.status == DriverStatus.AVAILABLE]

    index = next((i for i, d in enumerate(eligible) if d.id == driver_id), None)
    if index is None:
        raise NotFoundError("Driver in available queue", driver_id)
    if index == 0:
        return False

    rotated = eligible[index:] + eligible[:index]
    slots = [d.queue_order for d in eligible]
    await _apply_order(db, {d.id: slot for d, slot in zip(rotated, slots)})

    logger.info("Queue advanced: driver %s moved to front (was position %s)", driver_id, index + 1)
    return True


async def move_to_back(db: AsyncSession, driver_id: int) -> bool:
    """
    Give driver_id the last rank among active drivers; the drivers behind
    it close the gap.

    Returns:
        False if the driver is not active (nothing to rotate)
    """
    drivers = await lock_drivers(db)
    target = next((d for d in drivers if d.id == driver_id), None)
    if target is None:
        return False

    ordered = [d for d in drivers if d.id != driver_id] + [target]
    await _apply_order(db, _dense_ranking(ordered))
    return True


async def renumber_all(db: AsyncSession) -> List[Driver]:
    """
    Reassign ranks 1..N to active drivers in their current order.

    Inactive drivers follow with N+1..M. Used to repair gaps after a
    deactivation.

    Returns:
        Active drivers in their new order
    """
    drivers = await lock_drivers(db, active_only=False)
    active = [d for d in drivers if d.active]
    inactive = [d for d in drivers if not d.active]

    await _apply_order(db, _dense_ranking(active + inactive))
    logger.info("Queue renumbered: %s active, %s inactive drivers", len(active), len(inactive))

    return await list_queue(db)


async def seed_priority(
    db: AsyncSession,
    version: str,
    names: Sequence[str],
    match: str = "substring",
) -> Tuple[bool, List[Driver]]:
    """
    Front-load the rotation from an externally supplied priority seed.

    For each seed string, in order, every not-yet-placed active driver whose
    name matches goes to the front; all other drivers follow in their
    existing relative order. A seed version is applied at most once.

    Args:
        db: Database session
        version: Seed identifier, recorded once applied
        names: Ordered seed strings
        match: "substring" (default), "prefix" or "exact", case-insensitive

    Returns:
        (applied, active drivers in order). applied is False when the
        version had already been applied.
    """
    matcher = SEED_MATCHERS.get(match)
    if matcher is None:
        raise ValidationError(
            f"Unknown seed match mode '{match}'",
            details={"allowed": sorted(SEED_MATCHERS)}
        )

    existing = await db.execute(
        select(QueueSeedApplication).where(QueueSeedApplication.version == version)
    )
    if existing.scalar_one_or_none():
        logger.info("Queue seed %s already applied, skipping", version)
        return False, await list_queue(db)

    drivers = await lock_drivers(db, active_only=False)
    remaining = [d for d in drivers if d.active]
    inactive = [d for d in drivers if not d.active]

    front: List[Driver] = []
    for seed in names:
        matched = [d for d in remaining if matcher(seed, d.full_name)]
        front.extend(matched)
        remaining = [d for d in remaining if d not in matched]

    await _apply_order(db, _dense_ranking(front + remaining + inactive))
    db.add(QueueSeedApplication(version=version, names=list(names)))
    await db.flush()

    logger.info("Queue seed %s applied: %s drivers front-loaded", version, len(front))
    return True, await list_queue(db)
