"""
Driver queue API endpoints (Admin only).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.guards import require_role
from motorpool.app.db.session import get_db
from motorpool.app.models.enums import UserRole
from motorpool.app.schemas.driver import (
    AdvanceRequest, DriverResponse, NextDriverResponse, QueueResponse,
    SeedRequest, SeedResponse
)
from motorpool.app.services import driver_queue
from motorpool.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/queue", tags=["Driver Queue"])


def _queue(drivers, changed=None) -> QueueResponse:
    return QueueResponse(
        drivers=[DriverResponse.model_validate(d) for d in drivers],
        changed=changed
    )


@router.get("", response_model=QueueResponse)
async def get_queue(
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Active drivers in rotation order."""
    return _queue(await driver_queue.list_queue(db))


@router.get("/next", response_model=NextDriverResponse)
async def get_next_driver(
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Driver that would be offered the next job, or null."""
    driver = await driver_queue.select_next(db)
    return NextDriverResponse(driver=DriverResponse.model_validate(driver) if driver else None)


@router.post("/advance", response_model=QueueResponse)
async def advance_driver(
    payload: AdvanceRequest,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Move an available driver to the front of the rotation."""
    changed = await driver_queue.move_to_front(db, payload.driver_id)
    if changed:
        await log_event(
            db=db,
            action=AuditAction.QUEUE_ADVANCED,
            actor_id=current_user["user_id"],
            driver_id=payload.driver_id
        )
    await db.commit()
    return _queue(await driver_queue.list_queue(db), changed=changed)


@router.post("/renumber", response_model=QueueResponse)
async def renumber_queue(
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Close gaps in the ranking (1..N for active drivers)."""
    drivers = await driver_queue.renumber_all(db)
    await log_event(db=db, action=AuditAction.QUEUE_RENUMBERED, actor_id=current_user["user_id"])
    await db.commit()
    return _queue(drivers)


@router.post("/seed", response_model=SeedResponse)
async def seed_queue(
    payload: SeedRequest,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Apply a versioned priority seed. Re-sending a version is a no-op."""
    applied, drivers = await driver_queue.seed_priority(db, payload.version, payload.names, payload.match)
    if applied:
        await log_event(
            db=db,
            action=AuditAction.QUEUE_SEEDED,
            actor_id=current_user["user_id"],
            metadata={"version": payload.version, "names": payload.names, "match": payload.match}
        )
    await db.commit()
    return SeedResponse(
        version=payload.version,
        applied=applied,
        drivers=[DriverResponse.model_validate(d) for d in drivers]
    )
