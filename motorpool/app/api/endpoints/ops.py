"""
Admin operations endpoints.

Manual triggers for the recovery work the scheduler also performs.
"""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.guards import require_role
from motorpool.app.db.session import get_db
from motorpool.app.models.enums import UserRole
from motorpool.app.schemas.driver import CountResponse
from motorpool.app.services import acceptance_tokens
from motorpool.app.services.driver_registry import reset_stuck_drivers
from motorpool.app.services.notification_service import (
    NotificationDispatcher, NotificationService, get_dispatcher
)

router = APIRouter(prefix="/ops", tags=["Admin - Ops"])


@router.post("/reset-drivers", response_model=CountResponse)
async def reset_drivers(
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Return every BUSY driver to AVAILABLE."""
    count = await reset_stuck_drivers(db)
    await db.commit()
    return CountResponse(count=count)


@router.post("/notifications/retry", response_model=CountResponse)
async def retry_notifications(
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Re-queue failed notifications and start a delivery run."""
    count = await NotificationService.retry_failed(db)
    await db.commit()
    background_tasks.add_task(dispatcher.deliver_pending)
    return CountResponse(count=count)


@router.post("/tokens/purge", response_model=CountResponse)
async def purge_tokens(
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Delete expired acceptance tokens."""
    count = await acceptance_tokens.purge_expired(db)
    await db.commit()
    return CountResponse(count=count)
