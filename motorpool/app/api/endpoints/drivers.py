"""
Driver registry API endpoints (Admin only).
"""

from typing import List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.core.guards import require_role
from motorpool.app.db.session import get_db
from motorpool.app.models.enums import UserRole
from motorpool.app.schemas.driver import (
    ActiveUpdate, DriverCreate, DriverResponse, IdentityUpdate, StatusUpdate
)
from motorpool.app.services import driver_registry

router = APIRouter(prefix="/drivers", tags=["Drivers"])


@router.get("", response_model=List[DriverResponse])
async def list_drivers(
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    return await driver_registry.list_drivers(db)


@router.post("", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def register_driver(
    payload: DriverCreate,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Register a driver at the back of the rotation."""
    driver = await driver_registry.register_driver(
        db,
        full_name=payload.full_name,
        phone=payload.phone,
        external_identity=payload.external_identity,
        actor_id=current_user["user_id"],
    )
    await db.commit()
    return await driver_registry.get_driver(db, driver.id)


@router.patch("/{driver_id}/identity", response_model=DriverResponse)
async def link_identity(
    payload: IdentityUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Bind a messaging identity, taking it from any previous holder."""
    driver = await driver_registry.link_external_identity(
        db, driver_id, payload.external_identity, actor_id=current_user["user_id"]
    )
    await db.commit()
    return driver


@router.patch("/{driver_id}/active", response_model=DriverResponse)
async def set_active(
    payload: ActiveUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    driver = await driver_registry.set_driver_active(
        db, driver_id, payload.active, actor_id=current_user["user_id"]
    )
    await db.commit()
    return driver


@router.patch("/{driver_id}/status", response_model=DriverResponse)
async def set_status(
    payload: StatusUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Toggle a driver between AVAILABLE and OFF."""
    driver = await driver_registry.set_driver_status(
        db, driver_id, payload.status, actor_id=current_user["user_id"]
    )
    await db.commit()
    return driver
