"""
Acceptance link endpoint.

Opened from the driver's messaging app, so it carries no bearer token:
the single-use token plus the driver's messaging identity authorize it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from motorpool.app.db.session import get_db
from motorpool.app.schemas.acceptance import AcceptanceResponse
from motorpool.app.schemas.booking import booking_response
from motorpool.app.services import acceptance_tokens

router = APIRouter(tags=["Acceptance"])


@router.get("/accept", response_model=AcceptanceResponse)
async def accept_job(
    token: Optional[str] = Query(None),
    external_id: Optional[str] = Query(None, alias="externalId"),
    db: AsyncSession = Depends(get_db)
):
    """
    Redeem an acceptance link.
    
    400 missing parameters, 404 unknown or used link, 410 expired link,
    403 identity is not the assigned driver.
    """
    booking = await acceptance_tokens.redeem(db, token, external_id)
    await db.commit()
    return AcceptanceResponse(message="Job accepted", booking=booking_response(booking))
