"""
API Router.

Aggregates all endpoint routers. Paths are versionless.
"""

from fastapi import APIRouter
from motorpool.app.api.endpoints import (
    bookings, queue, acceptance, mileage, drivers, ops
)

router = APIRouter()

router.include_router(bookings.router)
router.include_router(queue.router)
router.include_router(acceptance.router)
router.include_router(mileage.router)
router.include_router(drivers.router)
router.include_router(ops.router)
