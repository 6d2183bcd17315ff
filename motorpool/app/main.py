"""
FastAPI Application Entry Point.

Motor pool dispatch backend: bookings, driver rotation, acceptance links
and mileage reporting.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from motorpool.app.core.config import settings
from motorpool.app.api.router import router as api_router
from motorpool.app.core.observability import ObservabilityMiddleware
from motorpool.app.core.scheduler import start_scheduler, stop_scheduler
from motorpool.app.db.session import engine, Base
from motorpool.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    database_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from motorpool.app.models.user import User
from motorpool.app.models.driver import Driver
from motorpool.app.models.vehicle import Vehicle
from motorpool.app.models.booking import Booking
from motorpool.app.models.acceptance_token import AcceptanceToken
from motorpool.app.models.mileage_log import MileageLog
from motorpool.app.models.notification import OutboundNotification
from motorpool.app.models.queue_seed import QueueSeedApplication
from motorpool.app.models.audit_log import AuditLog

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Starts the job scheduler when enabled, stops it on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.scheduler_enabled:
        start_scheduler()
    yield
    stop_scheduler()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Dispatch backend for a government motor pool",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


app.include_router(api_router)
