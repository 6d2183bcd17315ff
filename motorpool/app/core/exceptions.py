"""
Domain exceptions and error handlers for consistent error responses.

Every failure a dispatch operation can report is an AppException subclass
carrying its own error code and HTTP status. Store failures are logged with
full detail and surfaced to callers as a generic 500.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""
    
    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised for missing or malformed input. Nothing is mutated."""
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class NotFoundError(AppException):
    """Raised when a booking, driver, vehicle or token does not exist."""
    
    def __init__(self, resource: str, resource_id: Any = None, error_code: str = "ERR_NOT_FOUND_001"):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InvalidTokenError(NotFoundError):
    """Raised when an acceptance token is unknown or already consumed."""
    
    def __init__(self):
        super().__init__("Acceptance token", error_code="ERR_TOKEN_001")
        self.message = "Invalid or already used acceptance link"


class ExpiredTokenError(AppException):
    """Raised when an acceptance token is past its expiry."""
    
    def __init__(self, expired_at: Any = None):
        super().__init__(
            message="Acceptance link has expired",
            error_code="ERR_TOKEN_002",
            status_code=status.HTTP_410_GONE,
            details={"expired_at": str(expired_at) if expired_at else None}
        )


class AuthorizationError(AppException):
    """Raised when the caller's identity does not match the resource."""
    
    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class StateConflictError(AppException):
    """Raised when a transition guard fails (wrong status, driver busy, ...)."""
    
    def __init__(
        self,
        message: str,
        details: Dict[str, Any] = None,
        status_code: int = status.HTTP_409_CONFLICT
    ):
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status_code,
            details=details
        )


class InfrastructureError(AppException):
    """Raised when the store or an internal dependency fails."""
    
    def __init__(self, message: str = "An internal server error occurred"):
        super().__init__(
            message=message,
            error_code="ERR_INTERNAL_SERVER",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if isinstance(exc, InfrastructureError):
        logger.error("Infrastructure failure on %s %s: %s", request.method, request.url.path, exc.message)
        return _internal_error_response()
    
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }
    
    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")
    
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handler for store failures. Detail stays in the server log."""
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return _internal_error_response()


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__, exc_info=exc)
    return _internal_error_response()


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that are not JSON serializable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


def _internal_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
