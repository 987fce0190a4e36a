"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers. Services raise
these exceptions; the handlers are the only place they become HTTP responses.
"""

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class TransformUnavailableError(AppException):
    """Raised when an altitude cannot be converted to the canonical frame."""

    def __init__(self, message: str = "Geodetic transform unavailable", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_GEO_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details
        )


class DuplicateRecordError(AppException):
    """Raised by the store when (username, time_utc) is already recorded."""

    def __init__(self, username: str, time_utc: Any):
        super().__init__(
            message=f"Location for {username} at {time_utc} already recorded",
            error_code="ERR_DUPLICATE_001",
            status_code=status.HTTP_200_OK,
            details={"username": username, "time_utc": str(time_utc)}
        )


class UnknownUserError(AppException):
    """Raised when a location references a user that does not exist."""

    def __init__(self, username: str):
        super().__init__(
            message=f"User {username} not found",
            error_code="ERR_USER_404",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"username": username}
        )


class StorageIOError(AppException):
    """Raised when the database file cannot be opened, read or written."""

    def __init__(self, message: str = "Location store unavailable", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STORAGE_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


class BackupError(AppException):
    """Raised when a snapshot cannot be created or restored."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_BACKUP_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s: %s", exc.error_code, request.url.path, exc.message,
            extra={"correlation_id": getattr(request.state, "correlation_id", None)}
        )
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Basic"}
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        },
        headers=headers
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


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s: %s", request.url.path, type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry the raw exception object, which is not JSON serializable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]
