#!/usr/bin/env python3
"""
Custom exceptions and error handlers for the web application.
"""

import logging
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

from audit_engine.exceptions import (
    AuditEngineError,
    ConfigConflictError,
    CrossLocaleComboError,
    InvalidOverrideError,
    RulesetVersionNotFoundError,
    StoreUnavailableError,
    UnsafePatternError,
)

logger = logging.getLogger(__name__)


class ServiceException(Exception):
    """Base exception for service layer errors."""
    pass


class SnapshotNotFoundException(ServiceException):
    """Raised when a snapshot is not found."""
    pass


class MetadataSourceNotConfiguredException(ServiceException):
    """Raised when a fetch-based audit is requested without a metadata source."""
    pass


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": str(exc),
            "type": exc.__class__.__name__
        }
    )


async def service_exception_handler(
    request: Request,
    exc: ServiceException
) -> JSONResponse:
    """
    Handle service layer exceptions.

    Args:
        request: The FastAPI request.
        exc: The service exception.

    Returns:
        JSONResponse with error details.
    """
    logger.error(f"Service error in {request.url.path}: {exc}")

    status_code = 500
    if isinstance(exc, SnapshotNotFoundException):
        status_code = 404
    elif isinstance(exc, MetadataSourceNotConfiguredException):
        status_code = 503

    return _error_response(status_code, exc)


async def audit_engine_exception_handler(
    request: Request,
    exc: AuditEngineError
) -> JSONResponse:
    """Map engine errors onto HTTP status codes."""
    status_code = 500
    if isinstance(exc, ConfigConflictError):
        status_code = 409
    elif isinstance(exc, (InvalidOverrideError, UnsafePatternError, CrossLocaleComboError)):
        status_code = 422
    elif isinstance(exc, RulesetVersionNotFoundError):
        status_code = 404
    elif isinstance(exc, StoreUnavailableError):
        status_code = 503

    logger.warning(f"Engine error in {request.url.path}: {exc}")
    return _error_response(status_code, exc)


async def http_exception_handler(
    request: Request,
    exc: HTTPException
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "type": "HTTPException"
        }
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Args:
        request: The FastAPI request.
        exc: The exception.

    Returns:
        JSONResponse with error details.
    """
    logger.exception(f"Unexpected error in {request.url.path}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "type": "InternalError"
        }
    )
