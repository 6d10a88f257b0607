"""
Shared API utilities for the Academia gamification service.

This module provides:
- The standard error envelope
- Exception handlers mapping engine errors to HTTP responses

Failed requests only ever return the envelope; internal error types and storage details
stay in the logs.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from academia.common.exceptions import ConflictError, NotFoundError, ValidationError
from academia.common.logger import app_logger

# Setup module logger
logger = app_logger.getChild("api")


# Standard API response model
class APIResponse:
    """Standard error response structure"""

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an error response.

        Args:
            message: Error message
            details: Optional error details
            code: Optional error code

        Returns:
            Response dictionary
        """
        response = {
            "status": "error",
            "message": message
        }

        if details:
            response["details"] = details

        if code:
            response["code"] = code

        return response


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request body and query validation errors.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": [str(part) for part in error.get("loc", [])],
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse.error("Validation error", details=error_details, code="validation_error")
    )


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Reject malformed input."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse.error(exc.message, details=exc.errors, code="validation_error")
    )


async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=APIResponse.error(f"{exc.resource_type} not found", code="not_found")
    )


async def conflict_error_handler(request: Request, exc: ConflictError) -> JSONResponse:
    logger.warning(f"Gave up after repeated conflicts on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=APIResponse.error("Concurrent update, please retry", code="conflict")
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=APIResponse.error("Internal server error", code="internal_error")
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the engine's error mapping on an application."""
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(NotFoundError, not_found_error_handler)
    app.add_exception_handler(ConflictError, conflict_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
