"""
Exception handlers for the batch invocation API.

The hosting runtime decides whether to retry a batch from the status
code and the error_code of the response, so every failure is rendered
in the same structured JSON shape.
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode, get_default_status_code
from errors.exceptions import AppException

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """
    Structured error response model.

    Every error response from the API follows this format so the
    invoking runtime can tell retryable batch failures from
    malformed invocations.
    """
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: str


def get_request_id(request: Request) -> str:
    """
    Get the request ID from the request state or generate a new one.

    Args:
        request: The FastAPI request object

    Returns:
        The request ID string
    """
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return str(uuid.uuid4())


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Convert a known pipeline exception to a structured response.

    Args:
        request: The FastAPI request object
        exc: The AppException that was raised

    Returns:
        JSONResponse with structured error format
    """
    request_id = get_request_id(request)

    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "Pipeline error: %s",
        exc.message,
        extra={"extra_data": {
            "error_code": exc.error_code.value,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        }}
    )

    error_response = ErrorResponse(
        error_code=exc.error_code.value,
        message=exc.message,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(exclude_none=True),
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Render a malformed invocation envelope as INVALID_REQUEST.

    Only the envelope is validated by FastAPI; individual ping payloads
    are validated by the stream consumer and skipped when invalid.
    """
    request_id = get_request_id(request)
    errors = [
        {"loc": [str(part) for part in err.get("loc", [])], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]

    logger.warning(
        "Invalid batch invocation envelope",
        extra={"extra_data": {"errors": errors, "path": request.url.path}}
    )

    error_response = ErrorResponse(
        error_code=ErrorCode.INVALID_REQUEST.value,
        message="Invalid batch invocation payload",
        details={"validation_errors": errors},
        request_id=request_id,
    )
    return JSONResponse(
        status_code=get_default_status_code(ErrorCode.INVALID_REQUEST),
        content=error_response.model_dump(exclude_none=True),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions without exposing internal details.

    The full stack trace goes to the log; the response stays generic.

    Args:
        request: The FastAPI request object
        exc: The unexpected exception that was raised

    Returns:
        JSONResponse with generic error message
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={"extra_data": {
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        }},
        exc_info=exc,
    )

    error_response = ErrorResponse(
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message="An unexpected error occurred. Please try again later.",
        details=None,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=500,
        content=error_response.model_dump(exclude_none=True),
    )


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
