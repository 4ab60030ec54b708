"""
Error handling module for the location movement pipeline.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException and its pipeline-specific subclasses
- Error response models and FastAPI exception handlers
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    BatchError,
    CacheError,
    ForwardError,
    PingValidationError,
    RecordDecodeError,
)
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "BatchError",
    "CacheError",
    "ForwardError",
    "PingValidationError",
    "RecordDecodeError",
    "ErrorResponse",
    "handle_app_exception",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
