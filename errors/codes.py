"""
Error code catalog for the location movement pipeline.

This module defines all error codes used throughout the pipeline,
covering ping validation errors, cache and sink failures, batch
failures and internal errors.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the pipeline.

    Each error code maps to a specific HTTP status code, used when a
    batch is invoked over HTTP by the hosting runtime:
    - Validation errors (4xx): malformed pings or invocation payloads
    - External service errors (5xx): cache or sink failures
    - Batch and internal errors (5xx): the runtime must retry the batch
    """

    # Validation errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Ping payload is missing fields or has out-of-range values (HTTP 400)"""

    INVALID_RECORD = "INVALID_RECORD"
    """Stream record could not be decoded (HTTP 400)"""

    INVALID_REQUEST = "INVALID_REQUEST"
    """Malformed batch invocation envelope (HTTP 400)"""

    # External service errors (5xx)
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"
    """Location cache get/set failed (HTTP 503)"""

    SINK_UNAVAILABLE = "SINK_UNAVAILABLE"
    """Movement event sink append failed after retries (HTTP 503)"""

    # Batch and internal errors (5xx)
    BATCH_FAILED = "BATCH_FAILED"
    """Batch aborted, must be retried from the last checkpoint (HTTP 500)"""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_RECORD: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.CACHE_UNAVAILABLE: 503,
    ErrorCode.SINK_UNAVAILABLE: 503,
    ErrorCode.BATCH_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
