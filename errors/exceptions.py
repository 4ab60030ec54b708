"""
Exception classes for the location movement pipeline.

This module provides the AppException base class, one subclass per
failure category of the pipeline, and convenience factory functions
for creating them with the proper error codes.

Recovery rules:
- PingValidationError / RecordDecodeError: the record is skipped
- CacheError: fatal for the batch
- ForwardError: governed by the forward failure policy
- BatchError: surfaced to the hosting runtime, which retries the batch
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all pipeline errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - details: Optional additional context (e.g., field-level errors)

    Example:
        raise AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Invalid latitude value",
            status_code=400,
            details={"field": "lat", "reason": "Must be between -90 and 90"}
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class PingValidationError(AppException):
    """A decoded ping is missing required fields or has invalid values."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details=details)


class RecordDecodeError(PingValidationError):
    """
    A stream record could not be decoded into a JSON object.

    Subclasses PingValidationError so both are recovered the same way:
    the record is logged and skipped.
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.error_code = ErrorCode.INVALID_RECORD
        self.status_code = get_default_status_code(ErrorCode.INVALID_RECORD)


class CacheError(AppException):
    """The location cache could not be read or written."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        user_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None
    ):
        merged = {"operation": operation, "user_id": user_id}
        merged.update(details or {})
        super().__init__(ErrorCode.CACHE_UNAVAILABLE, message, details=merged)
        self.operation = operation
        self.user_id = user_id


class ForwardError(AppException):
    """
    A movement event could not be appended to the sink.

    Raised after the retry budget is exhausted or when the sink circuit
    breaker is open.
    """

    def __init__(
        self,
        message: str,
        event: Any = None,
        attempts: int = 0,
        details: Optional[dict[str, Any]] = None
    ):
        merged: dict[str, Any] = {"attempts": attempts}
        if event is not None and hasattr(event, "user_id"):
            merged["user_id"] = event.user_id
        merged.update(details or {})
        super().__init__(ErrorCode.SINK_UNAVAILABLE, message, details=merged)
        self.event = event
        self.attempts = attempts


class BatchError(AppException):
    """
    A batch was aborted and must be retried from the last checkpoint.

    Attributes:
        sequence_number: Sequence number of the record being processed
            when the batch failed, if any
        processed: Number of records fully processed before the failure
    """

    def __init__(
        self,
        message: str,
        sequence_number: Optional[str] = None,
        processed: int = 0,
        details: Optional[dict[str, Any]] = None
    ):
        merged: dict[str, Any] = {
            "sequence_number": sequence_number,
            "processed": processed,
        }
        merged.update(details or {})
        super().__init__(ErrorCode.BATCH_FAILED, message, details=merged)
        self.sequence_number = sequence_number
        self.processed = processed


# Convenience factory functions for common error types

def validation_error(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> PingValidationError:
    """Create a ping validation error exception."""
    return PingValidationError(message=message, details=details)


def invalid_record(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> RecordDecodeError:
    """Create a record decode error exception."""
    return RecordDecodeError(message=message, details=details)


def invalid_request(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create an invalid request exception."""
    return AppException(
        error_code=ErrorCode.INVALID_REQUEST,
        message=message,
        details=details
    )


def cache_unavailable(
    message: str = "Location cache unavailable",
    operation: Optional[str] = None,
    user_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None
) -> CacheError:
    """Create a cache unavailable exception."""
    return CacheError(
        message=message,
        operation=operation,
        user_id=user_id,
        details=details
    )


def sink_unavailable(
    message: str = "Movement event sink unavailable",
    event: Any = None,
    attempts: int = 0,
    details: Optional[dict[str, Any]] = None
) -> ForwardError:
    """Create a sink unavailable exception."""
    return ForwardError(
        message=message,
        event=event,
        attempts=attempts,
        details=details
    )


def batch_failed(
    message: str = "Batch processing failed",
    sequence_number: Optional[str] = None,
    processed: int = 0,
    details: Optional[dict[str, Any]] = None
) -> BatchError:
    """Create a batch failed exception."""
    return BatchError(
        message=message,
        sequence_number=sequence_number,
        processed=processed,
        details=details
    )
