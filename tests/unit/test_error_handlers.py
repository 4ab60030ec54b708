"""
Unit tests for error handlers and the exception taxonomy.

Tests the error response model and exception handlers to ensure
they produce correctly structured responses.
"""

import json

import pytest
from unittest.mock import MagicMock
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from errors.codes import ErrorCode, get_default_status_code
from errors.exceptions import (
    AppException,
    BatchError,
    CacheError,
    ForwardError,
    PingValidationError,
    RecordDecodeError,
    batch_failed,
    cache_unavailable,
    invalid_record,
    sink_unavailable,
    validation_error,
)
from errors.handlers import (
    ErrorResponse,
    get_request_id,
    handle_app_exception,
    handle_request_validation_error,
    handle_unexpected_exception,
    register_exception_handlers,
)


def make_request(request_id="test-request-id", path="/api/batches", method="POST"):
    request = MagicMock(spec=Request)
    request.state.request_id = request_id
    request.url.path = path
    request.method = method
    return request


def body_of(response: JSONResponse) -> dict:
    return json.loads(response.body.decode("utf-8"))


class TestErrorResponse:
    """Tests for the ErrorResponse model."""

    def test_error_response_with_all_fields(self):
        response = ErrorResponse(
            error_code="BATCH_FAILED",
            message="Batch failed",
            details={"sequence_number": "42"},
            request_id="req-123",
        )

        assert response.error_code == "BATCH_FAILED"
        assert response.details == {"sequence_number": "42"}
        assert response.request_id == "req-123"

    def test_error_response_model_dump_excludes_none(self):
        response = ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An error occurred",
            request_id="req-789",
        )

        dumped = response.model_dump(exclude_none=True)
        assert "details" not in dumped
        assert dumped["request_id"] == "req-789"


class TestGetRequestId:
    """Tests for the get_request_id function."""

    def test_get_request_id_from_state(self):
        assert get_request_id(make_request("existing-request-id")) == "existing-request-id"

    def test_get_request_id_generates_uuid_when_not_set(self):
        request = MagicMock(spec=Request)
        del request.state.request_id

        result = get_request_id(request)

        assert len(result) == 36
        assert result.count("-") == 4


class TestExceptionTaxonomy:

    def test_status_codes(self):
        assert get_default_status_code(ErrorCode.VALIDATION_ERROR) == 400
        assert get_default_status_code(ErrorCode.INVALID_RECORD) == 400
        assert get_default_status_code(ErrorCode.CACHE_UNAVAILABLE) == 503
        assert get_default_status_code(ErrorCode.SINK_UNAVAILABLE) == 503
        assert get_default_status_code(ErrorCode.BATCH_FAILED) == 500

    def test_record_decode_error_is_a_validation_error(self):
        exc = invalid_record("not base64")

        assert isinstance(exc, RecordDecodeError)
        assert isinstance(exc, PingValidationError)
        assert exc.error_code == ErrorCode.INVALID_RECORD
        assert exc.status_code == 400

    def test_validation_error(self):
        exc = validation_error("lat missing", details={"field": "lat"})

        assert exc.error_code == ErrorCode.VALIDATION_ERROR
        assert exc.details == {"field": "lat"}

    def test_cache_error_carries_operation(self):
        exc = cache_unavailable("boom", operation="get", user_id="abc")

        assert isinstance(exc, CacheError)
        assert exc.status_code == 503
        assert exc.details["operation"] == "get"
        assert exc.details["user_id"] == "abc"

    def test_forward_error_carries_attempts_and_user(self):
        event = MagicMock(user_id="abc")
        exc = sink_unavailable("down", event=event, attempts=3)

        assert isinstance(exc, ForwardError)
        assert exc.event is event
        assert exc.attempts == 3
        assert exc.details == {"attempts": 3, "user_id": "abc"}

    def test_batch_error_carries_checkpoint(self):
        exc = batch_failed("aborted", sequence_number="17", processed=4)

        assert isinstance(exc, BatchError)
        assert exc.status_code == 500
        assert exc.to_dict() == {
            "error_code": "BATCH_FAILED",
            "message": "aborted",
            "details": {"sequence_number": "17", "processed": 4},
        }


class TestHandleAppException:
    """Tests for the handle_app_exception handler."""

    @pytest.mark.asyncio
    async def test_includes_all_fields(self):
        exc = batch_failed("Location cache failure", sequence_number="9", processed=2)

        response = await handle_app_exception(make_request(), exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 500
        data = body_of(response)
        assert data["error_code"] == "BATCH_FAILED"
        assert data["message"] == "Location cache failure"
        assert data["details"] == {"sequence_number": "9", "processed": 2}
        assert data["request_id"] == "test-request-id"

    @pytest.mark.asyncio
    async def test_uses_exception_status_code(self):
        exc = AppException(
            error_code=ErrorCode.INVALID_REQUEST,
            message="Bad envelope",
            status_code=422,
        )

        response = await handle_app_exception(make_request(), exc)

        assert response.status_code == 422


class TestHandleRequestValidationError:

    @pytest.mark.asyncio
    async def test_renders_invalid_request(self):
        exc = RequestValidationError([
            {"loc": ("body", "Records"), "msg": "Field required", "type": "missing"}
        ])

        response = await handle_request_validation_error(make_request(), exc)

        assert response.status_code == 400
        data = body_of(response)
        assert data["error_code"] == "INVALID_REQUEST"
        assert data["details"]["validation_errors"] == [
            {"loc": ["body", "Records"], "msg": "Field required"}
        ]


class TestHandleUnexpectedException:
    """Tests for the handle_unexpected_exception handler."""

    @pytest.mark.asyncio
    async def test_hides_internal_details(self):
        exc = RuntimeError("redis://:password@cache.internal:6379/0 refused")

        response = await handle_unexpected_exception(make_request(), exc)

        assert response.status_code == 500
        data = body_of(response)
        assert "password" not in data["message"]
        assert data["error_code"] == "INTERNAL_ERROR"
        assert "unexpected error" in data["message"].lower()
        assert data["request_id"] == "test-request-id"
        assert "details" not in data


class TestRegisterExceptionHandlers:

    def test_register_exception_handlers_adds_handlers(self):
        mock_app = MagicMock()

        register_exception_handlers(mock_app)

        exception_types = [call[0][0] for call in mock_app.add_exception_handler.call_args_list]
        assert exception_types == [AppException, RequestValidationError, Exception]
