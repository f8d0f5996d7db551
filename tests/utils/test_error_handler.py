"""
Tests for error classification and the uniform error response.

This module covers:
- Splitting errors into expected HTTP failures and application faults
- The JSON error body
- Log levels per status code
- Span annotation, metrics and Sentry reporting for faults
- The fallback body when building the response itself fails
"""

import json
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from userapi.monitoring.paths import ExclusionSet
from userapi.utils.error_handler import (
    FALLBACK_BODY,
    ErrorKind,
    ErrorRecord,
    ErrorResponder,
    build_error_body,
    classify_error,
)
from userapi.utils.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    HttpError,
    InternalServerError,
    NotFoundError,
    UnauthorizedError,
)


def make_request(path: str = "/users/1", query: bytes = b"") -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "query_string": query,
            "headers": [(b"user-agent", b"pytest")],
            "server": ("testserver", 80),
            "client": ("10.0.0.1", 5000),
        }
    )


def raised(error: BaseException) -> BaseException:
    try:
        raise error
    except BaseException as e:  # noqa: BLE001
        return e


@pytest.fixture
def correlator():
    return Mock()


@pytest.fixture
def responder(correlator):
    return ErrorResponder(ExclusionSet(["/health", "/metrics"]), correlator)


class TestClassifyError:
    """Test cases for classify_error"""

    @pytest.mark.parametrize(
        "error,status",
        [
            (BadRequestError(), 400),
            (UnauthorizedError(), 401),
            (ForbiddenError(), 403),
            (NotFoundError("User", 7), 404),
            (ConflictError("User", "email", "a@b.io"), 409),
            (StarletteHTTPException(status_code=405), 405),
        ],
    )
    def test_declared_client_errors_are_expected(self, error, status):
        record = classify_error(error, "/users")
        assert record.kind is ErrorKind.HTTP_EXPECTED
        assert record.status_code == status
        assert record.stack_trace is None

    def test_plain_exception_is_a_fault(self):
        record = classify_error(raised(RuntimeError("db down")), "/users")
        assert record.kind is ErrorKind.APPLICATION_FAULT
        assert record.status_code == 500
        assert record.message == "db down"
        assert record.error_type == "RuntimeError"
        assert "RuntimeError: db down" in record.stack_trace

    def test_declared_5xx_is_a_fault(self):
        record = classify_error(InternalServerError("Failed to list users"), "/users")
        assert record.is_fault
        assert record.status_code == 500
        assert record.message == "Failed to list users"

    def test_declared_non_error_status_becomes_500(self):
        record = classify_error(HttpError("odd", status_code=302), "/users")
        assert record.status_code == 500
        assert record.is_fault

    def test_validation_error_is_400_with_message_list(self):
        error = RequestValidationError(
            [
                {"loc": ("body", "email"), "msg": "value is not a valid email address"},
                {"loc": ("body", "password"), "msg": "String should have at least 8 characters"},
            ]
        )
        record = classify_error(error, "/users")
        assert record.kind is ErrorKind.HTTP_EXPECTED
        assert record.status_code == 400
        assert record.message == [
            "email: value is not a valid email address",
            "password: String should have at least 8 characters",
        ]

    def test_empty_message_falls_back(self):
        record = classify_error(raised(RuntimeError()), "/x")
        assert record.message == "Internal server error"

    def test_http_exception_without_detail_uses_status_name(self):
        record = classify_error(StarletteHTTPException(status_code=404), "/x")
        assert record.message == "Not Found"


class TestBuildErrorBody:
    """Test cases for the JSON error body"""

    def test_body_shape(self):
        record = ErrorRecord(
            kind=ErrorKind.HTTP_EXPECTED,
            status_code=404,
            message="User with identifier 5 not found",
            error_type="NotFoundError",
            path="/users/5",
            timestamp=datetime(2024, 3, 1, 12, 30, 45, 123456, tzinfo=timezone.utc),
        )
        assert build_error_body(record) == {
            "statusCode": 404,
            "timestamp": "2024-03-01T12:30:45.123Z",
            "path": "/users/5",
            "message": "User with identifier 5 not found",
            "error": "Not Found",
        }

    def test_unknown_status_name(self):
        record = classify_error(HttpError("teapot", status_code=418), "/tea")
        assert build_error_body(record)["error"] == "Error"


class TestErrorResponder:
    """Test cases for ErrorResponder.handle"""

    def _body(self, response) -> dict:
        return json.loads(response.body)

    @pytest.mark.parametrize(
        "error,level",
        [
            (UnauthorizedError(), "warning"),
            (ForbiddenError(), "warning"),
            (HttpError("slow down", status_code=429), "warning"),
            (NotFoundError("User", 1), "debug"),
            (ConflictError("User", "email", "a@b.io"), "info"),
            (BadRequestError(), "info"),
        ],
    )
    def test_expected_errors_log_at_status_level(self, responder, correlator, error, level):
        with patch("userapi.utils.error_handler.logger") as logger, patch(
            "userapi.utils.error_handler.sentry_sdk"
        ) as sentry:
            response = responder.handle(make_request(), error)

        assert getattr(logger, level).call_count == 1
        logger.error.assert_not_called()
        sentry.capture_exception.assert_not_called()
        correlator.record_http_exception.assert_called_once()
        correlator.on_request_error.assert_not_called()
        assert response.status_code == error.status_code

    def test_fault_is_logged_traced_counted_and_reported(self, responder, correlator):
        error = raised(RuntimeError("database exploded"))
        with patch("userapi.utils.error_handler.logger") as logger, patch(
            "userapi.utils.error_handler.sentry_sdk"
        ) as sentry, patch("userapi.utils.error_handler.record_app_error") as counter:
            response = responder.handle(make_request("/users/9", b"full=1"), error)

        assert response.status_code == 500
        body = self._body(response)
        assert body["message"] == "database exploded"
        assert body["error"] == "Internal Server Error"
        assert body["path"] == "/users/9?full=1"
        assert "Traceback" not in response.body.decode()

        logger.error.assert_called_once()
        kwargs = logger.error.call_args.kwargs
        assert kwargs["error_type"] == "RuntimeError"
        assert "database exploded" in kwargs["stack_trace"]
        assert kwargs["client_ip"] == "10.0.0.1"
        correlator.on_request_error.assert_called_once_with(
            error, path="/users/9?full=1", status_code=500
        )
        counter.assert_called_once_with("http", error)
        sentry.capture_exception.assert_called_once_with(error)

    def test_excluded_path_is_not_traced(self, responder, correlator):
        with patch("userapi.utils.error_handler.sentry_sdk"):
            response = responder.handle(make_request("/metrics"), raised(ValueError("x")))
        assert response.status_code == 500
        correlator.on_request_error.assert_not_called()

    def test_unauthorized_keeps_authenticate_header(self, responder):
        response = responder.handle(make_request(), UnauthorizedError("Invalid credentials"))
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert self._body(response)["message"] == "Invalid credentials"

    def test_failure_while_responding_returns_fallback(self, responder):
        with patch(
            "userapi.utils.error_handler.build_error_body",
            side_effect=RuntimeError("serializer broke"),
        ), patch("userapi.utils.error_handler.logger") as logger:
            response = responder.handle(make_request(), NotFoundError("User", 1))

        assert response.status_code == 500
        assert self._body(response) == FALLBACK_BODY
        logger.error.assert_called_once()
