"""
Centralized error classification and response construction.

Any error escaping a request handler ends up here. Errors are split into two
classes:

- HTTP_EXPECTED: the error declares a 4xx status (validation, not found,
  conflict, unauthorized, forbidden). Logged at debug/info/warning and
  recorded as a span event.
- APPLICATION_FAULT: no declared status, or a declared 5xx. Logged at error
  level with the stack trace, marked as an error on the active span and
  reported to Sentry.

Both classes produce the same JSON body shape. Stack traces never reach the
client.
"""

import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from userapi.monitoring.metrics.http_metrics import (
    record_app_error,
    status_code_for_error,
)
from userapi.monitoring.paths import ExclusionSet, normalize_path, route_template_for
from userapi.monitoring.tracing.correlation import TraceCorrelator
from userapi.utils.exceptions import HttpError, Message
from userapi.utils.logger import add_request_context, get_logger

logger = get_logger(__name__)

FALLBACK_MESSAGE = "Internal server error"
FALLBACK_BODY = {"statusCode": 500, "message": "Internal error"}

STATUS_NAMES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


class ErrorKind(str, Enum):
    """The two error classes handled by the responder"""

    HTTP_EXPECTED = "http_expected"  # Declared 4xx, a normal outcome
    APPLICATION_FAULT = "application_fault"  # 5xx or undeclared, alerts on-call


@dataclass(frozen=True)
class ErrorRecord:
    """Everything known about one failed request; never persisted"""

    kind: ErrorKind
    status_code: int
    message: Message
    error_type: str
    path: str
    timestamp: datetime
    stack_trace: Optional[str] = None
    details: Any = None

    @property
    def is_fault(self) -> bool:
        return self.kind is ErrorKind.APPLICATION_FAULT


def declares_http_status(error: BaseException) -> bool:
    return isinstance(
        error, (HttpError, StarletteHTTPException, RequestValidationError)
    )


def status_name(status_code: int) -> str:
    return STATUS_NAMES.get(status_code, "Error")


def validation_messages(error: RequestValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = [str(part) for part in item.get("loc", ()) if part != "body"]
        field = ".".join(location)
        messages.append(f"{field}: {item.get('msg')}" if field else str(item.get("msg")))
    return messages


def error_message(error: BaseException) -> Message:
    """The error's own message, validation messages, or a generic fallback."""
    if isinstance(error, RequestValidationError):
        return validation_messages(error) or "Validation failed"
    if isinstance(error, HttpError):
        return error.message or FALLBACK_MESSAGE
    if isinstance(error, StarletteHTTPException):
        detail = error.detail
        if isinstance(detail, dict) and "message" in detail:
            detail = detail["message"]
        if isinstance(detail, list):
            return [str(item) for item in detail]
        return str(detail) if detail else status_name(error.status_code)
    return str(error) or FALLBACK_MESSAGE


def classify_error(error: BaseException, path: str) -> ErrorRecord:
    """Build the ErrorRecord for an error raised while serving ``path``."""
    if isinstance(error, RequestValidationError):
        status = 400
    elif declares_http_status(error):
        status = status_code_for_error(error)
    else:
        status = 500

    kind = (
        ErrorKind.HTTP_EXPECTED
        if declares_http_status(error) and 400 <= status < 500
        else ErrorKind.APPLICATION_FAULT
    )

    stack_trace = None
    if kind is ErrorKind.APPLICATION_FAULT and error.__traceback__ is not None:
        stack_trace = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )

    return ErrorRecord(
        kind=kind,
        status_code=status,
        message=error_message(error),
        error_type=type(error).__name__,
        path=path,
        timestamp=datetime.now(timezone.utc),
        stack_trace=stack_trace,
        details=getattr(error, "details", None),
    )


def build_error_body(record: ErrorRecord) -> Dict[str, Any]:
    return {
        "statusCode": record.status_code,
        "timestamp": record.timestamp.isoformat(timespec="milliseconds").replace(
            "+00:00", "Z"
        ),
        "path": record.path,
        "message": record.message,
        "error": status_name(record.status_code),
    }


def _log_message(record: ErrorRecord) -> str:
    if isinstance(record.message, list):
        return ", ".join(record.message)
    return record.message


class ErrorResponder:
    """Turns any request error into a logged, traced, uniform JSON response"""

    def __init__(self, exclusions: ExclusionSet, correlator: TraceCorrelator):
        self.exclusions = exclusions
        self.correlator = correlator

    def handle(self, request: Request, error: BaseException) -> JSONResponse:
        """Classify, log, annotate the span and respond. Never raises."""
        try:
            path = request.url.path
            if request.url.query:
                path = f"{path}?{request.url.query}"
            record = classify_error(error, path)
            traced = not self.exclusions.is_excluded(
                normalize_path(request.url.path, route_template_for(request))
            )

            if record.is_fault:
                self._handle_fault(request, error, record, traced)
            else:
                self._handle_expected(request, error, record, traced)

            return JSONResponse(
                status_code=record.status_code,
                content=build_error_body(record),
                headers=getattr(error, "headers", None),
            )
        except Exception as e:  # noqa: BLE001
            try:
                logger.error(
                    "Failed to build error response",
                    original_error=type(error).__name__,
                    error=str(e),
                )
            except Exception:  # noqa: BLE001
                pass
            return JSONResponse(status_code=500, content=dict(FALLBACK_BODY))

    def _handle_fault(
        self,
        request: Request,
        error: BaseException,
        record: ErrorRecord,
        traced: bool,
    ) -> None:
        if traced:
            self.correlator.on_request_error(
                error, path=record.path, status_code=record.status_code
            )
        logger.error(
            "Application error",
            status_code=record.status_code,
            error_type=record.error_type,
            error_message=_log_message(record),
            stack_trace=record.stack_trace,
            **add_request_context(request),
        )
        record_app_error("http", error)
        sentry_sdk.capture_exception(error)

    def _handle_expected(
        self,
        request: Request,
        error: BaseException,
        record: ErrorRecord,
        traced: bool,
    ) -> None:
        if traced:
            self.correlator.record_http_exception(
                error, path=record.path, status_code=record.status_code
            )

        log_data = {
            "status_code": record.status_code,
            "error_type": record.error_type,
            "error_message": _log_message(record),
            **add_request_context(request),
        }
        if record.status_code == 429:
            logger.warning("Rate limit exceeded", **log_data)
        elif record.status_code in (401, 403):
            logger.warning("Access denied", **log_data)
        elif record.status_code == 404:
            logger.debug("Resource not found", **log_data)
        else:
            logger.info("HTTP exception", **log_data)

    def install(self, app: FastAPI) -> None:
        """Register this responder for every error that declares an HTTP status."""

        async def _handler(request: Request, exc: Exception) -> JSONResponse:
            return self.handle(request, exc)

        app.add_exception_handler(HttpError, _handler)
        app.add_exception_handler(StarletteHTTPException, _handler)
        app.add_exception_handler(RequestValidationError, _handler)
