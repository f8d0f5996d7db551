from __future__ import annotations

import json
import traceback
from typing import Any, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode
from starlette.responses import Response

from userapi.monitoring.paths import ExclusionSet, RequestDescriptor
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

TRACE_ID_HEADER = "X-Trace-ID"


def current_span() -> Optional[Span]:
    """Return the active span, or None when nothing is being traced."""
    span = trace.get_current_span()
    if not span.get_span_context().is_valid:
        return None
    return span


def current_trace_id() -> Optional[str]:
    span = current_span()
    if span is None:
        return None
    return trace.format_trace_id(span.get_span_context().trace_id)


def _stack_of(error: BaseException) -> Optional[str]:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def _details_of(error: BaseException) -> Optional[str]:
    details = getattr(error, "details", None)
    if details is None:
        return None
    try:
        return json.dumps(details, default=str)
    except (TypeError, ValueError):
        return str(details)


class TraceCorrelator:
    """
    Correlates responses with the active OpenTelemetry trace.

    Reads the current span, copies its trace id into the ``X-Trace-ID``
    response header and annotates the span on failures. It never creates
    spans; "no active span" is a normal state and is skipped silently.
    """

    header_name = TRACE_ID_HEADER

    def __init__(self, exclusions: ExclusionSet) -> None:
        self.exclusions = exclusions

    def on_request_success(
        self, descriptor: RequestDescriptor, response: Response
    ) -> None:
        try:
            if self.exclusions.is_excluded(descriptor.normalized_path):
                return
            span = current_span()
            if span is None:
                return
            self.attach_trace_header(response, span)
            span.set_attribute("http.path", descriptor.label_path)
            span.set_attribute("http.method", descriptor.method)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to correlate trace", error=str(e))

    def attach_trace_header(
        self, response: Response, span: Optional[Span] = None
    ) -> None:
        try:
            span = span or current_span()
            if span is None:
                return
            response.headers[self.header_name] = trace.format_trace_id(
                span.get_span_context().trace_id
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to attach trace header", error=str(e))

    def on_request_error(
        self,
        error: BaseException,
        *,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        """Mark the active span as failed with the error's type, message and stack."""
        try:
            span = current_span()
            if span is None:
                return
            message = str(error) or type(error).__name__
            span.set_status(Status(StatusCode.ERROR, message))
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(error).__name__)
            span.set_attribute("error.message", message)
            if status_code is not None:
                span.set_attribute("error.status_code", int(status_code))
            if path is not None:
                span.set_attribute("error.path", path)
            stack = _stack_of(error)
            if stack:
                span.set_attribute("error.stack", stack)
            details = _details_of(error)
            if details:
                span.set_attribute("error.details", details)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to annotate span with error", error=str(e))

    def record_http_exception(
        self, error: BaseException, *, path: str, status_code: int
    ) -> None:
        """Record an expected client failure as a span event, not an error."""
        try:
            span = current_span()
            if span is None:
                return
            attributes: dict[str, Any] = {
                "exception.type": type(error).__name__,
                "exception.message": str(error) or "Unknown exception",
                "exception.status_code": int(status_code),
                "exception.path": path,
            }
            span.add_event("http.exception", attributes)
            details = _details_of(error)
            if details:
                span.add_event("exception.details", {"details": details})
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to add exception event to span", error=str(e))
