from __future__ import annotations

import time
from typing import Optional

from prometheus_client import Counter, Histogram

from userapi.monitoring.paths import ExclusionSet, RequestDescriptor
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

# --- HTTP Metrics ---

# Counter for every monitored request.
# Labels:
# - method: HTTP method (e.g. "GET").
# - path: The normalized route template (e.g. "/users/:id").
# - statusCode: The response status code as sent to the client.
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "statusCode"],
)

# Histogram of request durations, same labels as the counter.
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path", "statusCode"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 2, 5],
)

# --- Application Metrics ---

# Counter for domain events (e.g. "user_created", "login").
# Labels:
# - event: The event name.
# - status: "success" or "failure".
APP_EVENTS_TOTAL = Counter(
    "app_events_total",
    "Total number of application events",
    ["event", "status"],
)

# Counter for application faults surfaced to the error handler.
# Labels:
# - source: Where the error was observed (e.g. "http").
# - errorType: Exception class name.
APP_ERRORS_TOTAL = Counter(
    "app_errors_total",
    "Total number of application errors",
    ["source", "errorType"],
)

DEFAULT_ERROR_STATUS = 500


def status_code_for_error(error: BaseException) -> int:
    """Declared HTTP error status (4xx/5xx) of an error, or 500 when it has none."""
    status = getattr(error, "status_code", None)
    try:
        status = int(status)
    except (TypeError, ValueError):
        return DEFAULT_ERROR_STATUS
    return status if 400 <= status <= 599 else DEFAULT_ERROR_STATUS


def record_app_event(event: str, status: str = "success") -> None:
    try:
        APP_EVENTS_TOTAL.labels(event=event, status=status).inc()
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to record app event", event=event, error=str(e))


def record_app_error(source: str, error: BaseException) -> None:
    try:
        APP_ERRORS_TOTAL.labels(source=source, errorType=type(error).__name__).inc()
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to record app error", source=source, error=str(e))


class MetricsRecorder:
    """
    Records request count and duration for every non-excluded request.

    Recording is best-effort: a labeling or backend failure is logged and
    swallowed so the request path never breaks because of metrics.
    """

    def __init__(
        self,
        exclusions: ExclusionSet,
        requests_total: Optional[Counter] = None,
        request_duration: Optional[Histogram] = None,
    ) -> None:
        self.exclusions = exclusions
        self.requests_total = (
            requests_total if requests_total is not None else HTTP_REQUESTS_TOTAL
        )
        self.request_duration = (
            request_duration
            if request_duration is not None
            else HTTP_REQUEST_DURATION_SECONDS
        )

    def on_request_start(self) -> float:
        return time.perf_counter()

    def on_request_success(
        self, descriptor: RequestDescriptor, status_code: int, start_marker: float
    ) -> None:
        self._record(descriptor, status_code, start_marker)

    def on_request_error(
        self,
        descriptor: RequestDescriptor,
        error: BaseException,
        start_marker: float,
        status_code: Optional[int] = None,
    ) -> None:
        """
        Record a failed request. ``status_code`` is the status actually sent,
        when the caller knows it; otherwise the error's declared status.
        """
        if status_code is None:
            status_code = status_code_for_error(error)
        self._record(descriptor, status_code, start_marker)

    def _record(
        self, descriptor: RequestDescriptor, status_code: int, start_marker: float
    ) -> None:
        elapsed = max(0.0, time.perf_counter() - start_marker)
        try:
            if self.exclusions.is_excluded(descriptor.normalized_path):
                return
            status = int(status_code)
            if not 100 <= status <= 599:
                status = DEFAULT_ERROR_STATUS
            labels = {
                "method": descriptor.method,
                "path": descriptor.label_path,
                "statusCode": str(status),
            }
            self.requests_total.labels(**labels).inc()
            self.request_duration.labels(**labels).observe(elapsed)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "Failed to record request metrics",
                method=descriptor.method,
                path=descriptor.normalized_path,
                error=str(e),
            )
