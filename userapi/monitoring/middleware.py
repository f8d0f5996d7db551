from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from userapi.monitoring.metrics.http_metrics import MetricsRecorder
from userapi.monitoring.paths import ExclusionSet, describe_request
from userapi.monitoring.tracing.correlation import TraceCorrelator
from userapi.utils.error_handler import ErrorResponder


@dataclass
class ObservabilityPipeline:
    """The collaborators run around every request, wired once at startup."""

    exclusions: ExclusionSet
    metrics: MetricsRecorder
    correlator: TraceCorrelator
    responder: ErrorResponder

    @classmethod
    def from_paths(cls, excluded_paths: Iterable[str]) -> "ObservabilityPipeline":
        exclusions = ExclusionSet(excluded_paths)
        correlator = TraceCorrelator(exclusions)
        return cls(
            exclusions=exclusions,
            metrics=MetricsRecorder(exclusions),
            correlator=correlator,
            responder=ErrorResponder(exclusions, correlator),
        )


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Wraps each request with metrics recording, trace correlation and the
    last-resort error responder.

    Errors that declare an HTTP status are turned into responses by the
    exception handlers inside the app and show up here as 4xx/5xx responses.
    Anything else propagates out of ``call_next`` and is answered here, after
    the span has been annotated and before the response leaves the process.
    """

    def __init__(self, app, pipeline: ObservabilityPipeline):
        super().__init__(app)
        self.pipeline = pipeline

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        pipeline = self.pipeline
        start = pipeline.metrics.on_request_start()
        try:
            response = await call_next(request)
        except Exception as exc:
            response = pipeline.responder.handle(request, exc)
            descriptor = describe_request(request)
            pipeline.metrics.on_request_error(
                descriptor, exc, start, status_code=response.status_code
            )
            if not pipeline.exclusions.is_excluded(descriptor.normalized_path):
                pipeline.correlator.attach_trace_header(response)
            return response

        descriptor = describe_request(request)
        pipeline.metrics.on_request_success(descriptor, response.status_code, start)
        pipeline.correlator.on_request_success(descriptor, response)
        return response
