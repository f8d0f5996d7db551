from __future__ import annotations

import re
from typing import Iterable, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from userapi import __version__
from userapi.core.config import Settings, settings as default_settings
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

# scheme://host[:port] of the URL the instrumentation matches against
_URL_HEAD = r"^[a-z][a-z0-9+.-]*://[^/]+"


def _url_pattern(prefix: str) -> str:
    if prefix == "/":
        return rf"{_URL_HEAD}/?([?#].*)?$"
    return rf"{_URL_HEAD}{re.escape(prefix)}(/[^?#]*)?([?#].*)?$"


def excluded_urls_pattern(prefixes: Iterable[str]) -> str:
    """
    Comma-separated regexes understood by the FastAPI instrumentation.

    The instrumentation searches the full URL (``http://host/path``), so each
    pattern is anchored right after the host. ``/health`` then skips
    ``/health`` and ``/health/live`` but not ``/reports/health`` or
    ``/healthz``, matching ``ExclusionSet.is_excluded``.
    """
    return ",".join(_url_pattern(prefix) for prefix in prefixes)


def instrument_app(
    app, provider: Optional[TracerProvider], excluded_paths: Iterable[str] = ()
) -> None:
    """Instrument ``app`` so excluded paths never open a server span."""
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=provider,
        excluded_urls=excluded_urls_pattern(excluded_paths) or None,
    )


def setup_tracing(
    app=None,
    config: Optional[Settings] = None,
    excluded_paths: Iterable[str] = (),
) -> Optional[TracerProvider]:
    """
    Initialize OpenTelemetry tracing if enabled via settings.

    Returns tracer provider (or None) to keep a handle for shutdown.
    """
    config = config or default_settings
    if not config.TRACING_ENABLED:
        logger.info("Tracing disabled")
        return None

    try:
        resource = Resource.create(
            {
                "service.name": config.SERVICE_NAME or config.APP_NAME,
                "service.version": __version__,
                "deployment.environment": config.APP_ENV,
            }
        )
        provider = TracerProvider(
            resource=resource,
            sampler=ParentBased(TraceIdRatioBased(config.TRACING_SAMPLE_RATIO)),
        )

        endpoint = config.OTEL_EXPORTER_OTLP_ENDPOINT
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint))
        )
        trace.set_tracer_provider(provider)

        if app is not None:
            instrument_app(app, provider, excluded_paths)

        logger.info("OpenTelemetry tracing initialized", endpoint=endpoint)
        return provider
    except Exception as e:
        logger.error("Failed to initialize tracing", error=str(e))
        return None


def shutdown_tracing(provider: Optional[TracerProvider]) -> None:
    if provider is None:
        return
    try:
        provider.shutdown()
        logger.info("OpenTelemetry tracing shut down")
    except Exception as e:
        logger.error("Failed to shut down tracing", error=str(e))
