from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

from userapi import __version__
from userapi.api.routes import auth as auth_routes
from userapi.api.routes import health as health_routes
from userapi.api.routes import users as users_routes
from userapi.core.config import Settings, settings
from userapi.db.session import init_db
from userapi.monitoring.middleware import ObservabilityMiddleware, ObservabilityPipeline
from userapi.monitoring.tracing.opentelemetry_setup import setup_tracing, shutdown_tracing
from userapi.security.audit.access_logger import AccessLogMiddleware
from userapi.utils.logger import configure_logging, get_logger

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application with its observability pipeline.

    Collaborators (metrics recorder, trace correlator, error responder) are
    constructed here from the configuration and passed explicitly to the
    middleware and exception handlers.
    """
    config = config or settings
    pipeline = ObservabilityPipeline.from_paths(config.MONITORING_EXCLUDED_PATHS)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Users API starting up",
            app_name=config.APP_NAME,
            environment=config.APP_ENV,
            sentry_enabled=bool(config.SENTRY_DSN),
            tracing_enabled=config.TRACING_ENABLED,
        )
        if config.DB_AUTO_CREATE:
            init_db()
        logger.info(
            "Monitoring disabled for maintenance endpoints",
            excluded_paths=list(pipeline.exclusions),
        )
        yield
        shutdown_tracing(app.state.tracer_provider)

    app = FastAPI(
        title=config.APP_NAME,
        description="Users CRUD and JWT auth with Prometheus metrics, "
        "OpenTelemetry tracing and structured logging",
        version=__version__,
        docs_url="/api-docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.observability = pipeline

    # Initialize Sentry if DSN is provided
    if config.SENTRY_DSN:
        sentry_sdk.init(
            dsn=config.SENTRY_DSN,
            environment=config.APP_ENV,
            traces_sample_rate=0.1,
        )
        app.add_middleware(SentryAsgiMiddleware)
        logger.info(
            "Sentry initialized with SentryAsgiMiddleware", environment=config.APP_ENV
        )
    else:
        logger.info("Sentry not configured (SENTRY_DSN not set)")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOW_ORIGINS or ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ObservabilityMiddleware, pipeline=pipeline)
    app.add_middleware(AccessLogMiddleware)

    pipeline.responder.install(app)

    app.include_router(health_routes.router)
    app.include_router(auth_routes.router)
    app.include_router(users_routes.router)

    # Instrumentation has to wrap the app before the middleware stack is built
    app.state.tracer_provider = setup_tracing(
        app, config, excluded_paths=pipeline.exclusions
    )
    return app


app = create_app()
