#!/usr/bin/env python3
"""
Shared pytest fixtures: in-memory SQLite database, app clients, auth helpers
and an in-memory OpenTelemetry exporter.
"""

import os
import sys
from typing import Generator

import pytest
from dotenv import load_dotenv

# Load environment variables from .env file, then pin the test configuration
load_dotenv()
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-entropy-0123456789"
os.environ["METRICS_USERNAME"] = "prometheus"
os.environ["METRICS_PASSWORD"] = "scrape-secret"
os.environ["TRACING_ENABLED"] = "false"
os.environ.pop("SENTRY_DSN", None)
os.environ["SLOW_QUERY_DELAY_MS"] = "20"

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from fastapi.testclient import TestClient  # noqa: E402
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor  # noqa: E402
from opentelemetry.sdk.trace import TracerProvider  # noqa: E402
from opentelemetry.sdk.trace.export import SimpleSpanProcessor  # noqa: E402
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (  # noqa: E402
    InMemorySpanExporter,
)
from sqlalchemy.orm import Session  # noqa: E402

from userapi.db.session import SessionLocal, init_db  # noqa: E402
from userapi.models.user import User  # noqa: E402
from userapi.monitoring.tracing.opentelemetry_setup import instrument_app  # noqa: E402

TEST_PASSWORD = "password123"


class LibraryError(Exception):
    status_code = 404


@pytest.fixture(scope="session", autouse=True)
def db_schema() -> None:
    init_db()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Yield a database session; users are wiped after every test."""
    session = SessionLocal()
    yield session
    session.rollback()
    session.query(User).delete()
    session.commit()
    session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    from userapi.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def create_user(client: TestClient):
    def _create(email: str = "john@example.com", name: str = "John Doe") -> dict:
        r = client.post(
            "/users", json={"name": name, "email": email, "password": TEST_PASSWORD}
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _create


@pytest.fixture(scope="function")
def auth_headers(client: TestClient, create_user) -> dict:
    create_user("admin@example.com", "Admin")
    r = client.post(
        "/auth/login", json={"email": "admin@example.com", "password": TEST_PASSWORD}
    )
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture(scope="function")
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture(scope="function")
def traced_app(span_exporter: InMemorySpanExporter, db_session: Session):
    """A fresh app instrumented like production, exporting to memory."""
    from userapi.main import create_app

    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    app = create_app()

    @app.get("/boom")
    def boom():
        raise RuntimeError("database exploded")

    @app.get("/lib-failure")
    def lib_failure():
        # Third-party error carrying a status attribute the app never declared
        raise LibraryError("upstream said not found")

    # Same instrumentation and exclusions as setup_tracing, with a local provider
    instrument_app(app, provider, app.state.observability.exclusions)
    yield app
    FastAPIInstrumentor.uninstrument_app(app)
    provider.shutdown()


@pytest.fixture(scope="function")
def traced_client(traced_app) -> Generator[TestClient, None, None]:
    with TestClient(traced_app) as c:
        yield c
