# userapi/core/config.py
from __future__ import annotations

import secrets
import warnings
from typing import Annotated, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_EXCLUDED_PATHS = [
    "/health",
    "/healthcheck",
    "/health-check",
    "/metrics",
    "/api-docs",
    "/swagger",
    "/openapi.json",
]


class Settings(BaseSettings):
    """
    Application settings, loaded from environment variables and/or .env file.
    """

    # Environment settings
    APP_NAME: str = "Users Observability API"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Security / auth
    SECRET_KEY: str = Field(default="", repr=False)
    SECRET_KEY_AUTO_GENERATED: bool = False
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN: str = "1h"
    JWT_ISSUER: Optional[str] = None
    CORS_ALLOW_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Comma-delimited list of allowed origins",
    )

    # Database settings
    DATABASE_URL: Optional[str] = None
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = Field(default="password", repr=False)
    POSTGRES_DB: str = "users"
    POSTGRES_SERVER: str = "db"
    POSTGRES_PORT: int = 5432
    DB_AUTO_CREATE: bool = True

    # Demo endpoints
    SLOW_QUERY_DELAY_MS: int = 700

    # Metrics endpoint credentials (HTTP Basic)
    METRICS_USERNAME: Optional[str] = None
    METRICS_PASSWORD: Optional[str] = Field(default=None, repr=False)

    # Paths never measured nor traced
    MONITORING_EXCLUDED_PATHS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_PATHS),
        description="Comma-delimited list of path prefixes",
    )

    # Observability settings
    SENTRY_DSN: Optional[str] = None
    TRACING_ENABLED: bool = False
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4318/v1/traces"
    TRACING_SAMPLE_RATIO: float = 1.0
    SERVICE_NAME: Optional[str] = None

    @property
    def database_url(self) -> str:
        """Explicit DATABASE_URL, or a Postgres URL built from components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def is_development(self) -> bool:
        return (self.APP_ENV or "").lower() in ("development", "dev", "local")

    @field_validator("CORS_ALLOW_ORIGINS", "MONITORING_EXCLUDED_PATHS", mode="before")
    @classmethod
    def _split_list(cls, value: str | List[str]) -> List[str]:
        """Allow comma-separated strings for list env vars."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @model_validator(mode="after")
    def _ensure_secret_key(self) -> "Settings":
        """Guarantee SECRET_KEY is present in non-development environments."""
        secret = (self.SECRET_KEY or "").strip()
        environment = (self.APP_ENV or "development").lower()

        if not secret or secret.lower() == "change-me":
            if environment in {"development", "test", "testing"}:
                # Generate an ephemeral key for local dev/tests and warn loudly.
                generated = secrets.token_urlsafe(48)
                self.SECRET_KEY = generated
                self.SECRET_KEY_AUTO_GENERATED = True
                warnings.warn(
                    (
                        "SECRET_KEY was not provided; generated ephemeral key for "
                        f"{environment} environment. "
                        "Do not use this configuration in production."
                    ),
                    RuntimeWarning,
                )
            else:
                raise ValueError(
                    (
                        "SECRET_KEY must be set for secure operation. "
                        "Set SECRET_KEY in the environment or .env file before "
                        "starting the service."
                    )
                )
        return self

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
