"""Application configuration using Pydantic settings."""

import logging
import re
from datetime import date
from typing import Any, Self

from pydantic import Field, PostgresDsn, RedisDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "FleetBooks Reporting API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "fleetbooks"
    DATABASE_URL: PostgresDsn | None = Field(default=None, validate_default=True)
    AUTO_CREATE_TABLES: bool = False  # Dev only: create tables on startup
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_ECHO: bool = False

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: str | None, info: Any) -> str:
        """Build database URL from components if not provided."""
        if isinstance(v, str):
            return v

        data = info.data
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=data.get("POSTGRES_USER"),
                password=data.get("POSTGRES_PASSWORD"),
                host=data.get("POSTGRES_SERVER"),
                port=data.get("POSTGRES_PORT"),
                path=f"{data.get('POSTGRES_DB') or ''}",
            ),
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_URL: RedisDsn | None = Field(default=None, validate_default=True)
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 5.0

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def assemble_redis_connection(cls, v: str | None, info: Any) -> str:
        """Build Redis URL from components if not provided."""
        if isinstance(v, str):
            return v

        data = info.data
        password_part = f":{data.get('REDIS_PASSWORD')}@" if data.get("REDIS_PASSWORD") else ""
        return f"redis://{password_part}{data.get('REDIS_HOST')}:{data.get('REDIS_PORT')}/{data.get('REDIS_DB')}"

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",  # Back-office frontend (local development)
        "http://localhost:8000",
    ]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["GET", "POST", "PATCH"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 120

    # Reporting
    REPORT_CACHE_TTL_SECONDS: int = 300
    REPORT_CACHE_PREFIX: str = "report"
    DEFAULT_CURRENCY: str = "AED"
    DEFAULT_COMMISSION_PERCENT: float = 20.0  # Only used when the caller supplies none
    EARLIEST_DATA_DATE: date | None = None  # Comparison periods before this are empty, not errors

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True  # False renders coloured console output for local work

    # Monitoring
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 1.0

    @model_validator(mode="after")
    def validate_reporting_defaults(self) -> Self:
        """Reject reporting defaults that would produce unauditable numbers."""
        if not 0 <= self.DEFAULT_COMMISSION_PERCENT <= 100:
            raise ValueError("DEFAULT_COMMISSION_PERCENT must be between 0 and 100")

        if not _CURRENCY_RE.match(self.DEFAULT_CURRENCY):
            raise ValueError(
                f"DEFAULT_CURRENCY must be a 3-letter ISO code, got {self.DEFAULT_CURRENCY!r}"
            )

        if logging.getLevelName(self.LOG_LEVEL.upper()) not in range(0, 51):
            raise ValueError(f"LOG_LEVEL is not a logging level: {self.LOG_LEVEL!r}")

        if self.REPORT_CACHE_TTL_SECONDS <= 0:
            raise ValueError("REPORT_CACHE_TTL_SECONDS must be positive")

        return self


settings = Settings()
