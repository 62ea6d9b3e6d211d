# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for CourseDesk.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from coursedesk.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.ledger.code_prefix)
    'INS'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store configuration.

    PostgreSQL (asyncpg) in deployed environments. A full ``DB_URL``
    overrides the individual components, which is how local runs and
    tests point the service at ``sqlite+aiosqlite``.

    Attributes:
        url_override: Complete async SQLAlchemy URL, if set.
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        name: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        statement_timeout_ms: Server-side statement timeout.
        lock_timeout_ms: Server-side row lock wait timeout.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
        populate_by_name=True,
    )

    url_override: str | None = Field(default=None, validation_alias="DB_URL")
    user: str = "coursedesk"
    password: SecretStr = SecretStr("coursedesk_password")
    host: str = "localhost"
    port: int = 5432
    name: str = "coursedesk"
    pool_size: int = 10
    max_overflow: int = 20
    statement_timeout_ms: int = 15000
    lock_timeout_ms: int = 5000

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.name}"

    @property
    def sync_url(self) -> str:
        """Build the sync database URL for migrations."""
        if self.url_override:
            return self.url_override.replace("+asyncpg", "").replace("+aiosqlite", "")
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.name}"

    @property
    def is_sqlite(self) -> bool:
        """Check whether the configured store is SQLite."""
        return self.url.startswith("sqlite")


class JWTSettings(BaseSettings):
    """JWT authentication configuration.

    Attributes:
        secret_key: Secret key for signing tokens.
        algorithm: JWT signing algorithm.
        access_token_expire_minutes: Access token expiration time.
        cookie_name: Cookie that may carry the session token.
        leeway_seconds: Allowed clock skew with the token issuer.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret_key: SecretStr = SecretStr("change-this-in-production")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(
        default=60,
        validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    cookie_name: str = "auth-token"
    leeway_seconds: int = Field(default=30, ge=0)


class LedgerSettings(BaseSettings):
    """Enrollment ledger configuration.

    Attributes:
        code_prefix: Prefix of enrollment reference codes (PREFIX-YYYY-NNNNN).
        code_timezone: Time zone whose calendar year scopes the sequence.
        code_allocation_attempts: Bound on code collisions before giving up.
        seat_claim_attempts: Bound on seat claims racing a concurrent removal.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore",
    )

    code_prefix: str = Field(default="INS", pattern=r"^[A-Z][A-Z0-9]{0,9}$")
    code_timezone: str = "UTC"
    code_allocation_attempts: int = Field(default=5, ge=1)
    seat_claim_attempts: int = Field(default=3, ge=1)


class AuditSettings(BaseSettings):
    """Audit trail configuration.

    Attributes:
        enabled: Whether audit records are persisted.
        retention_days: Age after which audit logs may be purged.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUDIT_",
        extra="ignore",
    )

    enabled: bool = True
    retention_days: int = 90


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Number of worker processes.
        reload: Whether to enable auto-reload.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 2
    reload: bool = False


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Relational store settings.
        jwt: JWT authentication settings.
        ledger: Enrollment ledger settings.
        audit: Audit trail settings.
        cors: CORS settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Seat claims and code counters rely on row locks, which SQLite
        does not provide across connections, so production needs PostgreSQL.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment != "production":
            return self

        if self.jwt.secret_key.get_secret_value() == "change-this-in-production":
            raise ValueError(
                "JWT secret key must be changed from default in production. "
                "Set JWT_SECRET_KEY environment variable."
            )
        if self.database.is_sqlite:
            raise ValueError("SQLite is not supported in production. Set DB_URL to a PostgreSQL URL.")
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
