"""
Application configuration.

Loads settings from environment variables and .env file.
All configuration is centralized here, no scattered magic strings.
"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment.

    Attributes:
        project_name: Display name for the API.
        version: Current API version string.
        environment: Deployment environment. Only ``development`` exposes
            error details and raw messages of unexpected errors.
        debug: Enable interactive API docs. Must be False in production.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        database_url: Direct Postgres URL.
        database_pool_url: Pooler URL, preferred over ``database_url``.
        db_pool_max: Maximum pooled connections.
        db_pool_timeout_seconds: Wait for a free connection.
        db_pool_recycle_seconds: Recycle idle connections after this age.
        health_check_max_retries: Attempts made by the health check.
        health_check_base_delay_seconds: Health check backoff base.
        db_retry_*: Transient-failure retry policy for startup probes.
        rate_limit_*: slowapi limit strings per endpoint class.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    project_name: str = "MasteryMap"
    version: str = "0.1.0"
    environment: Literal["development", "production", "test"] = "production"
    debug: bool = False
    log_level: str = "INFO"

    database_url: Optional[str] = None
    database_pool_url: Optional[str] = None
    db_pool_max: int = 20
    db_pool_timeout_seconds: float = 10.0
    db_pool_recycle_seconds: int = 1800

    health_check_max_retries: int = 3
    health_check_base_delay_seconds: float = 1.0

    db_retry_max_retries: int = 4
    db_retry_base_delay_seconds: float = 0.4
    db_retry_max_delay_seconds: float = 4.0

    rate_limit_enabled: bool = True
    rate_limit_api: str = "100/15minutes"
    rate_limit_ai: str = "20/hour"
    rate_limit_auth: str = "5/15minutes"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def has_database(self) -> bool:
        return bool(self.database_pool_url or self.database_url)

    def get_database_url(self) -> str:
        """Return the effective database URL.

        Priority:
        1. ``DATABASE_POOL_URL`` (connection pooler endpoint)
        2. ``DATABASE_URL``

        Raises:
            ValueError: If neither is configured.
        """
        url = self.database_pool_url or self.database_url
        if not url:
            raise ValueError(
                "DATABASE_URL must be set. Did you forget to provision a database?"
            )
        return url


settings = Settings()
