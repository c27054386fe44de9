import logging
import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DBConfig(BaseSettings):
    """Database connection configuration.

    ``vendor`` selects the backend (see ``dbaccess.db.factory``); the pool
    tunables are handed to the vendor's connection pool as-is.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="DB_", extra="ignore", frozen=True
    )

    vendor: str = Field(..., description="Database vendor name, matched case-insensitively")
    hostname: str = Field("localhost", description="Database server hostname")
    port: Optional[int] = Field(None, description="Database server port")
    database: str = Field(..., description="Database name, or file path for SQLite")
    username: Optional[str] = Field(None, description="Database username")
    password: Optional[str] = Field(None, description="Database user password", repr=False)

    max_clients: int = Field(10, ge=1, description="Maximum number of pooled connections")
    idle_timeout_millis: int = Field(
        10000, ge=0, description="Idle time before a pooled connection is closed; 0 disables eviction"
    )
    connection_timeout_millis: int = Field(
        0, ge=0, description="Time to wait for a connection before failing; 0 waits indefinitely"
    )

    @property
    def connection_timeout(self) -> Optional[float]:
        """Connection timeout in seconds, or ``None`` when disabled."""
        if self.connection_timeout_millis == 0:
            return None
        return self.connection_timeout_millis / 1000


class PostgresDBConfig(DBConfig):
    """PostgreSQL connection configuration."""

    vendor: str = "postgres"
    port: Optional[int] = 5432


class SQLiteDBConfig(DBConfig):
    """SQLite configuration. ``database`` is a file path or ``:memory:``."""

    vendor: str = "sqlite"
    database: str = ":memory:"


class AppSettings(BaseSettings):
    """General application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = Field(False, description="Enable debug mode for development")
    log_level: str = Field("INFO", description="Logging level")

    db: DBConfig = Field(default_factory=DBConfig)

    @property
    def log_level_value(self) -> int:
        """Return the numeric value of the log level."""
        return logging.getLevelName(self.log_level.upper())


@lru_cache
def get_settings() -> AppSettings:
    """
    Get application settings.
    If the TEST_MODE environment variable is set, it returns an in-memory SQLite
    configuration suitable for testing, otherwise loads the configuration from
    the environment and the .env file.
    """
    if os.getenv("TEST_MODE"):
        return AppSettings(
            debug=True,
            log_level="DEBUG",
            db=SQLiteDBConfig(database=":memory:"),
        )
    return AppSettings()
