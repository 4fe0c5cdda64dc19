"""
Configuration Management for the Household Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see every tunable of the engine and
ensures all configuration is validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Attribution engine limits."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_batch_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum entries in a split or a capacity check"
    )
    attribution_history_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Default page size for attribution history"
    )


class StorageSettings(BaseSettings):
    """Unit of work isolation and retry configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long a unit of work waits for isolation"
    )
    max_transaction_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts before a conflicting unit of work is given up"
    )
    retry_wait_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Base backoff between attempts"
    )
    retry_wait_max_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Backoff ceiling between attempts"
    )


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    json_output: bool = Field(
        default=True,
        description="Render log lines as JSON (console renderer otherwise)"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("engine", "storage", "logging"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
