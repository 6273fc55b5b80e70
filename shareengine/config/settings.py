"""
Configuration Management for the Share Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which knobs exist (retry budgets, timeouts,
sanity bounds) and ensures they are validated at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PersistenceSettings(BaseSettings):
    """Retry behaviour around the persistence boundary."""

    model_config = SettingsConfigDict(
        env_prefix="PERSISTENCE_",
        extra="ignore"
    )

    conflict_retry_attempts: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Attempts at a read-modify-write before surfacing a conflict"
    )
    transient_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts at a storage call that timed out"
    )
    transient_backoff_min_seconds: float = Field(
        default=0.05,
        ge=0.0,
        description="First backoff delay after a storage timeout"
    )
    transient_backoff_max_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Upper bound on the backoff delay"
    )

    @model_validator(mode='after')
    def validate_backoff(self) -> 'PersistenceSettings':
        if self.transient_backoff_max_seconds < self.transient_backoff_min_seconds:
            raise ValueError("Backoff max cannot be below backoff min")
        return self


class NotificationSettings(BaseSettings):
    """Notification dispatch configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Send notifications at all"
    )
    delivery_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Give up on a single delivery after this long"
    )


class EngineSettings(BaseSettings):
    """
    Main engine settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sanity bounds
    max_participants: int = Field(
        default=50,
        ge=1,
        description="Largest explicit participant list accepted"
    )
    max_transaction_amount: Decimal = Field(
        default=Decimal("1000000000.00"),
        gt=0,
        description="Largest transaction amount accepted"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access. Tests build one with
    explicit sub-settings instead of reading the environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    engine: EngineSettings = Field(default_factory=EngineSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get engine settings (cached).

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

    for name, settings_cls in (
        ("engine", EngineSettings),
        ("persistence", PersistenceSettings),
        ("notifications", NotificationSettings),
    ):
        try:
            settings_cls()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
