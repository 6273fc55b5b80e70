"""Configuration package."""

from shareengine.config.settings import (
    EngineSettings,
    NotificationSettings,
    PersistenceSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "EngineSettings",
    "NotificationSettings",
    "PersistenceSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
