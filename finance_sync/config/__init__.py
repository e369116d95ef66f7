"""Configuration package."""

from finance_sync.config.settings import (
    AppSettings,
    ChaosSettings,
    Settings,
    StorageSettings,
    SyncSettings,
    WorkerSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ChaosSettings",
    "Settings",
    "StorageSettings",
    "SyncSettings",
    "WorkerSettings",
    "get_settings",
    "validate_all_settings",
]
