"""
Configuration Management for Finance Sync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunables of the sync layer are centralized here.
Cache TTL, retry budget and chaos parameters are process-wide constants,
not user-facing flags. Only the chaos on/off toggle is user-controlled,
and that lives in persistent storage, not in settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SyncSettings(BaseSettings):
    """Cache, retry and fetch configuration for the sync layer."""
    
    model_config = SettingsConfigDict(
        env_prefix="FINANCE_SYNC_",
        extra="ignore"
    )
    
    cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="How long a fetched collection stays fresh"
    )
    retry_count: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries after the first attempt (normal mode)"
    )
    chaos_retry_count: int = Field(
        default=4,
        ge=0,
        le=10,
        description="Retries after the first attempt while chaos mode is on"
    )
    retry_base_delay_seconds: float = Field(
        default=0.25,
        ge=0,
        description="Backoff delay before the first retry"
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the delay after each retry"
    )
    retry_jitter: bool = Field(
        default=True,
        description="Randomize each backoff delay within [0.5x, 1.5x]"
    )
    list_sort_key: str = Field(
        default="-updated_date",
        description="Sort key passed to every entity list() call"
    )
    list_limit: int = Field(
        default=10000,
        ge=1,
        description="Record limit passed to every entity list() call"
    )
    auto_refresh: bool = Field(
        default=True,
        description="Start the staleness monitor after the first full load"
    )


class ChaosSettings(BaseSettings):
    """
    Chaos injection parameters.
    
    These are test parameters, not a production SLA. They only take
    effect while the persisted chaos flag is on.
    """
    
    model_config = SettingsConfigDict(
        env_prefix="FINANCE_SYNC_CHAOS_",
        extra="ignore"
    )
    
    flag_key: str = Field(
        default="finance-sync:chaos-mode",
        description="Storage key holding the persisted chaos toggle"
    )
    min_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Lower bound of the injected latency"
    )
    max_delay_seconds: float = Field(
        default=2.5,
        ge=0,
        description="Upper bound of the injected latency"
    )
    failure_probability: float = Field(
        default=0.30,
        ge=0.0,
        le=1.0,
        description="Chance of a simulated network failure per attempt"
    )
    silent_empty_probability: float = Field(
        default=0.20,
        ge=0.0,
        le=1.0,
        description="Chance of silently returning an empty collection"
    )
    
    @model_validator(mode="after")
    def check_delay_range(self) -> "ChaosSettings":
        if self.max_delay_seconds < self.min_delay_seconds:
            raise ValueError("max_delay_seconds cannot be below min_delay_seconds")
        return self


class StorageSettings(BaseSettings):
    """Persistent snapshot storage configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="FINANCE_SYNC_STORAGE_",
        extra="ignore"
    )
    
    backend: Literal["memory", "file"] = Field(
        default="memory",
        description="Key-value backend used for snapshots and the chaos flag"
    )
    directory: Optional[str] = Field(
        default=None,
        description="Directory for the file backend"
    )
    snapshot_prefix: str = Field(
        default="finance-sync:snapshot:",
        min_length=1,
        description="Key prefix for per-entity snapshots"
    )
    
    @field_validator("directory")
    @classmethod
    def expand_directory(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ so env values like ~/.finance-sync work."""
        if v is None:
            return v
        return str(Path(v).expanduser())
    
    @model_validator(mode="after")
    def check_file_backend(self) -> "StorageSettings":
        if self.backend == "file" and not self.directory:
            raise ValueError("The file storage backend requires a directory")
        return self


class WorkerSettings(BaseSettings):
    """Background calculation channel configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="FINANCE_SYNC_WORKER_",
        extra="ignore"
    )
    
    max_workers: int = Field(
        default=1,
        ge=1,
        le=32,
        description="Threads in the shared calculation pool"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Pending calculations are dropped after this long"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.
    
    Loads configuration from environment variables and .env file.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode (forces DEBUG logging)"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )
    
    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level
    
    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level


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
    def sync(self) -> SyncSettings:
        return SyncSettings()
    
    @property
    def chaos(self) -> ChaosSettings:
        return ChaosSettings()
    
    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()
    
    @property
    def worker(self) -> WorkerSettings:
        return WorkerSettings()
    
    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).
    
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.
    
    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for each failure. Useful for startup checks.
    """
    results = {}
    settings = get_settings()
    
    for name in ("sync", "chaos", "storage", "worker", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    return results
