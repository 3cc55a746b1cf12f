"""
Centralized settings for stepwise.

Manifesto:
    One validated, cached settings object supplies the engine defaults
    (repository backend, chunk size, retry limits, cache capacity) instead
    of each builder parsing environment variables on its own.

All fields can be set through ``STEPWISE_*`` environment variables (for
example ``STEPWISE_CHUNK_SIZE=500``) or a ``.env`` file.

Tags:
    configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepositoryBackend(str, Enum):
    """Supported job repository backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class BatchSettings(BaseSettings):
    """Engine-wide configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STEPWISE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Repository ───────────────────────────────────────────────
    repository_backend: RepositoryBackend = Field(default=RepositoryBackend.MEMORY)
    database_path: str = Field(default=":memory:", description="SQLite file path for the sqlite backend")

    # ── Chunk processing ─────────────────────────────────────────
    chunk_size: int = Field(default=10, ge=1)
    start_limit: int = Field(default=2**31 - 1, ge=1)

    # ── Retry ────────────────────────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_cache_capacity: int = Field(default=4096, ge=1)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="json or console")

    @property
    def is_sqlite(self) -> bool:
        return self.repository_backend == RepositoryBackend.SQLITE

    @property
    def json_logs(self) -> bool:
        return self.log_format.lower() == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, BatchSettings] = {}


def get_settings(*, _force_reload: bool = False) -> BatchSettings:
    """Load, validate and cache a :class:`BatchSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = BatchSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "RepositoryBackend",
    "BatchSettings",
    "get_settings",
    "clear_settings_cache",
]
