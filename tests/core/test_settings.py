"""Tests for core.settings module.

Covers:
- BatchSettings defaults
- STEPWISE_* environment overrides
- Validation
- get_settings caching
"""

import pytest
from pydantic import ValidationError

from stepwise.core.settings import (
    BatchSettings,
    RepositoryBackend,
    clear_settings_cache,
    get_settings,
)


class TestBatchSettingsDefaults:
    def test_default_backend_is_memory(self):
        s = BatchSettings()
        assert s.repository_backend == RepositoryBackend.MEMORY
        assert s.is_sqlite is False

    def test_default_chunk_size(self):
        assert BatchSettings().chunk_size == 10

    def test_default_retry(self):
        s = BatchSettings()
        assert s.retry_max_attempts == 3
        assert s.retry_cache_capacity == 4096

    def test_default_logging(self):
        s = BatchSettings()
        assert s.log_level == "INFO"
        assert s.json_logs is False


class TestBatchSettingsEnvOverride:
    def test_backend_from_env(self, monkeypatch):
        monkeypatch.setenv("STEPWISE_REPOSITORY_BACKEND", "sqlite")
        s = BatchSettings()
        assert s.repository_backend == RepositoryBackend.SQLITE
        assert s.is_sqlite is True

    def test_chunk_size_from_env(self, monkeypatch):
        monkeypatch.setenv("STEPWISE_CHUNK_SIZE", "500")
        assert BatchSettings().chunk_size == 500

    def test_json_logs_from_env(self, monkeypatch):
        monkeypatch.setenv("STEPWISE_LOG_FORMAT", "JSON")
        assert BatchSettings().json_logs is True

    def test_unprefixed_variable_ignored(self, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "99")
        assert BatchSettings().chunk_size == 10


class TestBatchSettingsValidation:
    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            BatchSettings(chunk_size=0)

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            BatchSettings(repository_backend="postgres")


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_force_reload(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("STEPWISE_CHUNK_SIZE", "42")
        assert get_settings() is first
        reloaded = get_settings(_force_reload=True)
        assert reloaded.chunk_size == 42

    def test_clear_cache(self):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first
