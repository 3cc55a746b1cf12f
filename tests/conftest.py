"""
Shared pytest fixtures for stepwise tests.

This module provides:
- Settings cache isolation
- Job repositories on both backends (in-memory and in-memory SQLite)
- Common job parameters

Usage:
    The ``repository`` fixture is parametrized over both backends, so any
    test that takes it runs once per backend:

    def test_something(repository):
        ...
"""

import sqlite3
from collections.abc import Generator

import pytest

from stepwise.core.settings import clear_settings_cache
from stepwise.domain.parameters import JobParameters, JobParametersBuilder
from stepwise.repository import JobRepository, create_memory_repository, create_sqlite_repository


# =============================================================================
# Settings Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and STEPWISE_* variables around every test."""
    import os

    for key in list(os.environ):
        if key.startswith("STEPWISE_"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Repositories
# =============================================================================


@pytest.fixture
def sqlite_conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory SQLite connection."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def memory_repository() -> JobRepository:
    return create_memory_repository()


@pytest.fixture
def sqlite_repository(sqlite_conn: sqlite3.Connection) -> JobRepository:
    return create_sqlite_repository(sqlite_conn)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request: pytest.FixtureRequest) -> JobRepository:
    """Job repository, once per backend."""
    if request.param == "memory":
        return create_memory_repository()
    conn = sqlite3.connect(":memory:")
    request.addfinalizer(conn.close)
    return create_sqlite_repository(conn)


# =============================================================================
# Parameters
# =============================================================================


@pytest.fixture
def foo_params() -> JobParameters:
    """``{name: foo}``, the identifying parameters used across scenarios."""
    return JobParametersBuilder().add_string("name", "foo").to_job_parameters()
