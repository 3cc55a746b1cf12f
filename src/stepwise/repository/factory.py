"""Job repository factory.

Picks the backend from :class:`~stepwise.core.settings.BatchSettings`
unless a connection is passed explicitly, and applies the settings' log
level and format if logging has not been configured yet.

Example::

    repo = create_job_repository()                      # settings-driven
    repo = create_job_repository(conn=sqlite3.connect(":memory:"))
"""

from __future__ import annotations

import sqlite3

from stepwise.core.logging import configure_from_settings, get_logger
from stepwise.core.settings import BatchSettings, get_settings
from stepwise.domain.parameters import JobKeyGenerator

from .job_repository import JobRepository
from .memory import (
    InMemoryExecutionContextDao,
    InMemoryJobExecutionDao,
    InMemoryJobInstanceDao,
    InMemoryStepExecutionDao,
    InMemoryStore,
)
from .schema import create_batch_tables
from .sqlite import (
    SqliteExecutionContextDao,
    SqliteJobExecutionDao,
    SqliteJobInstanceDao,
    SqliteStepExecutionDao,
)

logger = get_logger(__name__)


def create_memory_repository(
    store: InMemoryStore | None = None,
    key_generator: JobKeyGenerator | None = None,
) -> JobRepository:
    store = store or InMemoryStore()
    return JobRepository(
        InMemoryJobInstanceDao(store, key_generator),
        InMemoryJobExecutionDao(store),
        InMemoryStepExecutionDao(store),
        InMemoryExecutionContextDao(store),
    )


def create_sqlite_repository(
    conn: sqlite3.Connection,
    key_generator: JobKeyGenerator | None = None,
) -> JobRepository:
    """Repository on ``conn``; tables are created if missing."""
    create_batch_tables(conn)
    return JobRepository(
        SqliteJobInstanceDao(conn, key_generator),
        SqliteJobExecutionDao(conn),
        SqliteStepExecutionDao(conn),
        SqliteExecutionContextDao(conn),
    )


def create_job_repository(
    settings: BatchSettings | None = None,
    conn: sqlite3.Connection | None = None,
    key_generator: JobKeyGenerator | None = None,
) -> JobRepository:
    """Build a :class:`JobRepository` for the configured backend.

    Args:
        settings: Defaults to :func:`get_settings`
        conn: Use this sqlite connection (forces the sqlite backend)
        key_generator: Custom job key derivation
    """
    settings = settings or get_settings()
    configure_from_settings(settings)

    if conn is not None:
        return create_sqlite_repository(conn, key_generator)

    if settings.is_sqlite:
        logger.info("repository.sqlite_opened", database_path=settings.database_path)
        conn = sqlite3.connect(settings.database_path, check_same_thread=False)
        return create_sqlite_repository(conn, key_generator)

    return create_memory_repository(key_generator=key_generator)


__all__ = [
    "create_job_repository",
    "create_memory_repository",
    "create_sqlite_repository",
]
