"""Execution repository -- the only authority over persisted execution state.

MODULE MAP
──────────
  1. protocol.py        ─ DAO contracts (instance, execution, step, context)
  2. job_repository.py  ─ JobRepository (identity + lifecycle rules)
  3. memory.py          ─ in-memory DAOs (RLock, copies)
  4. schema.py          ─ SQLite DDL (partial unique index on running rows)
  5. sqlite.py          ─ sqlite3 DAOs (optimistic versioning)
  6. serializer.py      ─ ExecutionContext <-> JSON (typed round trip)
  7. factory.py         ─ create_job_repository (settings-driven)
"""

from .factory import create_job_repository, create_memory_repository, create_sqlite_repository
from .job_repository import JobRepository
from .memory import (
    InMemoryExecutionContextDao,
    InMemoryJobExecutionDao,
    InMemoryJobInstanceDao,
    InMemoryStepExecutionDao,
    InMemoryStore,
)
from .protocol import ExecutionContextDao, JobExecutionDao, JobInstanceDao, StepExecutionDao
from .schema import BATCH_DDL, BATCH_TABLES, create_batch_tables
from .serializer import JsonExecutionContextSerializer
from .sqlite import (
    SqliteExecutionContextDao,
    SqliteJobExecutionDao,
    SqliteJobInstanceDao,
    SqliteStepExecutionDao,
)

__all__ = [
    "JobRepository",
    "JobInstanceDao",
    "JobExecutionDao",
    "StepExecutionDao",
    "ExecutionContextDao",
    "InMemoryStore",
    "InMemoryJobInstanceDao",
    "InMemoryJobExecutionDao",
    "InMemoryStepExecutionDao",
    "InMemoryExecutionContextDao",
    "SqliteJobInstanceDao",
    "SqliteJobExecutionDao",
    "SqliteStepExecutionDao",
    "SqliteExecutionContextDao",
    "JsonExecutionContextSerializer",
    "BATCH_DDL",
    "BATCH_TABLES",
    "create_batch_tables",
    "create_job_repository",
    "create_memory_repository",
    "create_sqlite_repository",
]
