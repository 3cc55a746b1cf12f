"""SQLite DAOs for the job repository.

Works with a plain ``sqlite3.Connection``; create the tables first with
:func:`~stepwise.repository.schema.create_batch_tables`.

Each DAO method is its own transaction and commits before returning.
Saving a job execution runs inside ``BEGIN IMMEDIATE`` so the running
check and the insert cannot interleave with another writer; the partial
unique index on running executions turns a lost race into an
``IntegrityError``, reported as :class:`JobExecutionAlreadyRunningError`.

Example::

    conn = sqlite3.connect("batch.db")
    create_batch_tables(conn)
    repo = JobRepository(
        SqliteJobInstanceDao(conn),
        SqliteJobExecutionDao(conn),
        SqliteStepExecutionDao(conn),
        SqliteExecutionContextDao(conn),
    )
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Any

from stepwise.core.errors import (
    DuplicateJobInstanceError,
    JobExecutionAlreadyRunningError,
    NoSuchJobExecutionError,
    OptimisticLockingFailureError,
)
from stepwise.core.logging import get_logger
from stepwise.domain.context import ExecutionContext
from stepwise.domain.models import JobExecution, JobInstance, StepExecution
from stepwise.domain.parameters import (
    DefaultJobKeyGenerator,
    JobKeyGenerator,
    JobParameter,
    JobParameters,
)
from stepwise.domain.status import BatchStatus, ExitStatus

from .serializer import JsonExecutionContextSerializer

logger = get_logger(__name__)

_PARAMETER_TYPES: dict[str, type] = {
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "datetime": datetime,
    "date": date,
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _encode_parameter(parameter: JobParameter) -> str | None:
    value = parameter.value
    if value is None:
        return None
    if parameter.type is bool:
        return "true" if value else "false"
    if parameter.type in (datetime, date):
        return value.isoformat()
    if parameter.type is float:
        return repr(float(value))
    return str(value)


def _decode_parameter(type_name: str, raw: str | None, identifying: bool) -> JobParameter:
    param_type = _PARAMETER_TYPES[type_name]
    value: Any
    if raw is None:
        value = None
    elif param_type is bool:
        value = raw == "true"
    elif param_type is datetime:
        value = datetime.fromisoformat(raw)
    elif param_type is date:
        value = date.fromisoformat(raw)
    else:
        value = param_type(raw)
    return JobParameter(value, param_type, identifying)


def _begin_immediate(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        conn.execute("BEGIN IMMEDIATE")


class SqliteJobInstanceDao:
    def __init__(self, conn: sqlite3.Connection, key_generator: JobKeyGenerator | None = None):
        self._conn = conn
        self._key_generator = key_generator or DefaultJobKeyGenerator()

    def create_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance:
        job_key = self._key_generator.generate_key(job_name, parameters)
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO batch_job_instance (version, job_name, job_key)
                VALUES (0, ?, ?)
                """,
                (job_name, job_key),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise DuplicateJobInstanceError(
                f"A job instance already exists for {job_name!r} with key {job_key}",
                job_name=job_name,
                cause=e,
            ) from e
        return JobInstance(cursor.lastrowid, job_name, job_key)

    def get_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance | None:
        job_key = self._key_generator.generate_key(job_name, parameters)
        cursor = self._conn.cursor()
        cursor.execute(
            """
            SELECT job_instance_id, job_name, job_key
            FROM batch_job_instance
            WHERE job_name = ? AND job_key = ?
            """,
            (job_name, job_key),
        )
        row = cursor.fetchone()
        return JobInstance(*row) if row else None

    def get_job_instance_by_id(self, instance_id: int) -> JobInstance | None:
        cursor = self._conn.cursor()
        cursor.execute(
            """
            SELECT job_instance_id, job_name, job_key
            FROM batch_job_instance
            WHERE job_instance_id = ?
            """,
            (instance_id,),
        )
        row = cursor.fetchone()
        return JobInstance(*row) if row else None

    def get_job_names(self) -> list[str]:
        cursor = self._conn.cursor()
        cursor.execute("SELECT DISTINCT job_name FROM batch_job_instance ORDER BY job_name")
        return [row[0] for row in cursor.fetchall()]

    def delete_job_instance(self, job_instance: JobInstance) -> None:
        self._conn.execute(
            "DELETE FROM batch_job_instance WHERE job_instance_id = ?",
            (job_instance.id,),
        )
        self._conn.commit()


_JOB_EXECUTION_COLUMNS = """
    je.job_execution_id, je.version, je.create_time, je.start_time, je.end_time,
    je.status, je.exit_code, je.exit_description, je.last_updated,
    ji.job_instance_id, ji.job_name, ji.job_key
"""


class SqliteJobExecutionDao:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def save_job_execution(self, job_execution: JobExecution) -> None:
        cursor = self._conn.cursor()
        try:
            _begin_immediate(self._conn)
            cursor.execute(
                """
                SELECT job_execution_id FROM batch_job_execution
                WHERE job_instance_id = ? AND status IN ('STARTING', 'STARTED', 'STOPPING')
                """,
                (job_execution.job_instance.id,),
            )
            running = cursor.fetchone()
            if running is not None:
                raise JobExecutionAlreadyRunningError(
                    f"A job execution for this job is already running: {running[0]}",
                    job_name=job_execution.job_name,
                    job_execution_id=running[0],
                )
            cursor.execute(
                """
                INSERT INTO batch_job_execution (
                    version, job_instance_id, create_time, start_time, end_time,
                    status, exit_code, exit_description, last_updated
                ) VALUES (0, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_execution.job_instance.id,
                    _iso(job_execution.create_time),
                    _iso(job_execution.start_time),
                    _iso(job_execution.end_time),
                    job_execution.status.value,
                    job_execution.exit_status.exit_code,
                    job_execution.exit_status.exit_description,
                    _iso(job_execution.last_updated),
                ),
            )
            execution_id = cursor.lastrowid
            self._insert_parameters(cursor, execution_id, job_execution.job_parameters)
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise JobExecutionAlreadyRunningError(
                "A job execution for this job is already running",
                job_name=job_execution.job_name,
                cause=e,
            ) from e
        except BaseException:
            self._conn.rollback()
            raise
        job_execution.id = execution_id
        job_execution.version = 0

    def _insert_parameters(self, cursor: sqlite3.Cursor, execution_id: int, parameters: JobParameters) -> None:
        for ordinal, (name, parameter) in enumerate(parameters.items()):
            cursor.execute(
                """
                INSERT INTO batch_job_execution_params (
                    job_execution_id, ordinal, parameter_name, parameter_type,
                    parameter_value, identifying
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    execution_id,
                    ordinal,
                    name,
                    parameter.type.__name__,
                    _encode_parameter(parameter),
                    1 if parameter.identifying else 0,
                ),
            )

    def _load_parameters(self, execution_id: int) -> JobParameters:
        cursor = self._conn.cursor()
        cursor.execute(
            """
            SELECT parameter_name, parameter_type, parameter_value, identifying
            FROM batch_job_execution_params
            WHERE job_execution_id = ?
            ORDER BY ordinal
            """,
            (execution_id,),
        )
        return JobParameters(
            {name: _decode_parameter(type_name, raw, bool(identifying))
             for name, type_name, raw, identifying in cursor.fetchall()}
        )

    def update_job_execution(self, job_execution: JobExecution) -> None:
        if job_execution.id is None:
            raise NoSuchJobExecutionError("Job execution has no id; save it first")
        new_version = (job_execution.version or 0) + 1
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                """
                UPDATE batch_job_execution
                SET start_time = ?, end_time = ?, status = ?, exit_code = ?,
                    exit_description = ?, version = ?, last_updated = ?
                WHERE job_execution_id = ? AND version = ?
                """,
                (
                    _iso(job_execution.start_time),
                    _iso(job_execution.end_time),
                    job_execution.status.value,
                    job_execution.exit_status.exit_code,
                    job_execution.exit_status.exit_description,
                    new_version,
                    _iso(job_execution.last_updated),
                    job_execution.id,
                    job_execution.version,
                ),
            )
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise JobExecutionAlreadyRunningError(
                "Another job execution for this job instance is already running",
                job_name=job_execution.job_name,
                job_execution_id=job_execution.id,
                cause=e,
            ) from e
        if cursor.rowcount == 0:
            self._conn.rollback()
            current = self._current_version(job_execution.id)
            if current is None:
                raise NoSuchJobExecutionError(
                    f"Job execution {job_execution.id} is not persisted",
                    job_execution_id=job_execution.id,
                )
            raise OptimisticLockingFailureError(
                f"Attempt to update job execution id={job_execution.id} with wrong version "
                f"({job_execution.version}), where current version is {current}",
                job_execution_id=job_execution.id,
            )
        self._conn.commit()
        job_execution.version = new_version

    def _current_version(self, execution_id: int) -> int | None:
        cursor = self._conn.cursor()
        cursor.execute(
            "SELECT version FROM batch_job_execution WHERE job_execution_id = ?",
            (execution_id,),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def _select(self, where: str, params: tuple, suffix: str = "") -> list[JobExecution]:
        cursor = self._conn.cursor()
        cursor.execute(
            f"""
            SELECT {_JOB_EXECUTION_COLUMNS}
            FROM batch_job_execution je
            JOIN batch_job_instance ji ON ji.job_instance_id = je.job_instance_id
            WHERE {where}
            {suffix}
            """,
            params,
        )
        return [self._row_to_job_execution(row) for row in cursor.fetchall()]

    def find_job_executions(self, job_instance: JobInstance) -> list[JobExecution]:
        return self._select(
            "je.job_instance_id = ?",
            (job_instance.id,),
            "ORDER BY je.job_execution_id DESC",
        )

    def get_last_job_execution(self, job_instance: JobInstance) -> JobExecution | None:
        found = self._select(
            "je.job_instance_id = ?",
            (job_instance.id,),
            "ORDER BY je.job_execution_id DESC LIMIT 1",
        )
        return found[0] if found else None

    def get_job_execution(self, execution_id: int) -> JobExecution | None:
        found = self._select("je.job_execution_id = ?", (execution_id,))
        return found[0] if found else None

    def find_running_job_executions(self, job_name: str) -> list[JobExecution]:
        return self._select(
            "ji.job_name = ? AND je.status IN ('STARTING', 'STARTED', 'STOPPING')",
            (job_name,),
            "ORDER BY je.job_execution_id DESC",
        )

    def synchronize_status(self, job_execution: JobExecution) -> None:
        cursor = self._conn.cursor()
        cursor.execute(
            "SELECT status, version FROM batch_job_execution WHERE job_execution_id = ?",
            (job_execution.id,),
        )
        row = cursor.fetchone()
        if row is None:
            return
        status, version = row
        job_execution.upgrade_status(BatchStatus(status))
        if version != job_execution.version:
            logger.debug(
                "repository.job_execution_synchronized",
                job_execution_id=job_execution.id,
                persisted_status=status,
                persisted_version=version,
            )
            job_execution.version = version

    def delete_job_execution(self, job_execution: JobExecution) -> None:
        self._conn.execute(
            "DELETE FROM batch_job_execution_params WHERE job_execution_id = ?",
            (job_execution.id,),
        )
        self._conn.execute(
            "DELETE FROM batch_job_execution WHERE job_execution_id = ?",
            (job_execution.id,),
        )
        self._conn.commit()

    def _row_to_job_execution(self, row: tuple) -> JobExecution:
        instance = JobInstance(row[9], row[10], row[11])
        return JobExecution(
            job_instance=instance,
            job_parameters=self._load_parameters(row[0]),
            id=row[0],
            version=row[1],
            create_time=datetime.fromisoformat(row[2]),
            start_time=_parse_dt(row[3]),
            end_time=_parse_dt(row[4]),
            status=BatchStatus(row[5]),
            exit_status=ExitStatus(row[6] or "UNKNOWN", row[7] or ""),
            last_updated=_parse_dt(row[8]),
        )


_STEP_EXECUTION_COLUMNS = """
    se.step_execution_id, se.version, se.step_name, se.job_execution_id,
    se.create_time, se.start_time, se.end_time, se.status,
    se.commit_count, se.read_count, se.filter_count, se.write_count,
    se.read_skip_count, se.write_skip_count, se.process_skip_count,
    se.rollback_count, se.exit_code, se.exit_description, se.last_updated
"""


class SqliteStepExecutionDao:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def save_step_execution(self, step_execution: StepExecution) -> None:
        cursor = self._conn.cursor()
        cursor.execute(
            """
            INSERT INTO batch_step_execution (
                version, step_name, job_execution_id, create_time, start_time,
                end_time, status, commit_count, read_count, filter_count,
                write_count, read_skip_count, write_skip_count,
                process_skip_count, rollback_count, exit_code,
                exit_description, last_updated
            ) VALUES (0, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                step_execution.step_name,
                step_execution.job_execution_id,
                _iso(step_execution.create_time),
                _iso(step_execution.start_time),
                _iso(step_execution.end_time),
                step_execution.status.value,
                step_execution.commit_count,
                step_execution.read_count,
                step_execution.filter_count,
                step_execution.write_count,
                step_execution.read_skip_count,
                step_execution.write_skip_count,
                step_execution.process_skip_count,
                step_execution.rollback_count,
                step_execution.exit_status.exit_code,
                step_execution.exit_status.exit_description,
                _iso(step_execution.last_updated),
            ),
        )
        self._conn.commit()
        step_execution.id = cursor.lastrowid
        step_execution.version = 0

    def update_step_execution(self, step_execution: StepExecution) -> None:
        new_version = (step_execution.version or 0) + 1
        cursor = self._conn.cursor()
        cursor.execute(
            """
            UPDATE batch_step_execution
            SET start_time = ?, end_time = ?, status = ?, commit_count = ?,
                read_count = ?, filter_count = ?, write_count = ?,
                read_skip_count = ?, write_skip_count = ?, process_skip_count = ?,
                rollback_count = ?, exit_code = ?, exit_description = ?,
                version = ?, last_updated = ?
            WHERE step_execution_id = ? AND version = ?
            """,
            (
                _iso(step_execution.start_time),
                _iso(step_execution.end_time),
                step_execution.status.value,
                step_execution.commit_count,
                step_execution.read_count,
                step_execution.filter_count,
                step_execution.write_count,
                step_execution.read_skip_count,
                step_execution.write_skip_count,
                step_execution.process_skip_count,
                step_execution.rollback_count,
                step_execution.exit_status.exit_code,
                step_execution.exit_status.exit_description,
                new_version,
                _iso(step_execution.last_updated),
                step_execution.id,
                step_execution.version,
            ),
        )
        if cursor.rowcount == 0:
            self._conn.rollback()
            raise OptimisticLockingFailureError(
                f"Attempt to update step execution id={step_execution.id} with wrong version "
                f"({step_execution.version})",
                step_execution_id=step_execution.id,
            )
        self._conn.commit()
        step_execution.version = new_version

    def _select(self, where: str, params: tuple, suffix: str = "") -> list[StepExecution]:
        cursor = self._conn.cursor()
        cursor.execute(
            f"""
            SELECT {_STEP_EXECUTION_COLUMNS}
            FROM batch_step_execution se
            JOIN batch_job_execution je ON je.job_execution_id = se.job_execution_id
            WHERE {where}
            {suffix}
            """,
            params,
        )
        return [self._row_to_step_execution(row) for row in cursor.fetchall()]

    def get_step_executions(self, job_execution: JobExecution) -> list[StepExecution]:
        return self._select(
            "se.job_execution_id = ?",
            (job_execution.id,),
            "ORDER BY se.step_execution_id",
        )

    def get_last_step_execution(self, job_instance: JobInstance, step_name: str) -> StepExecution | None:
        found = self._select(
            "je.job_instance_id = ? AND se.step_name = ?",
            (job_instance.id, step_name),
            "ORDER BY se.create_time DESC, se.step_execution_id DESC LIMIT 1",
        )
        return found[0] if found else None

    def count_step_executions(self, job_instance: JobInstance, step_name: str) -> int:
        cursor = self._conn.cursor()
        cursor.execute(
            """
            SELECT COUNT(*)
            FROM batch_step_execution se
            JOIN batch_job_execution je ON je.job_execution_id = se.job_execution_id
            WHERE je.job_instance_id = ? AND se.step_name = ?
            """,
            (job_instance.id, step_name),
        )
        return cursor.fetchone()[0]

    def delete_step_execution(self, step_execution: StepExecution) -> None:
        self._conn.execute(
            "DELETE FROM batch_step_execution WHERE step_execution_id = ?",
            (step_execution.id,),
        )
        self._conn.commit()

    def _row_to_step_execution(self, row: tuple) -> StepExecution:
        return StepExecution(
            id=row[0],
            version=row[1],
            step_name=row[2],
            job_execution_id=row[3],
            create_time=datetime.fromisoformat(row[4]),
            start_time=_parse_dt(row[5]),
            end_time=_parse_dt(row[6]),
            status=BatchStatus(row[7]),
            commit_count=row[8],
            read_count=row[9],
            filter_count=row[10],
            write_count=row[11],
            read_skip_count=row[12],
            write_skip_count=row[13],
            process_skip_count=row[14],
            rollback_count=row[15],
            exit_status=ExitStatus(row[16] or "UNKNOWN", row[17] or ""),
            last_updated=_parse_dt(row[18]),
        )


class SqliteExecutionContextDao:
    def __init__(self, conn: sqlite3.Connection, serializer: JsonExecutionContextSerializer | None = None):
        self._conn = conn
        self._serializer = serializer or JsonExecutionContextSerializer()

    def _load(self, table: str, id_column: str, owner_id: int | None) -> ExecutionContext:
        cursor = self._conn.cursor()
        cursor.execute(
            f"SELECT serialized_context FROM {table} WHERE {id_column} = ?",
            (owner_id,),
        )
        row = cursor.fetchone()
        return self._serializer.deserialize(row[0] if row else None)

    def _upsert(self, table: str, id_column: str, owner_id: int | None, context: ExecutionContext) -> None:
        self._conn.execute(
            f"""
            INSERT INTO {table} ({id_column}, serialized_context)
            VALUES (?, ?)
            ON CONFLICT({id_column}) DO UPDATE SET serialized_context = excluded.serialized_context
            """,
            (owner_id, self._serializer.serialize(context)),
        )
        self._conn.commit()

    def get_job_context(self, job_execution: JobExecution) -> ExecutionContext:
        return self._load("batch_job_execution_context", "job_execution_id", job_execution.id)

    def get_step_context(self, step_execution: StepExecution) -> ExecutionContext:
        return self._load("batch_step_execution_context", "step_execution_id", step_execution.id)

    def save_job_context(self, job_execution: JobExecution) -> None:
        self._upsert(
            "batch_job_execution_context", "job_execution_id",
            job_execution.id, job_execution.execution_context,
        )

    def save_step_context(self, step_execution: StepExecution) -> None:
        self._upsert(
            "batch_step_execution_context", "step_execution_id",
            step_execution.id, step_execution.execution_context,
        )

    def update_job_context(self, job_execution: JobExecution) -> None:
        self.save_job_context(job_execution)

    def update_step_context(self, step_execution: StepExecution) -> None:
        self.save_step_context(step_execution)

    def delete_job_context(self, job_execution: JobExecution) -> None:
        self._conn.execute(
            "DELETE FROM batch_job_execution_context WHERE job_execution_id = ?",
            (job_execution.id,),
        )
        self._conn.commit()

    def delete_step_context(self, step_execution: StepExecution) -> None:
        self._conn.execute(
            "DELETE FROM batch_step_execution_context WHERE step_execution_id = ?",
            (step_execution.id,),
        )
        self._conn.commit()


__all__ = [
    "SqliteJobInstanceDao",
    "SqliteJobExecutionDao",
    "SqliteStepExecutionDao",
    "SqliteExecutionContextDao",
]
