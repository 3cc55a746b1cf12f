"""
DAO protocols the job repository is written against.

The repository enforces the identity and lifecycle rules; the DAOs only
store and load records. Any object matching these shapes can back a
:class:`~stepwise.repository.job_repository.JobRepository`.

Manifesto:
    - **Storage is a collaborator:** the engine depends on these contracts,
      not on a specific database.
    - **One atomic guard:** ``JobExecutionDao.save_job_execution`` must
      reject a second running execution of the same instance using the
      backend's own atomicity (unique constraint, compare-and-swap, lock),
      because several processes may share one repository.
    - **Copies, not aliases:** loaded records are fresh objects. Callers
      reconcile stale in-memory state through ``synchronize_status``.

Architecture:
    ::

        JobRepository
          ├── JobInstanceDao       batch_job_instance
          ├── JobExecutionDao      batch_job_execution (+ params)
          ├── StepExecutionDao     batch_step_execution
          └── ExecutionContextDao  batch_job_execution_context
                                   batch_step_execution_context

    Implementations:
        memory.py   in-process dicts under one RLock
        sqlite.py   sqlite3, partial UNIQUE index on running executions

Guardrails:
    ❌ DON'T: Put identity rules (restartability, UNKNOWN blocks restart) in a DAO
    ✅ DO: Keep them in JobRepository so every backend behaves the same

    ❌ DON'T: Return the stored object itself from an in-memory DAO
    ✅ DO: Return copies so persisted and in-memory state can diverge

Tags:
    protocol, dao, repository, storage, contracts
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from stepwise.domain.context import ExecutionContext
from stepwise.domain.models import JobExecution, JobInstance, StepExecution
from stepwise.domain.parameters import JobParameters


@runtime_checkable
class JobInstanceDao(Protocol):
    """Persistence of job instances."""

    def create_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance:
        """Persist a new instance; raise DuplicateJobInstanceError if (name, key) exists."""
        ...

    def get_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance | None:
        ...

    def get_job_instance_by_id(self, instance_id: int) -> JobInstance | None:
        ...

    def get_job_names(self) -> list[str]:
        ...

    def delete_job_instance(self, job_instance: JobInstance) -> None:
        ...


@runtime_checkable
class JobExecutionDao(Protocol):
    """Persistence of job executions."""

    def save_job_execution(self, job_execution: JobExecution) -> None:
        """Assign id and version and persist.

        Raises:
            JobExecutionAlreadyRunningError: another execution of the same
                instance is running. The check and the insert are atomic.
        """
        ...

    def update_job_execution(self, job_execution: JobExecution) -> None:
        """Persist field values; bump version.

        Raises:
            OptimisticLockingFailureError: the stored version differs.
        """
        ...

    def find_job_executions(self, job_instance: JobInstance) -> list[JobExecution]:
        """All executions of the instance, most recently created first."""
        ...

    def get_last_job_execution(self, job_instance: JobInstance) -> JobExecution | None:
        ...

    def get_job_execution(self, execution_id: int) -> JobExecution | None:
        ...

    def find_running_job_executions(self, job_name: str) -> list[JobExecution]:
        ...

    def synchronize_status(self, job_execution: JobExecution) -> None:
        """Raise the in-memory status to the persisted one (never lower)."""
        ...

    def delete_job_execution(self, job_execution: JobExecution) -> None:
        ...


@runtime_checkable
class StepExecutionDao(Protocol):
    """Persistence of step executions."""

    def save_step_execution(self, step_execution: StepExecution) -> None:
        ...

    def update_step_execution(self, step_execution: StepExecution) -> None:
        ...

    def get_step_executions(self, job_execution: JobExecution) -> list[StepExecution]:
        """Step executions of one job execution, in creation order."""
        ...

    def get_last_step_execution(self, job_instance: JobInstance, step_name: str) -> StepExecution | None:
        """Most recently created execution of ``step_name`` across the instance."""
        ...

    def count_step_executions(self, job_instance: JobInstance, step_name: str) -> int:
        ...

    def delete_step_execution(self, step_execution: StepExecution) -> None:
        ...


@runtime_checkable
class ExecutionContextDao(Protocol):
    """Persistence of job and step execution contexts."""

    def get_job_context(self, job_execution: JobExecution) -> ExecutionContext:
        ...

    def get_step_context(self, step_execution: StepExecution) -> ExecutionContext:
        ...

    def save_job_context(self, job_execution: JobExecution) -> None:
        ...

    def save_step_context(self, step_execution: StepExecution) -> None:
        ...

    def update_job_context(self, job_execution: JobExecution) -> None:
        ...

    def update_step_context(self, step_execution: StepExecution) -> None:
        ...

    def delete_job_context(self, job_execution: JobExecution) -> None:
        ...

    def delete_step_context(self, step_execution: StepExecution) -> None:
        ...


__all__ = [
    "JobInstanceDao",
    "JobExecutionDao",
    "StepExecutionDao",
    "ExecutionContextDao",
]
