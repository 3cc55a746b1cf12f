"""Execution record models.

Defines the records the job repository persists:

- JobInstance: a logical job, identified by (job name, job key)
- JobExecution: one attempt to run a JobInstance
- StepExecution: one attempt to run a named step within a JobExecution
- StepContribution: per-chunk counter buffer applied to a StepExecution

A JobExecution owns its StepExecutions. A StepExecution only refers back to
its parent by id plus a weak reference, so there is no strong reference
cycle between the two.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .context import ExecutionContext
from .parameters import JobParameters
from .status import BatchStatus, ExitStatus


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class JobInstance:
    """A unique logical job: name plus identifying parameters.

    Never mutated after creation; many JobExecutions may reference it.
    """

    id: int
    job_name: str
    job_key: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "job_name": self.job_name, "job_key": self.job_key}


@dataclass
class StepContribution:
    """Counters buffered for one chunk, applied to the step on commit."""

    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    read_skip_count: int = 0
    process_skip_count: int = 0
    write_skip_count: int = 0

    @property
    def skip_count(self) -> int:
        return self.read_skip_count + self.process_skip_count + self.write_skip_count


@dataclass(eq=False)
class StepExecution:
    """One attempt to run a step.

    Example:
        >>> step = job_execution.create_step_execution("load")
        >>> step.status
        <BatchStatus.STARTING: 'STARTING'>
    """

    step_name: str
    job_execution_id: int | None = None
    id: int | None = None
    status: BatchStatus = BatchStatus.STARTING
    exit_status: ExitStatus = field(default_factory=lambda: ExitStatus.EXECUTING)

    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    read_skip_count: int = 0
    process_skip_count: int = 0
    write_skip_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0

    create_time: datetime = field(default_factory=utcnow)
    start_time: datetime | None = None
    end_time: datetime | None = None
    last_updated: datetime | None = None

    execution_context: ExecutionContext = field(default_factory=ExecutionContext)
    terminate_only: bool = False
    failure_exceptions: list[BaseException] = field(default_factory=list)
    version: int | None = None

    _job_execution_ref: Any = field(default=None, init=False, repr=False, compare=False)

    @property
    def job_execution(self) -> JobExecution | None:
        """The owning JobExecution, if it is still alive in this process."""
        if self._job_execution_ref is None:
            return None
        return self._job_execution_ref()

    def attach(self, job_execution: JobExecution) -> None:
        self.job_execution_id = job_execution.id
        self._job_execution_ref = weakref.ref(job_execution)

    @property
    def skip_count(self) -> int:
        return self.read_skip_count + self.process_skip_count + self.write_skip_count

    def set_terminate_only(self) -> None:
        self.terminate_only = True

    def upgrade_status(self, status: BatchStatus) -> None:
        self.status = self.status.upgrade_to(status)

    def add_failure_exception(self, error: BaseException) -> None:
        self.failure_exceptions.append(error)

    def apply_contribution(self, contribution: StepContribution) -> None:
        self.read_count += contribution.read_count
        self.write_count += contribution.write_count
        self.filter_count += contribution.filter_count
        self.read_skip_count += contribution.read_skip_count
        self.process_skip_count += contribution.process_skip_count
        self.write_skip_count += contribution.write_skip_count

    def increment_version(self) -> None:
        self.version = 0 if self.version is None else self.version + 1

    def summary(self) -> str:
        return (
            f"StepExecution: id={self.id}, name={self.step_name}, status={self.status.value}, "
            f"exitStatus={self.exit_status.exit_code}, readCount={self.read_count}, "
            f"filterCount={self.filter_count}, writeCount={self.write_count}, "
            f"readSkipCount={self.read_skip_count}, writeSkipCount={self.write_skip_count}, "
            f"processSkipCount={self.process_skip_count}, commitCount={self.commit_count}, "
            f"rollbackCount={self.rollback_count}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "step_name": self.step_name,
            "job_execution_id": self.job_execution_id,
            "status": self.status.value,
            "exit_code": self.exit_status.exit_code,
            "exit_description": self.exit_status.exit_description,
            "read_count": self.read_count,
            "write_count": self.write_count,
            "filter_count": self.filter_count,
            "read_skip_count": self.read_skip_count,
            "process_skip_count": self.process_skip_count,
            "write_skip_count": self.write_skip_count,
            "commit_count": self.commit_count,
            "rollback_count": self.rollback_count,
            "create_time": self.create_time.isoformat(),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "terminate_only": self.terminate_only,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"StepExecution(id={self.id}, step_name={self.step_name!r}, status={self.status.value})"


@dataclass(eq=False)
class JobExecution:
    """One attempt to run a JobInstance.

    Owns its StepExecutions, in creation order.
    """

    job_instance: JobInstance
    job_parameters: JobParameters = field(default_factory=JobParameters)
    id: int | None = None
    status: BatchStatus = BatchStatus.STARTING
    exit_status: ExitStatus = field(default_factory=lambda: ExitStatus.UNKNOWN)

    create_time: datetime = field(default_factory=utcnow)
    start_time: datetime | None = None
    end_time: datetime | None = None
    last_updated: datetime | None = None

    execution_context: ExecutionContext = field(default_factory=ExecutionContext)
    step_executions: list[StepExecution] = field(default_factory=list)
    failure_exceptions: list[BaseException] = field(default_factory=list)
    version: int | None = None

    @property
    def job_instance_id(self) -> int:
        return self.job_instance.id

    @property
    def job_name(self) -> str:
        return self.job_instance.job_name

    @property
    def is_running(self) -> bool:
        return self.status.is_running

    @property
    def is_stopping(self) -> bool:
        return self.status == BatchStatus.STOPPING

    def create_step_execution(self, step_name: str) -> StepExecution:
        step_execution = StepExecution(step_name=step_name)
        self.add_step_execution(step_execution)
        return step_execution

    def add_step_execution(self, step_execution: StepExecution) -> None:
        step_execution.attach(self)
        self.step_executions.append(step_execution)

    def upgrade_status(self, status: BatchStatus) -> None:
        self.status = self.status.upgrade_to(status)

    def stop(self) -> None:
        """Request a cooperative stop.

        Running step executions see ``terminate_only`` at their next chunk
        boundary.
        """
        for step_execution in self.step_executions:
            if step_execution.status.is_running:
                step_execution.set_terminate_only()
        self.status = BatchStatus.STOPPING

    def add_failure_exception(self, error: BaseException) -> None:
        self.failure_exceptions.append(error)

    @property
    def all_failure_exceptions(self) -> list[BaseException]:
        errors = list(self.failure_exceptions)
        for step_execution in self.step_executions:
            errors.extend(step_execution.failure_exceptions)
        return errors

    def increment_version(self) -> None:
        self.version = 0 if self.version is None else self.version + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_instance_id": self.job_instance.id,
            "job_name": self.job_instance.job_name,
            "job_parameters": self.job_parameters.to_dict(),
            "status": self.status.value,
            "exit_code": self.exit_status.exit_code,
            "exit_description": self.exit_status.exit_description,
            "create_time": self.create_time.isoformat(),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "step_executions": [s.to_dict() for s in self.step_executions],
            "version": self.version,
        }

    def __repr__(self) -> str:
        return (
            f"JobExecution(id={self.id}, job_name={self.job_instance.job_name!r}, "
            f"status={self.status.value})"
        )


__all__ = [
    "utcnow",
    "JobInstance",
    "JobExecution",
    "StepExecution",
    "StepContribution",
]
