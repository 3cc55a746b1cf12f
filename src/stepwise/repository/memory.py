"""In-memory DAOs.

Dict-backed storage for tests and single-process runs. All four DAOs share
one :class:`InMemoryStore`, whose ``RLock`` makes each check-then-write
atomic for threads of this process. Records are stored and returned as
copies, never as the caller's objects.

Example::

    store = InMemoryStore()
    repo = JobRepository(
        InMemoryJobInstanceDao(store),
        InMemoryJobExecutionDao(store),
        InMemoryStepExecutionDao(store),
        InMemoryExecutionContextDao(store),
    )
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace

from stepwise.core.errors import (
    DuplicateJobInstanceError,
    JobExecutionAlreadyRunningError,
    NoSuchJobExecutionError,
    OptimisticLockingFailureError,
)
from stepwise.domain.context import ExecutionContext
from stepwise.domain.models import JobExecution, JobInstance, StepExecution
from stepwise.domain.parameters import DefaultJobKeyGenerator, JobKeyGenerator, JobParameters


def _copy_job_execution(job_execution: JobExecution) -> JobExecution:
    return replace(
        job_execution,
        execution_context=ExecutionContext(),
        step_executions=[],
        failure_exceptions=[],
    )


def _copy_step_execution(step_execution: StepExecution) -> StepExecution:
    return replace(
        step_execution,
        execution_context=ExecutionContext(),
        failure_exceptions=[],
        terminate_only=False,
    )


class InMemoryStore:
    """Shared tables for the in-memory DAOs."""

    def __init__(self):
        self.lock = threading.RLock()
        self.job_instances: dict[int, JobInstance] = {}
        self.job_executions: dict[int, JobExecution] = {}
        self.step_executions: dict[int, StepExecution] = {}
        self.job_contexts: dict[int, ExecutionContext] = {}
        self.step_contexts: dict[int, ExecutionContext] = {}
        self._instance_ids = itertools.count(1)
        self._job_execution_ids = itertools.count(1)
        self._step_execution_ids = itertools.count(1)

    def next_instance_id(self) -> int:
        return next(self._instance_ids)

    def next_job_execution_id(self) -> int:
        return next(self._job_execution_ids)

    def next_step_execution_id(self) -> int:
        return next(self._step_execution_ids)

    def clear(self) -> None:
        with self.lock:
            self.job_instances.clear()
            self.job_executions.clear()
            self.step_executions.clear()
            self.job_contexts.clear()
            self.step_contexts.clear()


class InMemoryJobInstanceDao:
    def __init__(self, store: InMemoryStore, key_generator: JobKeyGenerator | None = None):
        self._store = store
        self._key_generator = key_generator or DefaultJobKeyGenerator()

    def create_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance:
        job_key = self._key_generator.generate_key(job_name, parameters)
        with self._store.lock:
            if self._find(job_name, job_key) is not None:
                raise DuplicateJobInstanceError(
                    f"A job instance already exists for {job_name!r} with key {job_key}",
                    job_name=job_name,
                )
            instance = JobInstance(self._store.next_instance_id(), job_name, job_key)
            self._store.job_instances[instance.id] = instance
            return instance

    def get_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance | None:
        job_key = self._key_generator.generate_key(job_name, parameters)
        with self._store.lock:
            return self._find(job_name, job_key)

    def _find(self, job_name: str, job_key: str) -> JobInstance | None:
        for instance in self._store.job_instances.values():
            if instance.job_name == job_name and instance.job_key == job_key:
                return instance
        return None

    def get_job_instance_by_id(self, instance_id: int) -> JobInstance | None:
        with self._store.lock:
            return self._store.job_instances.get(instance_id)

    def get_job_names(self) -> list[str]:
        with self._store.lock:
            return sorted({i.job_name for i in self._store.job_instances.values()})

    def delete_job_instance(self, job_instance: JobInstance) -> None:
        with self._store.lock:
            self._store.job_instances.pop(job_instance.id, None)


class InMemoryJobExecutionDao:
    def __init__(self, store: InMemoryStore):
        self._store = store

    def _check_no_other_running(self, job_execution: JobExecution) -> None:
        if not job_execution.status.is_running:
            return
        for stored in self._store.job_executions.values():
            if (
                stored.job_instance.id == job_execution.job_instance.id
                and stored.id != job_execution.id
                and stored.status.is_running
            ):
                raise JobExecutionAlreadyRunningError(
                    f"A job execution for this job is already running: {stored.id}",
                    job_name=stored.job_instance.job_name,
                    job_execution_id=stored.id,
                )

    def save_job_execution(self, job_execution: JobExecution) -> None:
        with self._store.lock:
            self._check_no_other_running(job_execution)
            job_execution.id = self._store.next_job_execution_id()
            job_execution.increment_version()
            self._store.job_executions[job_execution.id] = _copy_job_execution(job_execution)

    def update_job_execution(self, job_execution: JobExecution) -> None:
        with self._store.lock:
            stored = self._store.job_executions.get(job_execution.id)
            if stored is None:
                raise NoSuchJobExecutionError(
                    f"Job execution {job_execution.id} is not persisted",
                    job_execution_id=job_execution.id,
                )
            if stored.version != job_execution.version:
                raise OptimisticLockingFailureError(
                    f"Attempt to update job execution id={job_execution.id} with wrong version "
                    f"({job_execution.version}), where current version is {stored.version}",
                    job_execution_id=job_execution.id,
                )
            self._check_no_other_running(job_execution)
            job_execution.increment_version()
            self._store.job_executions[job_execution.id] = _copy_job_execution(job_execution)

    def find_job_executions(self, job_instance: JobInstance) -> list[JobExecution]:
        with self._store.lock:
            found = [
                _copy_job_execution(e)
                for e in self._store.job_executions.values()
                if e.job_instance.id == job_instance.id
            ]
        return sorted(found, key=lambda e: e.id, reverse=True)

    def get_last_job_execution(self, job_instance: JobInstance) -> JobExecution | None:
        executions = self.find_job_executions(job_instance)
        return executions[0] if executions else None

    def get_job_execution(self, execution_id: int) -> JobExecution | None:
        with self._store.lock:
            stored = self._store.job_executions.get(execution_id)
            return _copy_job_execution(stored) if stored is not None else None

    def find_running_job_executions(self, job_name: str) -> list[JobExecution]:
        with self._store.lock:
            return [
                _copy_job_execution(e)
                for e in self._store.job_executions.values()
                if e.job_instance.job_name == job_name and e.status.is_running
            ]

    def synchronize_status(self, job_execution: JobExecution) -> None:
        with self._store.lock:
            stored = self._store.job_executions.get(job_execution.id)
            if stored is None:
                return
            job_execution.upgrade_status(stored.status)
            if stored.version != job_execution.version:
                job_execution.version = stored.version

    def delete_job_execution(self, job_execution: JobExecution) -> None:
        with self._store.lock:
            self._store.job_executions.pop(job_execution.id, None)


class InMemoryStepExecutionDao:
    def __init__(self, store: InMemoryStore):
        self._store = store

    def save_step_execution(self, step_execution: StepExecution) -> None:
        with self._store.lock:
            step_execution.id = self._store.next_step_execution_id()
            step_execution.increment_version()
            self._store.step_executions[step_execution.id] = _copy_step_execution(step_execution)

    def update_step_execution(self, step_execution: StepExecution) -> None:
        with self._store.lock:
            stored = self._store.step_executions.get(step_execution.id)
            if stored is None:
                raise OptimisticLockingFailureError(
                    f"Step execution {step_execution.id} is not persisted",
                    step_execution_id=step_execution.id,
                )
            if stored.version != step_execution.version:
                raise OptimisticLockingFailureError(
                    f"Attempt to update step execution id={step_execution.id} with wrong version "
                    f"({step_execution.version}), where current version is {stored.version}",
                    step_execution_id=step_execution.id,
                )
            step_execution.increment_version()
            self._store.step_executions[step_execution.id] = _copy_step_execution(step_execution)

    def get_step_executions(self, job_execution: JobExecution) -> list[StepExecution]:
        with self._store.lock:
            found = [
                _copy_step_execution(s)
                for s in self._store.step_executions.values()
                if s.job_execution_id == job_execution.id
            ]
        return sorted(found, key=lambda s: s.id)

    def _instance_execution_ids(self, job_instance: JobInstance) -> set[int]:
        return {
            e.id
            for e in self._store.job_executions.values()
            if e.job_instance.id == job_instance.id and e.id is not None
        }

    def get_last_step_execution(self, job_instance: JobInstance, step_name: str) -> StepExecution | None:
        with self._store.lock:
            execution_ids = self._instance_execution_ids(job_instance)
            candidates = [
                s
                for s in self._store.step_executions.values()
                if s.step_name == step_name and s.job_execution_id in execution_ids
            ]
            if not candidates:
                return None
            latest = max(candidates, key=lambda s: (s.create_time, s.id))
            return _copy_step_execution(latest)

    def count_step_executions(self, job_instance: JobInstance, step_name: str) -> int:
        with self._store.lock:
            execution_ids = self._instance_execution_ids(job_instance)
            return sum(
                1
                for s in self._store.step_executions.values()
                if s.step_name == step_name and s.job_execution_id in execution_ids
            )

    def delete_step_execution(self, step_execution: StepExecution) -> None:
        with self._store.lock:
            self._store.step_executions.pop(step_execution.id, None)


class InMemoryExecutionContextDao:
    def __init__(self, store: InMemoryStore):
        self._store = store

    def get_job_context(self, job_execution: JobExecution) -> ExecutionContext:
        with self._store.lock:
            return ExecutionContext(self._store.job_contexts.get(job_execution.id))

    def get_step_context(self, step_execution: StepExecution) -> ExecutionContext:
        with self._store.lock:
            return ExecutionContext(self._store.step_contexts.get(step_execution.id))

    def save_job_context(self, job_execution: JobExecution) -> None:
        with self._store.lock:
            self._store.job_contexts[job_execution.id] = ExecutionContext(job_execution.execution_context)

    def save_step_context(self, step_execution: StepExecution) -> None:
        with self._store.lock:
            self._store.step_contexts[step_execution.id] = ExecutionContext(step_execution.execution_context)

    def update_job_context(self, job_execution: JobExecution) -> None:
        self.save_job_context(job_execution)

    def update_step_context(self, step_execution: StepExecution) -> None:
        self.save_step_context(step_execution)

    def delete_job_context(self, job_execution: JobExecution) -> None:
        with self._store.lock:
            self._store.job_contexts.pop(job_execution.id, None)

    def delete_step_context(self, step_execution: StepExecution) -> None:
        with self._store.lock:
            self._store.step_contexts.pop(step_execution.id, None)


__all__ = [
    "InMemoryStore",
    "InMemoryJobInstanceDao",
    "InMemoryJobExecutionDao",
    "InMemoryStepExecutionDao",
    "InMemoryExecutionContextDao",
]
