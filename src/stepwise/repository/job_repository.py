"""
Job repository -- identity and lifecycle rules for execution records.

The repository is the only component allowed to create, mutate or delete
persisted execution state. It owns the rules; the DAOs only store rows.

Manifesto:
    - **One JobInstance per (name, identifying parameters):** the job key
      ignores non-identifying parameters, so re-running with a different
      ``run.id`` or ``shouldfail`` flag restarts the same instance.
    - **One running JobExecution per JobInstance:** checked here and made
      atomic by the DAO (see :mod:`stepwise.repository.protocol`).
    - **UNKNOWN blocks restart:** an execution whose outcome is unknown
      cannot be safely resumed.
    - **Status only goes up:** reconciling a stale in-memory execution
      never lowers its status.

Architecture:
    ::

        JobRepository
        ┌──────────────────────────────────────────────────────────────┐
        │ create_job_instance()        DuplicateJobInstanceError        │
        │ create_job_execution()       AlreadyRunning / AlreadyComplete │
        │                              / JobRestartError                │
        │ get_last_job_execution()                                      │
        │ create_step_execution()                                       │
        │ update()                     last_updated, terminate_only     │
        │ update_execution_context()   no-op when clean                 │
        │ get_step_execution_count()   get_last_step_execution()        │
        │ delete_job_execution()       delete_job_instance() (cascade)  │
        │ synchronize_status()                                          │
        └──────────────────────────────────────────────────────────────┘
               │            │             │               │
        JobInstanceDao JobExecutionDao StepExecutionDao ExecutionContextDao

Examples:
    >>> repo = create_job_repository()
    >>> params = JobParametersBuilder().add_string("name", "foo").to_job_parameters()
    >>> instance = repo.create_job_instance("import", params)
    >>> execution = repo.create_job_execution(instance, params)
    >>> execution.status
    <BatchStatus.STARTING: 'STARTING'>

Tags:
    repository, job-instance, job-execution, step-execution, identity,
    lifecycle, restart
"""

from __future__ import annotations

from stepwise.core.errors import (
    DuplicateJobInstanceError,
    JobExecutionAlreadyRunningError,
    JobInstanceAlreadyCompleteError,
    JobRestartError,
    NoSuchJobExecutionError,
)
from stepwise.core.logging import get_logger
from stepwise.domain.context import ExecutionContext
from stepwise.domain.models import JobExecution, JobInstance, StepExecution, utcnow
from stepwise.domain.parameters import JobParameters
from stepwise.domain.status import BatchStatus

from .protocol import ExecutionContextDao, JobExecutionDao, JobInstanceDao, StepExecutionDao

logger = get_logger(__name__)


class JobRepository:
    """Repository over the four execution DAOs."""

    def __init__(
        self,
        job_instance_dao: JobInstanceDao,
        job_execution_dao: JobExecutionDao,
        step_execution_dao: StepExecutionDao,
        execution_context_dao: ExecutionContextDao,
    ):
        self.job_instance_dao = job_instance_dao
        self.job_execution_dao = job_execution_dao
        self.step_execution_dao = step_execution_dao
        self.execution_context_dao = execution_context_dao

    # =========================================================================
    # JOB INSTANCES
    # =========================================================================

    def create_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance:
        """Create the instance for (job_name, job key of parameters).

        Raises:
            DuplicateJobInstanceError: an instance with the same key exists
        """
        if self.job_instance_dao.get_job_instance(job_name, parameters) is not None:
            raise DuplicateJobInstanceError(
                f"A job instance already exists for {job_name!r} and parameters {parameters!r}. "
                "Restart the existing instance or change the identifying parameters.",
                job_name=job_name,
            )
        instance = self.job_instance_dao.create_job_instance(job_name, parameters)
        logger.info(
            "repository.job_instance_created",
            job_name=job_name,
            job_instance_id=instance.id,
            job_key=instance.job_key,
        )
        return instance

    def get_job_instance(self, job_name: str, parameters: JobParameters) -> JobInstance | None:
        return self.job_instance_dao.get_job_instance(job_name, parameters)

    def is_job_instance_exists(self, job_name: str, parameters: JobParameters) -> bool:
        return self.job_instance_dao.get_job_instance(job_name, parameters) is not None

    # =========================================================================
    # JOB EXECUTIONS
    # =========================================================================

    def create_job_execution(
        self,
        job_instance: JobInstance,
        parameters: JobParameters,
        execution_context: ExecutionContext | None = None,
        *,
        restartable: bool = True,
    ) -> JobExecution:
        """Create and persist a new STARTING execution of ``job_instance``.

        When no context is supplied, the context of the most recent
        execution is carried over so a restart resumes from it.

        Raises:
            JobExecutionAlreadyRunningError: an execution is running
            JobInstanceAlreadyCompleteError: not restartable and an
                execution has COMPLETED
            JobRestartError: the latest execution ended UNKNOWN
        """
        executions = self.job_execution_dao.find_job_executions(job_instance)

        for execution in executions:
            if execution.status.is_running:
                raise JobExecutionAlreadyRunningError(
                    f"A job execution for this job is already running: {execution!r}",
                    job_name=job_instance.job_name,
                    job_execution_id=execution.id,
                )
            if not restartable and execution.status == BatchStatus.COMPLETED:
                raise JobInstanceAlreadyCompleteError(
                    "A job instance already exists and is complete for "
                    f"{job_instance.job_name!r} with parameters {parameters!r}. "
                    "If you want to run this job again, change the parameters.",
                    job_name=job_instance.job_name,
                    job_execution_id=execution.id,
                )

        if executions:
            latest = executions[0]
            if latest.status == BatchStatus.UNKNOWN:
                raise JobRestartError(
                    "Cannot restart job from UNKNOWN status. The last execution ended "
                    "with a failure that could not be rolled back, so it may be dangerous "
                    "to proceed. Manual intervention is probably necessary.",
                    job_name=job_instance.job_name,
                    job_execution_id=latest.id,
                )
            if execution_context is None:
                execution_context = self.execution_context_dao.get_job_context(latest)

        now = utcnow()
        job_execution = JobExecution(
            job_instance=job_instance,
            job_parameters=parameters,
            execution_context=ExecutionContext(execution_context),
            create_time=now,
            last_updated=now,
        )
        self.job_execution_dao.save_job_execution(job_execution)
        self.execution_context_dao.save_job_context(job_execution)
        job_execution.execution_context.clear_dirty_flag()

        logger.info(
            "repository.job_execution_created",
            job_name=job_instance.job_name,
            job_instance_id=job_instance.id,
            job_execution_id=job_execution.id,
            previous_executions=len(executions),
        )
        return job_execution

    def get_last_job_execution(self, job_name: str, parameters: JobParameters) -> JobExecution | None:
        """Most recently created execution of the matching instance, if any."""
        instance = self.job_instance_dao.get_job_instance(job_name, parameters)
        if instance is None:
            return None
        execution = self.job_execution_dao.get_last_job_execution(instance)
        if execution is not None:
            self._hydrate(execution)
        return execution

    def get_job_execution(self, execution_id: int) -> JobExecution | None:
        execution = self.job_execution_dao.get_job_execution(execution_id)
        if execution is not None:
            self._hydrate(execution)
        return execution

    def find_job_executions(self, job_instance: JobInstance) -> list[JobExecution]:
        executions = self.job_execution_dao.find_job_executions(job_instance)
        for execution in executions:
            self._hydrate(execution)
        return executions

    def _hydrate(self, job_execution: JobExecution) -> None:
        job_execution.execution_context = self.execution_context_dao.get_job_context(job_execution)
        for step_execution in self.step_execution_dao.get_step_executions(job_execution):
            step_execution.execution_context = self.execution_context_dao.get_step_context(step_execution)
            job_execution.add_step_execution(step_execution)

    # =========================================================================
    # STEP EXECUTIONS
    # =========================================================================

    def create_step_execution(self, step_name: str, job_execution: JobExecution) -> StepExecution:
        """Persist a new STARTING step execution owned by ``job_execution``."""
        if job_execution.id is None:
            raise NoSuchJobExecutionError(
                "Step executions can only be created for a saved job execution",
                job_name=job_execution.job_name,
                step_name=step_name,
            )
        step_execution = job_execution.create_step_execution(step_name)
        step_execution.last_updated = utcnow()
        self.step_execution_dao.save_step_execution(step_execution)
        self.execution_context_dao.save_step_context(step_execution)
        step_execution.execution_context.clear_dirty_flag()
        logger.debug(
            "repository.step_execution_created",
            job_execution_id=job_execution.id,
            step_name=step_name,
            step_execution_id=step_execution.id,
        )
        return step_execution

    def get_step_execution_count(self, job_instance: JobInstance, step_name: str) -> int:
        return self.step_execution_dao.count_step_executions(job_instance, step_name)

    def get_last_step_execution(self, job_instance: JobInstance, step_name: str) -> StepExecution | None:
        """Most recent execution of ``step_name`` in the instance, context restored."""
        step_execution = self.step_execution_dao.get_last_step_execution(job_instance, step_name)
        if step_execution is not None:
            step_execution.execution_context = self.execution_context_dao.get_step_context(step_execution)
        return step_execution

    # =========================================================================
    # UPDATES
    # =========================================================================

    def update(self, execution: JobExecution | StepExecution) -> None:
        """Persist current field values and refresh ``last_updated``.

        For a step execution, the parent's persisted status is synchronized
        first; a STOPPING parent (or a STOPPING step) sets the step's
        ``terminate_only`` flag, observed by the chunk loop at its next
        chunk boundary.
        """
        match execution:
            case JobExecution():
                self._update_job_execution(execution)
            case StepExecution():
                self._update_step_execution(execution)
            case _:
                raise TypeError(f"Cannot update {type(execution).__name__}")

    def _update_job_execution(self, job_execution: JobExecution) -> None:
        if job_execution.id is None:
            raise NoSuchJobExecutionError(
                "Job execution must be saved before it can be updated",
                job_name=job_execution.job_name,
            )
        job_execution.last_updated = utcnow()
        self.job_execution_dao.synchronize_status(job_execution)
        self.job_execution_dao.update_job_execution(job_execution)

    def _update_step_execution(self, step_execution: StepExecution) -> None:
        if step_execution.id is None:
            raise NoSuchJobExecutionError(
                "Step execution must be saved before it can be updated",
                step_name=step_execution.step_name,
            )
        step_execution.last_updated = utcnow()
        self.step_execution_dao.update_step_execution(step_execution)
        self._check_for_interruption(step_execution)

    def _check_for_interruption(self, step_execution: StepExecution) -> None:
        parent = step_execution.job_execution
        if parent is None and step_execution.job_execution_id is not None:
            parent = self.job_execution_dao.get_job_execution(step_execution.job_execution_id)
        if parent is not None:
            self.job_execution_dao.synchronize_status(parent)
            if parent.is_stopping:
                logger.info(
                    "repository.parent_stopping",
                    job_execution_id=parent.id,
                    step_name=step_execution.step_name,
                )
                step_execution.set_terminate_only()
        if step_execution.status == BatchStatus.STOPPING:
            step_execution.set_terminate_only()

    def update_execution_context(self, execution: JobExecution | StepExecution) -> None:
        """Persist the attached context and clear its dirty flag.

        Does nothing when the context is clean.
        """
        context = execution.execution_context
        if not context.is_dirty:
            return
        match execution:
            case JobExecution():
                self.execution_context_dao.update_job_context(execution)
            case StepExecution():
                self.execution_context_dao.update_step_context(execution)
            case _:
                raise TypeError(f"Cannot update context of {type(execution).__name__}")
        context.clear_dirty_flag()

    def synchronize_status(self, job_execution: JobExecution) -> None:
        """Raise ``job_execution.status`` to the persisted status, never lower."""
        self.job_execution_dao.synchronize_status(job_execution)

    # =========================================================================
    # DELETION
    # =========================================================================

    def delete_job_execution(self, job_execution: JobExecution) -> None:
        """Delete the execution with its step executions and contexts.

        Running executions are not protected; callers check status first.
        """
        for step_execution in self.step_execution_dao.get_step_executions(job_execution):
            self.execution_context_dao.delete_step_context(step_execution)
            self.step_execution_dao.delete_step_execution(step_execution)
        self.execution_context_dao.delete_job_context(job_execution)
        self.job_execution_dao.delete_job_execution(job_execution)
        logger.info("repository.job_execution_deleted", job_execution_id=job_execution.id)

    def delete_job_instance(self, job_instance: JobInstance) -> None:
        """Delete the instance and, in cascade, all of its executions."""
        for job_execution in self.job_execution_dao.find_job_executions(job_instance):
            self.delete_job_execution(job_execution)
        self.job_instance_dao.delete_job_instance(job_instance)
        logger.info(
            "repository.job_instance_deleted",
            job_name=job_instance.job_name,
            job_instance_id=job_instance.id,
        )


__all__ = ["JobRepository"]
