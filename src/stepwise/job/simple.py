"""Sequential job: run steps in order, stop at the first that does not complete."""

from __future__ import annotations

from collections.abc import Sequence

from stepwise.core.errors import StepInterruptedError
from stepwise.core.logging import LogContext, get_logger
from stepwise.domain.models import JobExecution, StepExecution, utcnow
from stepwise.domain.parameters import JobParameters
from stepwise.domain.status import BatchStatus, ExitStatus
from stepwise.job.step_handler import SimpleStepHandler
from stepwise.repository.job_repository import JobRepository
from stepwise.step.base import Step

logger = get_logger(__name__)


class JobExecutionListener:
    def before_job(self, job_execution: JobExecution) -> None:
        pass

    def after_job(self, job_execution: JobExecution) -> None:
        pass


class SimpleJob:
    """Runs ``steps`` in order against ``repository``.

    The job's final status and exit status are those of the last step that
    ran. A job whose steps were all skipped ends COMPLETED with exit code
    NOOP.

    Args:
        name: Job name; with the identifying parameters it keys the instance
        steps: Steps to run in order
        repository: Job repository
        restartable: When False, a COMPLETED instance cannot run again
        listeners: Job lifecycle listeners
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[Step],
        repository: JobRepository,
        *,
        restartable: bool = True,
        listeners: Sequence[JobExecutionListener] = (),
    ):
        self.name = name
        self.steps = list(steps)
        self.repository = repository
        self.restartable = restartable
        self.listeners = list(listeners)
        self.step_handler = SimpleStepHandler(repository)

    def execute(self, job_execution: JobExecution) -> None:
        """Run the job; outcome is recorded on ``job_execution``, never raised."""
        with LogContext(job_name=self.name, job_execution_id=job_execution.id):
            self._execute(job_execution)

    def _execute(self, job_execution: JobExecution) -> None:
        try:
            if job_execution.status == BatchStatus.STOPPING:
                job_execution.status = BatchStatus.STOPPED
                job_execution.exit_status = ExitStatus.COMPLETED.add_exit_description(
                    "The job was stopped before it started"
                )
                logger.info("job.stopped_before_start")
            else:
                job_execution.start_time = utcnow()
                job_execution.status = BatchStatus.STARTED
                self.repository.update(job_execution)
                logger.info("job.started", steps=len(self.steps))
                for listener in self.listeners:
                    listener.before_job(job_execution)
                self._run_steps(job_execution)
        except StepInterruptedError as e:
            logger.info("job.interrupted", error=str(e))
            job_execution.exit_status = ExitStatus.STOPPED.add_exit_description(e.__class__.__name__)
            job_execution.upgrade_status(BatchStatus.STOPPED)
            job_execution.add_failure_exception(e)
        except Exception as e:
            logger.error("job.failed", error_type=type(e).__name__, error=str(e))
            job_execution.exit_status = ExitStatus.FAILED.add_exit_description(e)
            job_execution.upgrade_status(BatchStatus.FAILED)
            job_execution.add_failure_exception(e)
        finally:
            if job_execution.status == BatchStatus.COMPLETED and not job_execution.step_executions:
                job_execution.exit_status = ExitStatus.NOOP.add_exit_description(
                    "All steps already completed or no steps configured for this job."
                )
            job_execution.end_time = utcnow()
            for listener in reversed(self.listeners):
                listener.after_job(job_execution)
            self.repository.update(job_execution)
            logger.info(
                "job.finished",
                status=job_execution.status.value,
                exit_code=job_execution.exit_status.exit_code,
            )

    def _run_steps(self, job_execution: JobExecution) -> None:
        last: StepExecution | None = None
        for step in self.steps:
            last = self.step_handler.handle_step(step, job_execution)
            if last is None or last.status != BatchStatus.COMPLETED:
                break

        if last is None:
            job_execution.upgrade_status(BatchStatus.COMPLETED)
            return
        job_execution.upgrade_status(last.status)
        job_execution.exit_status = last.exit_status

    def __repr__(self) -> str:
        return f"SimpleJob(name={self.name!r}, steps={[s.name for s in self.steps]})"


def run_job(repository: JobRepository, job: SimpleJob, parameters: JobParameters) -> JobExecution:
    """Get or create the job instance, create an execution and run it.

    Raises:
        JobExecutionAlreadyRunningError, JobInstanceAlreadyCompleteError,
        JobRestartError: the execution could not be created
    """
    instance = repository.get_job_instance(job.name, parameters)
    if instance is None:
        instance = repository.create_job_instance(job.name, parameters)
    job_execution = repository.create_job_execution(instance, parameters, restartable=job.restartable)
    job.execute(job_execution)
    return job_execution


__all__ = ["JobExecutionListener", "SimpleJob", "run_job"]
