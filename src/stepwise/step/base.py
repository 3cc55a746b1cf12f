"""
Step lifecycle shared by every step implementation.

Manifesto:
    A step owns exactly one thing: moving its StepExecution from STARTED to
    a terminal status and leaving the repository consistent with that
    status. Subclasses implement ``do_execute``; everything around it
    (listeners, streams, failure classification, final persistence) lives
    here so every step fails the same way.

    ``execute`` never raises for processing failures. The caller reads the
    outcome from the StepExecution.

Failure mapping:
    StepInterruptedError      -> STOPPED  / exit STOPPED
    FatalStepExecutionError   -> UNKNOWN  / exit UNKNOWN (do not restart)
    anything else             -> FAILED   / exit FAILED
    after-step hook raised    -> FAILED   even if processing succeeded
    final persistence failed  -> UNKNOWN

Tags:
    step, lifecycle, listener, status
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from stepwise.core.errors import FatalStepExecutionError, StepInterruptedError, is_fatal
from stepwise.core.logging import LogContext, get_logger
from stepwise.domain.context import ExecutionContext
from stepwise.domain.models import StepExecution, utcnow
from stepwise.domain.status import BatchStatus, ExitStatus
from stepwise.repository.job_repository import JobRepository
from stepwise.step.listener import StepExecutionListener

logger = get_logger(__name__)

UNLIMITED_STARTS = 2**31 - 1


def determine_batch_status(error: BaseException) -> BatchStatus:
    match error:
        case StepInterruptedError():
            return BatchStatus.STOPPED
        case FatalStepExecutionError():
            return BatchStatus.UNKNOWN
        case _:
            return BatchStatus.FAILED


def exit_status_for_failure(error: BaseException) -> ExitStatus:
    match error:
        case StepInterruptedError():
            return ExitStatus.STOPPED.add_exit_description(error.__class__.__name__)
        case FatalStepExecutionError():
            return ExitStatus.UNKNOWN.add_exit_description(error)
        case _:
            return ExitStatus.FAILED.add_exit_description(error)


class Step(ABC):
    """Base class for steps run by a job.

    Args:
        name: Step name, unique within a job
        repository: Where the step persists its execution state
        listeners: Step lifecycle listeners
        allow_start_if_complete: Re-run even when the last execution of
            this step in the same job instance COMPLETED
        start_limit: Maximum number of executions per job instance
    """

    def __init__(
        self,
        name: str,
        repository: JobRepository,
        *,
        listeners: Sequence[StepExecutionListener] = (),
        allow_start_if_complete: bool = False,
        start_limit: int = UNLIMITED_STARTS,
    ):
        self.name = name
        self.repository = repository
        self.listeners: list[StepExecutionListener] = list(listeners)
        self.allow_start_if_complete = allow_start_if_complete
        self.start_limit = start_limit

    def register_listener(self, listener: StepExecutionListener) -> None:
        self.listeners.append(listener)

    @abstractmethod
    def do_execute(self, step_execution: StepExecution) -> None:
        """Run the step body. Raise to fail the step."""

    def open(self, execution_context: ExecutionContext) -> None:
        pass

    def close(self, execution_context: ExecutionContext) -> None:
        pass

    def execute(self, step_execution: StepExecution) -> None:
        """Run the step and record the outcome on ``step_execution``."""
        with LogContext(
            step_name=self.name,
            step_execution_id=step_execution.id,
            job_execution_id=step_execution.job_execution_id,
        ):
            self._execute(step_execution)

    def _execute(self, step_execution: StepExecution) -> None:
        logger.info("step.started")
        step_execution.start_time = utcnow()
        step_execution.status = BatchStatus.STARTED
        self.repository.update(step_execution)

        exit_status = ExitStatus.EXECUTING
        try:
            for listener in self.listeners:
                listener.before_step(step_execution)
            self.open(step_execution.execution_context)
            self.do_execute(step_execution)

            exit_status = ExitStatus.COMPLETED.and_(step_execution.exit_status)
            if step_execution.terminate_only:
                raise StepInterruptedError("Step execution interrupted after last chunk")
            step_execution.upgrade_status(BatchStatus.COMPLETED)
        except Exception as e:
            step_execution.upgrade_status(determine_batch_status(e))
            exit_status = exit_status.and_(exit_status_for_failure(e))
            step_execution.add_failure_exception(e)
            logger.error(
                "step.failed",
                status=step_execution.status.value,
                error_type=type(e).__name__,
                error=str(e),
                fatal=is_fatal(e),
            )

        exit_status = exit_status.and_(step_execution.exit_status)
        step_execution.exit_status = exit_status
        exit_status = self._after_step(step_execution, exit_status)

        try:
            self.repository.update_execution_context(step_execution)
        except Exception as e:
            self._mark_unknown(step_execution, e)
            exit_status = exit_status.and_(ExitStatus.UNKNOWN)

        step_execution.end_time = utcnow()
        step_execution.exit_status = exit_status
        try:
            self.repository.update(step_execution)
        except Exception as e:
            self._mark_unknown(step_execution, e)
            step_execution.exit_status = step_execution.exit_status.and_(ExitStatus.UNKNOWN)

        try:
            self.close(step_execution.execution_context)
        except Exception as e:
            logger.error("step.close_failed", error=str(e))
            step_execution.add_failure_exception(e)

        logger.info(
            "step.finished",
            status=step_execution.status.value,
            exit_code=step_execution.exit_status.exit_code,
            read_count=step_execution.read_count,
            write_count=step_execution.write_count,
            commit_count=step_execution.commit_count,
            rollback_count=step_execution.rollback_count,
        )

    def _after_step(self, step_execution: StepExecution, exit_status: ExitStatus) -> ExitStatus:
        for listener in reversed(self.listeners):
            try:
                exit_status = exit_status.and_(listener.after_step(step_execution))
            except Exception as e:
                logger.error("step.after_step_failed", error=str(e))
                step_execution.upgrade_status(BatchStatus.FAILED)
                step_execution.add_failure_exception(e)
                exit_status = exit_status.and_(ExitStatus.FAILED.add_exit_description(e))
        return exit_status

    @staticmethod
    def _mark_unknown(step_execution: StepExecution, error: BaseException) -> None:
        logger.error(
            "step.metadata_save_failed",
            error=str(error),
            hint="job is in an unknown state and should not be restarted",
        )
        step_execution.status = BatchStatus.UNKNOWN
        step_execution.add_failure_exception(error)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


__all__ = [
    "Step",
    "UNLIMITED_STARTS",
    "determine_batch_status",
    "exit_status_for_failure",
]
