"""Decides whether a step runs, and with which ExecutionContext.

Resume rules, checked against the last execution of the same step in the
same JobInstance:

    last status     action
    ─────────────   ─────────────────────────────────────────────
    none            start fresh
    COMPLETED       skip (unless ``allow_start_if_complete``)
    ABANDONED       skip
    UNKNOWN         JobRestartError
    anything else   start, restoring the last ExecutionContext

Starting also requires the step's execution count to be below its
``start_limit`` (StartLimitExceededError otherwise).
"""

from __future__ import annotations

from stepwise.core.errors import JobRestartError, StartLimitExceededError, StepInterruptedError
from stepwise.core.logging import get_logger
from stepwise.domain.models import JobExecution, StepExecution
from stepwise.domain.status import BatchStatus
from stepwise.repository.job_repository import JobRepository
from stepwise.step.base import Step

logger = get_logger(__name__)


class SimpleStepHandler:
    def __init__(self, repository: JobRepository):
        self.repository = repository

    def handle_step(self, step: Step, job_execution: JobExecution) -> StepExecution | None:
        """Run ``step`` as part of ``job_execution`` if the resume rules allow.

        Returns:
            The new step execution, or the previous one when the step was
            skipped (None if it never ran).

        Raises:
            StepInterruptedError: the step ended STOPPED; the job is now
                STOPPING
        """
        job_instance = job_execution.job_instance
        last = self.repository.get_last_step_execution(job_instance, step.name)
        if last is not None and last.job_execution_id == job_execution.id:
            # same step run twice in one job execution
            last = None

        if not self._should_start(last, job_execution, step):
            return last

        step_execution = self.repository.create_step_execution(step.name, job_execution)
        if last is not None and last.status != BatchStatus.COMPLETED:
            logger.info(
                "step.resuming",
                step_name=step.name,
                previous_step_execution_id=last.id,
                previous_status=last.status.value,
            )
            step_execution.execution_context.put_all(last.execution_context.to_dict())
            self.repository.update_execution_context(step_execution)

        step.execute(step_execution)
        self.repository.update_execution_context(job_execution)

        if step_execution.status in (BatchStatus.STOPPING, BatchStatus.STOPPED):
            job_execution.status = BatchStatus.STOPPING
            raise StepInterruptedError(
                "Job interrupted by step execution",
                step_name=step.name,
                step_execution_id=step_execution.id,
                job_execution_id=job_execution.id,
            )
        return step_execution

    def _should_start(self, last: StepExecution | None, job_execution: JobExecution, step: Step) -> bool:
        status = last.status if last is not None else BatchStatus.STARTING

        if status == BatchStatus.UNKNOWN:
            raise JobRestartError(
                "Cannot restart step from UNKNOWN status. The step may have committed "
                "data that its metadata does not record. Manual intervention is probably necessary.",
                step_name=step.name,
                job_execution_id=job_execution.id,
            )

        if (status == BatchStatus.COMPLETED and not step.allow_start_if_complete) or status == BatchStatus.ABANDONED:
            logger.info("step.already_complete", step_name=step.name, status=status.value)
            return False

        count = self.repository.get_step_execution_count(job_execution.job_instance, step.name)
        if count < step.start_limit:
            return True
        raise StartLimitExceededError(
            f"Maximum start limit exceeded for step: {step.name} (start_limit={step.start_limit})",
            step_name=step.name,
            job_execution_id=job_execution.id,
        )


__all__ = ["SimpleStepHandler"]
