"""Cooperative step interruption.

Nothing preempts a running chunk. The chunk loop calls
:meth:`StepInterruptionPolicy.check_interrupted` at chunk boundaries only;
it raises :class:`StepInterruptedError` when either the step execution's
``terminate_only`` flag is set (a stop requested through the repository)
or the cancellation token passed into the step was cancelled.
"""

from __future__ import annotations

import threading

from stepwise.core.errors import StepInterruptedError
from stepwise.domain.models import StepExecution


class CancellationToken:
    """Thread-safe, one-way cancellation signal."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class StepInterruptionPolicy:
    """Turns a stop request into :class:`StepInterruptedError`."""

    def __init__(self, token: CancellationToken | None = None):
        self.token = token

    def is_interrupted(self, step_execution: StepExecution) -> bool:
        if step_execution.terminate_only:
            return True
        return self.token is not None and self.token.is_cancelled

    def check_interrupted(self, step_execution: StepExecution) -> None:
        if self.is_interrupted(step_execution):
            raise StepInterruptedError(
                "Step execution interrupted at chunk boundary",
                step_name=step_execution.step_name,
                step_execution_id=step_execution.id,
                job_execution_id=step_execution.job_execution_id,
            )


__all__ = ["CancellationToken", "StepInterruptionPolicy"]
