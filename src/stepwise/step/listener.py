"""Step, chunk and skip listeners. Override only the hooks you need."""

from __future__ import annotations

from typing import Any

from stepwise.domain.models import StepExecution
from stepwise.domain.status import ExitStatus


class StepExecutionListener:
    def before_step(self, step_execution: StepExecution) -> None:
        pass

    def after_step(self, step_execution: StepExecution) -> ExitStatus | None:
        """Return an ExitStatus to combine into the step's, or None."""
        return None


class ChunkListener:
    def before_chunk(self, step_execution: StepExecution) -> None:
        pass

    def after_chunk(self, step_execution: StepExecution) -> None:
        pass

    def after_chunk_error(self, step_execution: StepExecution, error: BaseException) -> None:
        pass


class SkipListener:
    def on_skip_in_read(self, error: BaseException) -> None:
        pass

    def on_skip_in_process(self, item: Any, error: BaseException) -> None:
        pass

    def on_skip_in_write(self, item: Any, error: BaseException | None) -> None:
        pass


__all__ = ["StepExecutionListener", "ChunkListener", "SkipListener"]
