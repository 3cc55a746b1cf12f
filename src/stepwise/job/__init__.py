"""Job orchestration -- sequential steps with restart-aware step handling."""

from .simple import JobExecutionListener, SimpleJob, run_job
from .step_handler import SimpleStepHandler

__all__ = ["JobExecutionListener", "SimpleJob", "SimpleStepHandler", "run_job"]
