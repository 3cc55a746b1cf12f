"""
stepwise - Restartable chunk-oriented batch processing.

Packages:
- stepwise.core: errors, logging, settings, hashing
- stepwise.domain: statuses, parameters, execution context, execution records
- stepwise.retry: stateless and stateful retry
- stepwise.repository: execution repository (memory and SQLite backends)
- stepwise.step: chunk execution loop
- stepwise.job: sequential jobs and restart-aware step handling
"""

__version__ = "0.1.0"

from stepwise.domain import (  # noqa: E402
    BatchStatus,
    ExecutionContext,
    ExitStatus,
    JobExecution,
    JobInstance,
    JobParameters,
    JobParametersBuilder,
    StepExecution,
)
from stepwise.job import SimpleJob, run_job  # noqa: E402
from stepwise.repository import JobRepository, create_job_repository  # noqa: E402
from stepwise.step import StepBuilder  # noqa: E402

__all__ = [
    "__version__",
    "BatchStatus",
    "ExitStatus",
    "ExecutionContext",
    "JobParameters",
    "JobParametersBuilder",
    "JobInstance",
    "JobExecution",
    "StepExecution",
    "JobRepository",
    "create_job_repository",
    "StepBuilder",
    "SimpleJob",
    "run_job",
]
