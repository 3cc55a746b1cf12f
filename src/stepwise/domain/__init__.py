"""Domain value types and execution records.

Contracts & Models
  1. status.py       ─ BatchStatus (ordered), ExitStatus
  2. parameters.py   ─ JobParameter(s), builder, job key derivation
  3. context.py      ─ ExecutionContext (restart state, dirty tracking)
  4. models.py       ─ JobInstance, JobExecution, StepExecution
"""

from .context import ExecutionContext
from .models import JobExecution, JobInstance, StepContribution, StepExecution
from .parameters import (
    DefaultJobKeyGenerator,
    JobKeyGenerator,
    JobParameter,
    JobParameters,
    JobParametersBuilder,
    default_job_key,
)
from .status import BatchStatus, ExitStatus

__all__ = [
    "BatchStatus",
    "ExitStatus",
    "JobParameter",
    "JobParameters",
    "JobParametersBuilder",
    "JobKeyGenerator",
    "DefaultJobKeyGenerator",
    "default_job_key",
    "ExecutionContext",
    "JobInstance",
    "JobExecution",
    "StepExecution",
    "StepContribution",
]
