"""
Structured error types for the stepwise batch engine.

Every failure the engine can raise on its own behalf extends
:class:`BatchError`. Each error carries a category (which subsystem raised
it), a ``retryable`` flag and an optional structured context so that the
failure can be logged, persisted on an execution record and inspected by
the orchestrator without re-deriving it from logs.

Manifesto:
    - **Typed hierarchy:** identity/lifecycle, step, and retry failures are
      distinct types so callers can catch exactly what they handle.
    - **Never auto-retried:** none of these errors is retryable by default.
      Repository identity errors are surfaced synchronously; fatal errors
      mean the engine can no longer trust its own bookkeeping.
    - **Rich context:** job, step and execution identifiers travel with the
      error through ``with_context``.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        BatchError                             │
        │            (category, retryable, context, cause)             │
        ├──────────────────────────────────────────────────────────────┤
        │  RepositoryError          StepError          RetryError       │
        │  (REPOSITORY)             (STEP)             (RETRY)          │
        │      │                       │                   │            │
        │  JobExecutionAlready-    StepInterrupted    ExhaustedRetry    │
        │    RunningError          FatalStepExecution TerminatedRetry   │
        │  JobInstanceAlready-     StartLimitExceeded InconsistentRetry-│
        │    CompleteError         SkipLimitExceeded    StateError      │
        │  JobRestartError                            RetryCacheCapacity-│
        │  DuplicateJobInstance                         ExceededError   │
        │  NoSuchJobExecution                                           │
        │  OptimisticLockingFailure                                     │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> err = JobExecutionAlreadyRunningError("already running", job_name="import")
    >>> err.category
    <ErrorCategory.REPOSITORY: 'REPOSITORY'>
    >>> err.context.job_name
    'import'

Tags:
    error-handling, exception-hierarchy, batch, repository, retry
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Subsystem that raised an error."""

    REPOSITORY = "REPOSITORY"  # identity / lifecycle of executions
    STEP = "STEP"              # chunk loop, interruption, limits
    RETRY = "RETRY"            # retry policies and the context cache
    STORAGE = "STORAGE"        # DAO / serialization failures
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to a :class:`BatchError`.

    Attributes:
        job_name: Name of the job being run
        job_execution_id: Identifier of the job execution
        step_name: Name of the step being run
        step_execution_id: Identifier of the step execution
        metadata: Additional key-value pairs
    """

    job_name: str | None = None
    job_execution_id: int | None = None
    step_name: str | None = None
    step_execution_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging, skipping unset fields."""
        result: dict[str, Any] = {}
        for key in ["job_name", "job_execution_id", "step_name", "step_execution_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BatchError(Exception):
    """Base exception for all stepwise errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        **context_fields: Any,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        if context_fields:
            self.with_context(**context_fields)

    def with_context(self, **kwargs: Any) -> BatchError:
        """Attach context fields; unknown keys go into ``metadata``."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# Repository (identity / lifecycle)
# =============================================================================


class RepositoryError(BatchError):
    """Identity or lifecycle rule violated in the job repository."""

    default_category = ErrorCategory.REPOSITORY


class JobExecutionAlreadyRunningError(RepositoryError):
    """A running execution already exists for the job instance."""


class JobInstanceAlreadyCompleteError(RepositoryError):
    """The job instance is complete and may not be run again."""


class JobRestartError(RepositoryError):
    """The job instance cannot be restarted in its current state."""


class DuplicateJobInstanceError(RepositoryError):
    """A job instance already exists for this name and job key."""


class NoSuchJobExecutionError(RepositoryError):
    """Referenced job execution is not persisted."""


class OptimisticLockingFailureError(RepositoryError):
    """A persisted record was modified by someone else since it was read."""

    default_category = ErrorCategory.STORAGE


# =============================================================================
# Step processing
# =============================================================================


class StepError(BatchError):
    """Failure raised by the step execution machinery itself."""

    default_category = ErrorCategory.STEP


class StepInterruptedError(StepError):
    """Cooperative interruption observed at a chunk boundary."""


class FatalStepExecutionError(StepError):
    """Committed data and recorded progress may be inconsistent.

    Raised when persisting step state fails after a successful commit. Never
    retried; the step ends with status UNKNOWN.
    """


class StartLimitExceededError(StepError):
    """The step has been started more times than its start limit allows."""


class SkipLimitExceededError(StepError):
    """More items were skipped than the skip policy permits."""

    def __init__(self, skip_limit: int, cause: BaseException | None = None):
        self.skip_limit = skip_limit
        super().__init__(f"Skip limit of {skip_limit} exceeded", cause=cause)


# =============================================================================
# Retry
# =============================================================================


class RetryError(BatchError):
    """Base class for retry subsystem failures."""

    default_category = ErrorCategory.RETRY


class ExhaustedRetryError(RetryError):
    """Retry exhausted and no recovery path was available."""


class TerminatedRetryError(RetryError):
    """A retry listener or policy aborted the retry."""


class InconsistentRetryStateError(RetryError):
    """The caller's key equality contract is broken.

    Raised when a stateful retry key changes its hash between open and
    failure registration, or when cached history vanishes unexpectedly.
    """


class RetryCacheCapacityExceededError(RetryError):
    """The retry context cache is full.

    Distinct from business exhaustion: a full cache usually means item
    keys are not equal across redeliveries.
    """


def is_fatal(error: BaseException) -> bool:
    """True for errors after which bookkeeping can no longer be trusted."""
    return isinstance(
        error,
        (FatalStepExecutionError, InconsistentRetryStateError, RetryCacheCapacityExceededError),
    )


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BatchError",
    "RepositoryError",
    "JobExecutionAlreadyRunningError",
    "JobInstanceAlreadyCompleteError",
    "JobRestartError",
    "DuplicateJobInstanceError",
    "NoSuchJobExecutionError",
    "OptimisticLockingFailureError",
    "StepError",
    "StepInterruptedError",
    "FatalStepExecutionError",
    "StartLimitExceededError",
    "SkipLimitExceededError",
    "RetryError",
    "ExhaustedRetryError",
    "TerminatedRetryError",
    "InconsistentRetryStateError",
    "RetryCacheCapacityExceededError",
    "is_fatal",
]
