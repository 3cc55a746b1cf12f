"""Stepwise core -- cross-cutting primitives shared by every layer.

Architecture::

    errors.py      Structured error hierarchy (BatchError + categories)
    logging.py     structlog configuration, get_logger, LogContext
    settings.py    BatchSettings (pydantic-settings, STEPWISE_ prefix)
    hashing.py     Deterministic SHA-256 digests (JobKey derivation)
"""

from .errors import (
    BatchError,
    DuplicateJobInstanceError,
    ErrorCategory,
    ErrorContext,
    ExhaustedRetryError,
    FatalStepExecutionError,
    InconsistentRetryStateError,
    JobExecutionAlreadyRunningError,
    JobInstanceAlreadyCompleteError,
    JobRestartError,
    NoSuchJobExecutionError,
    OptimisticLockingFailureError,
    RepositoryError,
    RetryCacheCapacityExceededError,
    RetryError,
    SkipLimitExceededError,
    StartLimitExceededError,
    StepError,
    StepInterruptedError,
    TerminatedRetryError,
    is_fatal,
)
from .hashing import compute_hash
from .logging import LogContext, configure_from_settings, configure_logging, get_logger
from .settings import BatchSettings, RepositoryBackend, clear_settings_cache, get_settings

__all__ = [
    # errors
    "BatchError",
    "ErrorCategory",
    "ErrorContext",
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
    # hashing
    "compute_hash",
    # logging
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "LogContext",
    # settings
    "BatchSettings",
    "RepositoryBackend",
    "get_settings",
    "clear_settings_cache",
]
