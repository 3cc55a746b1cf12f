"""Batch and exit status value types.

``BatchStatus`` is the lifecycle status of job and step executions. Its
members are ordered so that reconciling a stale in-memory execution with
the persisted one can only ever raise the status::

    STARTING < STARTED < STOPPING < STOPPED < COMPLETED < FAILED < ABANDONED < UNKNOWN

UNKNOWN is the maximum and therefore sticky.

``ExitStatus`` is the (code, description) pair handed back to callers. Exit
codes combine by severity so that the worst outcome of a step (and of its
after-step hooks) is what the caller sees.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class BatchStatus(str, Enum):
    """Status of a job or step execution.

    Ordered for the upgrade rule: ``upgrade_to`` never lowers a status.
    """

    STARTING = "STARTING"
    STARTED = "STARTED"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ABANDONED = "ABANDONED"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return _BATCH_STATUS_ORDER.index(self)

    @property
    def is_running(self) -> bool:
        """True for STARTING, STARTED and STOPPING."""
        return self in (BatchStatus.STARTING, BatchStatus.STARTED, BatchStatus.STOPPING)

    @property
    def is_unsuccessful(self) -> bool:
        """True for FAILED, ABANDONED and UNKNOWN."""
        return self in (BatchStatus.FAILED, BatchStatus.ABANDONED, BatchStatus.UNKNOWN)

    def is_greater_than(self, other: BatchStatus) -> bool:
        return self.rank > other.rank

    def is_less_than(self, other: BatchStatus) -> bool:
        return self.rank < other.rank

    def upgrade_to(self, other: BatchStatus) -> BatchStatus:
        """Return the greater of ``self`` and ``other``."""
        return BatchStatus.max(self, other)

    @staticmethod
    def max(a: BatchStatus, b: BatchStatus) -> BatchStatus:
        return a if a.rank >= b.rank else b


_BATCH_STATUS_ORDER: tuple[BatchStatus, ...] = (
    BatchStatus.STARTING,
    BatchStatus.STARTED,
    BatchStatus.STOPPING,
    BatchStatus.STOPPED,
    BatchStatus.COMPLETED,
    BatchStatus.FAILED,
    BatchStatus.ABANDONED,
    BatchStatus.UNKNOWN,
)


# Exit code severity; any code not listed is custom and ranks highest.
_EXIT_CODE_SEVERITY: dict[str, int] = {
    "EXECUTING": 1,
    "COMPLETED": 2,
    "NOOP": 3,
    "STOPPED": 4,
    "FAILED": 5,
    "UNKNOWN": 6,
}
_CUSTOM_SEVERITY = 7


@dataclass(frozen=True)
class ExitStatus:
    """Exit code plus human-readable description.

    Immutable: every modifier returns a new instance.

    Example:
        >>> ExitStatus.COMPLETED.and_(ExitStatus.FAILED).exit_code
        'FAILED'
    """

    exit_code: str
    exit_description: str = ""

    UNKNOWN: ClassVar[ExitStatus]
    EXECUTING: ClassVar[ExitStatus]
    COMPLETED: ClassVar[ExitStatus]
    NOOP: ClassVar[ExitStatus]
    FAILED: ClassVar[ExitStatus]
    STOPPED: ClassVar[ExitStatus]

    @property
    def severity(self) -> int:
        return _EXIT_CODE_SEVERITY.get(self.exit_code, _CUSTOM_SEVERITY)

    def and_(self, other: ExitStatus | None) -> ExitStatus:
        """Combine with ``other``, keeping the more severe exit code.

        Descriptions are concatenated with ``"; "``. On equal severity the
        code of ``self`` wins.
        """
        if other is None:
            return self
        result = self.add_exit_description(other.exit_description)
        if other.severity > self.severity:
            result = result.replace_exit_code(other.exit_code)
        return result

    def replace_exit_code(self, code: str) -> ExitStatus:
        return ExitStatus(code, self.exit_description)

    def add_exit_description(self, description: str | BaseException | None) -> ExitStatus:
        """Append to the description.

        An exception is rendered as its formatted traceback so the
        root-cause message is always part of the description.
        """
        if isinstance(description, BaseException):
            description = "".join(traceback.format_exception(description)).rstrip()
        if not description:
            return self
        if not self.exit_description or description == self.exit_description:
            return ExitStatus(self.exit_code, description)
        return ExitStatus(self.exit_code, f"{self.exit_description}; {description}")

    def is_running(self) -> bool:
        return self.exit_code in ("EXECUTING", "UNKNOWN")

    def __str__(self) -> str:
        return f"exitCode={self.exit_code};exitDescription={self.exit_description}"


def _install_exit_constants() -> None:
    for code in ("UNKNOWN", "EXECUTING", "COMPLETED", "NOOP", "FAILED", "STOPPED"):
        setattr(ExitStatus, code, ExitStatus(code))


_install_exit_constants()


__all__ = ["BatchStatus", "ExitStatus"]
