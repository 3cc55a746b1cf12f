"""Skip policies for read and process failures.

Consulted after the retry policy has given up on an item. Engine errors
(:class:`~stepwise.core.errors.BatchError`) are never skipped.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from stepwise.core.errors import BatchError, SkipLimitExceededError
from stepwise.retry.classifier import BinaryExceptionClassifier


class SkipPolicy(ABC):
    @abstractmethod
    def should_skip(self, error: BaseException, skip_count: int) -> bool:
        """True to skip the failing item.

        Raises:
            SkipLimitExceededError: the error is skippable but the limit
                has been reached
        """


class NeverSkipPolicy(SkipPolicy):
    def should_skip(self, error: BaseException, skip_count: int) -> bool:
        return False


class AlwaysSkipPolicy(SkipPolicy):
    def should_skip(self, error: BaseException, skip_count: int) -> bool:
        return not isinstance(error, BatchError)


class LimitCheckingSkipPolicy(SkipPolicy):
    """Skip classified exceptions up to ``skip_limit`` items per step.

    Args:
        skip_limit: Maximum number of skipped items
        skippable_exceptions: Exception classes (or class -> bool mapping);
            defaults to every ``Exception``
    """

    def __init__(
        self,
        skip_limit: int = 10,
        skippable_exceptions: Mapping[type[BaseException], bool] | Iterable[type[BaseException]] | None = None,
    ):
        self.skip_limit = skip_limit
        if skippable_exceptions is None:
            skippable_exceptions = {Exception: True}
        self._classifier = BinaryExceptionClassifier(skippable_exceptions, default=False)

    def should_skip(self, error: BaseException, skip_count: int) -> bool:
        if isinstance(error, BatchError) or not self._classifier.classify(error):
            return False
        if skip_count < self.skip_limit:
            return True
        raise SkipLimitExceededError(self.skip_limit, cause=error)


__all__ = ["SkipPolicy", "NeverSkipPolicy", "AlwaysSkipPolicy", "LimitCheckingSkipPolicy"]
