"""Retry policies.

Every policy implements the same small interface so that policies compose
(composite, per-exception dispatch, stateful wrapping) without the template
knowing which variant it drives::

    open(parent, callback) -> RetryContext
    can_retry(ctx)           may another attempt be made?
    register_failure(ctx, e) record a failed attempt
    close(ctx)               the operation finished (success or exhaustion)
    handle_exhausted(ctx)    no more attempts; default re-raises
    classify(e)              would this policy ever retry this error?

Example:
    >>> policy = SimpleRetryPolicy(max_attempts=3, retryable_exceptions=[ConnectionError])
    >>> ctx = policy.open()
    >>> policy.register_failure(ctx, ConnectionError("reset"))
    >>> policy.can_retry(ctx)
    True
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from stepwise.core.errors import ExhaustedRetryError

from .classifier import BinaryExceptionClassifier, SubclassClassifier
from .context import RetryContext


class RetryPolicy(ABC):
    """Base class for all retry policies."""

    def open(self, parent: RetryContext | None = None, callback: Any = None) -> RetryContext:
        return RetryContext(parent)

    @abstractmethod
    def can_retry(self, context: RetryContext) -> bool:
        ...

    def register_failure(self, context: RetryContext, error: BaseException) -> None:
        context.register_failure(error)

    def close(self, context: RetryContext) -> None:
        pass

    def handle_exhausted(self, context: RetryContext) -> Any:
        """Called when no more attempts may be made. Re-raises by default."""
        if context.last_failure is not None:
            raise context.last_failure
        raise ExhaustedRetryError("Retry exhausted without a recorded failure")

    def classify(self, error: BaseException) -> bool:
        return True

    @property
    def is_stateful(self) -> bool:
        return False


class NeverRetryPolicy(RetryPolicy):
    """Allows the first attempt only."""

    def can_retry(self, context: RetryContext) -> bool:
        return context.retry_count == 0

    def classify(self, error: BaseException) -> bool:
        return False


class AlwaysRetryPolicy(RetryPolicy):
    """Retries forever. Mostly useful in tests and as a composite child."""

    def can_retry(self, context: RetryContext) -> bool:
        return True


class SimpleRetryPolicy(RetryPolicy):
    """Fixed number of attempts for a set of retryable exception types.

    Args:
        max_attempts: Total attempts, including the first one
        retryable_exceptions: Exception classes (or class -> bool mapping)
            that may be retried; defaults to every ``Exception``
        traverse_causes: Also classify along ``__cause__`` chains
    """

    DEFAULT_MAX_ATTEMPTS = 3

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retryable_exceptions: Mapping[type[BaseException], bool] | Iterable[type[BaseException]] | None = None,
        traverse_causes: bool = False,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        if retryable_exceptions is None:
            retryable_exceptions = {Exception: True}
        self._classifier = BinaryExceptionClassifier(
            retryable_exceptions, default=False, traverse_causes=traverse_causes
        )

    def can_retry(self, context: RetryContext) -> bool:
        error = context.last_failure
        if error is not None and not self._classifier.classify(error):
            return False
        return context.retry_count < self.max_attempts

    def classify(self, error: BaseException) -> bool:
        return self._classifier.classify(error)

    def __repr__(self) -> str:
        return f"SimpleRetryPolicy(max_attempts={self.max_attempts})"


class TimeoutRetryPolicy(RetryPolicy):
    """Retries until ``timeout`` seconds have elapsed since ``open``.

    Args:
        timeout: Wall-clock bound in seconds for one retry operation
        clock: Monotonic clock, injectable for tests
    """

    DEFAULT_TIMEOUT = 1.0

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock

    def open(self, parent: RetryContext | None = None, callback: Any = None) -> RetryContext:
        context = RetryContext(parent)
        context.start_time = self._clock()
        return context

    def can_retry(self, context: RetryContext) -> bool:
        return (self._clock() - context.start_time) <= self.timeout


class CompositeRetryContext(RetryContext):
    """Holds one child context per child policy."""

    def __init__(self, parent: RetryContext | None, contexts: list[RetryContext], policies: Sequence[RetryPolicy]):
        super().__init__(parent)
        self.contexts = contexts
        self.policies = policies


class CompositeRetryPolicy(RetryPolicy):
    """Combines child policies.

    Pessimistic (default): every child must permit a retry. Optimistic: any
    child permitting a retry is enough.
    """

    def __init__(self, policies: Sequence[RetryPolicy], optimistic: bool = False):
        self.policies = list(policies)
        self.optimistic = optimistic

    def open(self, parent: RetryContext | None = None, callback: Any = None) -> RetryContext:
        contexts = [policy.open(parent, callback) for policy in self.policies]
        return CompositeRetryContext(parent, contexts, self.policies)

    def can_retry(self, context: RetryContext) -> bool:
        assert isinstance(context, CompositeRetryContext)
        results = (p.can_retry(c) for p, c in zip(context.policies, context.contexts))
        return any(results) if self.optimistic else all(results)

    def register_failure(self, context: RetryContext, error: BaseException) -> None:
        assert isinstance(context, CompositeRetryContext)
        for policy, child in zip(context.policies, context.contexts):
            policy.register_failure(child, error)
        context.register_failure(error)

    def close(self, context: RetryContext) -> None:
        assert isinstance(context, CompositeRetryContext)
        first_error: BaseException | None = None
        for policy, child in zip(context.policies, context.contexts):
            try:
                policy.close(child)
            except Exception as e:
                first_error = first_error or e
        if first_error is not None:
            raise first_error

    def classify(self, error: BaseException) -> bool:
        results = (p.classify(error) for p in self.policies)
        return any(results) if self.optimistic else all(results)


class ExceptionClassifierRetryContext(RetryContext):
    """Tracks the child policy chosen for the most recent failure."""

    def __init__(self, parent: RetryContext | None):
        super().__init__(parent)
        self.policy: RetryPolicy | None = None
        self.child: RetryContext | None = None
        self.children: dict[int, tuple[RetryPolicy, RetryContext]] = {}


class ExceptionClassifierRetryPolicy(RetryPolicy):
    """Dispatches to a child policy chosen by the failure's type.

    Each child keeps its own context, so a burst of one error type does not
    consume the attempts budgeted for another.

    Args:
        policy_map: Exception class -> policy; resolved along the MRO
        default: Policy for unmatched exceptions (never retry by default)
    """

    def __init__(
        self,
        policy_map: Mapping[type[BaseException], RetryPolicy],
        default: RetryPolicy | None = None,
    ):
        self._classifier: SubclassClassifier[RetryPolicy] = SubclassClassifier(
            policy_map, default or NeverRetryPolicy()
        )

    def open(self, parent: RetryContext | None = None, callback: Any = None) -> RetryContext:
        return ExceptionClassifierRetryContext(parent)

    def _policy_for(self, error: BaseException) -> RetryPolicy:
        policy = self._classifier.classify(error)
        assert policy is not None
        return policy

    def can_retry(self, context: RetryContext) -> bool:
        assert isinstance(context, ExceptionClassifierRetryContext)
        if context.policy is None or context.child is None:
            return True
        return context.policy.can_retry(context.child)

    def register_failure(self, context: RetryContext, error: BaseException) -> None:
        assert isinstance(context, ExceptionClassifierRetryContext)
        policy = self._policy_for(error)
        entry = context.children.get(id(policy))
        if entry is None:
            entry = (policy, policy.open(context.parent))
            context.children[id(policy)] = entry
        context.policy, context.child = entry
        policy.register_failure(context.child, error)
        context.register_failure(error)

    def close(self, context: RetryContext) -> None:
        assert isinstance(context, ExceptionClassifierRetryContext)
        for policy, child in context.children.values():
            policy.close(child)

    def classify(self, error: BaseException) -> bool:
        return self._policy_for(error).classify(error)


__all__ = [
    "RetryPolicy",
    "NeverRetryPolicy",
    "AlwaysRetryPolicy",
    "SimpleRetryPolicy",
    "TimeoutRetryPolicy",
    "CompositeRetryContext",
    "CompositeRetryPolicy",
    "ExceptionClassifierRetryContext",
    "ExceptionClassifierRetryPolicy",
]
