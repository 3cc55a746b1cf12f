"""Stateful retry.

Used when the "retry loop" is really a sequence of separate invocations:
a chunk write fails, the transaction rolls back, and the same items are
delivered again in a new transaction. Each invocation carries a key that
identifies the logical operation; its retry history lives in a
:class:`~stepwise.retry.cache.RetryContextCache` under that key, so the
next invocation resumes the attempt count instead of starting over.

Lifecycle of one key::

    invocation 1: open (fresh)   -> callback fails -> register (cache.put) -> re-raise
    invocation 2: open (cached)  -> callback fails -> register            -> re-raise
    invocation 3: open (cached)  -> can_retry False -> handle_exhausted
                                     -> cache.remove(key) -> recoverer

A successful invocation closes the context, which also removes the key.
A failure the delegate does not classify as retryable removes it too:
the caller will not deliver that key again, so a later run that happens
to build the same key must start with a fresh history.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

from stepwise.core.errors import ExhaustedRetryError, InconsistentRetryStateError
from stepwise.core.logging import get_logger

from .cache import RetryContextCache
from .context import RetryContext
from .policy import RetryPolicy

logger = get_logger(__name__)


@dataclass
class RecoveryRetryCallback:
    """Work item for a stateful retry operation.

    Attributes:
        callback: The operation; receives the retry context
        key: Identity of the logical operation across invocations
        recoverer: Called once retry is exhausted, instead of re-raising
        force_refresh: Ignore any cached history for ``key``
    """

    callback: Callable[[RetryContext], Any]
    key: Hashable
    recoverer: Callable[[RetryContext], Any] | None = None
    force_refresh: bool = False

    def __call__(self, context: RetryContext) -> Any:
        return self.callback(context)


class StatefulRetryContext(RetryContext):
    """View over the cached delegate context for one invocation.

    Counts and the last failure are read from the delegate, which is the
    object kept in the cache between invocations.
    """

    def __init__(self, delegate: RetryContext, key: Hashable, recoverer: Callable[[RetryContext], Any] | None):
        super().__init__(delegate.parent)
        self.delegate = delegate
        self.key = key
        self.recoverer = recoverer
        self.initial_hash = hash(key)

    @property
    def retry_count(self) -> int:
        return self.delegate.retry_count

    @property
    def last_failure(self) -> BaseException | None:
        return self.delegate.last_failure

    def register_failure(self, error: BaseException | None) -> None:
        self.delegate.register_failure(error)


class StatefulRetryPolicy(RetryPolicy):
    """Wraps a stateless policy with cache-backed history.

    Args:
        delegate: Policy that decides how many attempts a key gets
        cache: Shared context cache
    """

    def __init__(self, delegate: RetryPolicy, cache: RetryContextCache):
        self.delegate = delegate
        self.cache = cache

    @property
    def is_stateful(self) -> bool:
        return True

    def open(self, parent: RetryContext | None = None, callback: Any = None) -> RetryContext:
        if not isinstance(callback, RecoveryRetryCallback):
            raise TypeError("Stateful retry requires a RecoveryRetryCallback")
        key = callback.key
        if callback.force_refresh:
            delegate_context = self.delegate.open(parent, callback)
        elif self.cache.contains(key):
            cached = self.cache.get(key)
            if cached is None:
                raise InconsistentRetryStateError(
                    "Inconsistent state for failed item: no history found. Consider whether "
                    "__eq__ or __hash__ of the item key might be inconsistent."
                )
            delegate_context = cached
            logger.debug("retry.stateful_resumed", retry_count=delegate_context.retry_count)
        else:
            delegate_context = self.delegate.open(parent, callback)
        return StatefulRetryContext(delegate_context, key, callback.recoverer)

    def can_retry(self, context: RetryContext) -> bool:
        assert isinstance(context, StatefulRetryContext)
        return self.delegate.can_retry(context.delegate)

    def register_failure(self, context: RetryContext, error: BaseException) -> None:
        assert isinstance(context, StatefulRetryContext)
        if context.initial_hash != hash(context.key):
            raise InconsistentRetryStateError(
                "Inconsistent state for failed item key: hash has changed. Consider whether "
                "__eq__ or __hash__ of the item key might be inconsistent.",
                cause=error,
            )
        if not self.delegate.classify(error):
            # never re-delivered, so no history may outlive this call
            self.cache.remove(context.key)
        else:
            self.cache.put(context.key, context.delegate)
        self.delegate.register_failure(context.delegate, error)

    def close(self, context: RetryContext) -> None:
        assert isinstance(context, StatefulRetryContext)
        self.cache.remove(context.key)
        self.delegate.close(context.delegate)

    def handle_exhausted(self, context: RetryContext) -> Any:
        """Forget the key and run the recoverer.

        Recovery outcome is logged; a failing recoverer does not raise.
        Without a recoverer the exhaustion is surfaced as
        :class:`ExhaustedRetryError`.
        """
        assert isinstance(context, StatefulRetryContext)
        self.cache.remove(context.key)
        if context.recoverer is None:
            raise ExhaustedRetryError(
                "Retry exhausted after last attempt with no recovery path",
                cause=context.last_failure,
                retry_count=context.retry_count,
            )
        try:
            result = context.recoverer(context)
        except Exception as e:
            logger.error(
                "retry.recovery_failed",
                retry_count=context.retry_count,
                error=str(e),
                exc_info=True,
            )
            return None
        logger.info("retry.recovered", retry_count=context.retry_count)
        return result

    def classify(self, error: BaseException) -> bool:
        return self.delegate.classify(error)


__all__ = [
    "RecoveryRetryCallback",
    "StatefulRetryContext",
    "StatefulRetryPolicy",
]
