"""RetryTemplate -- drives a callback under a retry policy.

Stateless operation (the default): the template loops in-process until the
callback succeeds or the policy is exhausted, backing off between attempts.
On exhaustion the ``recovery`` callable is used if given, otherwise the
policy's ``handle_exhausted`` (which re-raises the last failure).

Stateful operation (a :class:`~stepwise.retry.stateful.StatefulRetryPolicy`
with a :class:`~stepwise.retry.stateful.RecoveryRetryCallback`): one attempt
per ``execute`` call. A failure is registered in the cache and re-raised so
the caller can roll back; the next call for the same key resumes the
history, and a call that finds the key exhausted goes straight to recovery
without invoking the callback.

Example:
    >>> template = RetryTemplate(SimpleRetryPolicy(max_attempts=3))
    >>> template.execute(lambda ctx: fetch_page(ctx.retry_count))
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextvars import ContextVar
from typing import Any, TypeVar

from stepwise.core.errors import TerminatedRetryError
from stepwise.core.logging import get_logger

from .backoff import BackOffPolicy, NoBackOffPolicy
from .context import RetryContext
from .policy import RetryPolicy, SimpleRetryPolicy

logger = get_logger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[RetryContext], T]
RecoveryCallback = Callable[[RetryContext], T]

# Enclosing context of nested execute() calls in the current thread / task.
_current_context: ContextVar[RetryContext | None] = ContextVar("stepwise_retry_context", default=None)


def current_retry_context() -> RetryContext | None:
    """The context of the innermost ``execute`` call in progress, if any."""
    return _current_context.get()


class RetryListener:
    """Hooks around a retry operation. Override what you need.

    ``open`` returning False aborts the operation with
    :class:`TerminatedRetryError` before the first attempt.
    """

    def open(self, context: RetryContext, callback: Any) -> bool:
        return True

    def on_error(self, context: RetryContext, callback: Any, error: BaseException) -> None:
        pass

    def close(self, context: RetryContext, callback: Any, error: BaseException | None) -> None:
        pass


class RetryTemplate:
    """Executes callbacks with retry, back-off, listeners and recovery.

    Args:
        retry_policy: Default policy (3 attempts, any ``Exception``)
        back_off_policy: Pause between attempts (none by default)
        listeners: Retry listeners, called in order on open/error and in
            reverse order on close
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        back_off_policy: BackOffPolicy | None = None,
        listeners: Sequence[RetryListener] = (),
    ):
        self.retry_policy = retry_policy or SimpleRetryPolicy()
        self.back_off_policy = back_off_policy or NoBackOffPolicy()
        self.listeners: list[RetryListener] = list(listeners)

    def register_listener(self, listener: RetryListener) -> None:
        self.listeners.append(listener)

    def execute(
        self,
        callback: RetryCallback[T],
        recovery: RecoveryCallback[T] | None = None,
        policy: RetryPolicy | None = None,
    ) -> T:
        policy = policy or self.retry_policy
        parent = _current_context.get()
        context = policy.open(parent, callback)
        token = _current_context.set(context)

        last_error: BaseException | None = None
        exhausted = False
        try:
            if not self._open_listeners(context, callback):
                raise TerminatedRetryError("Retry terminated abnormally by listener")

            back_off_state = self.back_off_policy.start()

            while policy.can_retry(context) and not context.exhausted_only:
                try:
                    last_error = None
                    return callback(context)
                except Exception as e:
                    last_error = e
                    policy.register_failure(context, e)
                    self._on_error_listeners(context, callback, e)

                    if policy.can_retry(context) and not context.exhausted_only:
                        self.back_off_policy.back_off(back_off_state)

                    if policy.is_stateful:
                        logger.debug(
                            "retry.rethrow_stateful",
                            retry_count=context.retry_count,
                            error=str(e),
                        )
                        raise

                    logger.debug(
                        "retry.attempt_failed",
                        retry_count=context.retry_count,
                        error=str(e),
                    )

            exhausted = True
            logger.debug("retry.exhausted", retry_count=context.retry_count)
            if recovery is not None:
                return recovery(context)
            return policy.handle_exhausted(context)

        finally:
            try:
                if last_error is None or exhausted or not policy.is_stateful:
                    policy.close(context)
            finally:
                self._close_listeners(context, callback, last_error)
                _current_context.reset(token)

    # ── Listener fan-out ─────────────────────────────────────────

    def _open_listeners(self, context: RetryContext, callback: Any) -> bool:
        result = True
        for listener in self.listeners:
            result = listener.open(context, callback) and result
        return result

    def _on_error_listeners(self, context: RetryContext, callback: Any, error: BaseException) -> None:
        for listener in reversed(self.listeners):
            listener.on_error(context, callback, error)

    def _close_listeners(self, context: RetryContext, callback: Any, error: BaseException | None) -> None:
        for listener in reversed(self.listeners):
            listener.close(context, callback, error)


__all__ = [
    "RetryCallback",
    "RecoveryCallback",
    "RetryListener",
    "RetryTemplate",
    "current_retry_context",
]
