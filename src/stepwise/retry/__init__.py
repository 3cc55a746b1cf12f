"""Retry subsystem -- stateless and stateful retry behind one policy interface.

MODULE MAP
──────────
  1. context.py      ─ RetryContext (count, last failure, parent, attributes)
  2. classifier.py   ─ BinaryExceptionClassifier, SubclassClassifier
  3. policy.py       ─ Simple / Timeout / Composite / ExceptionClassifier /
                       Never / Always policies
  4. cache.py        ─ RetryContextCache, MapRetryContextCache (bounded)
  5. stateful.py     ─ RecoveryRetryCallback, StatefulRetryPolicy
  6. backoff.py      ─ No / Fixed / Exponential back-off
  7. template.py     ─ RetryTemplate, RetryListener
"""

from .backoff import BackOffPolicy, ExponentialBackOffPolicy, FixedBackOffPolicy, NoBackOffPolicy
from .cache import DEFAULT_CAPACITY, MapRetryContextCache, RetryContextCache
from .classifier import BinaryExceptionClassifier, SubclassClassifier
from .context import RetryContext
from .policy import (
    AlwaysRetryPolicy,
    CompositeRetryPolicy,
    ExceptionClassifierRetryPolicy,
    NeverRetryPolicy,
    RetryPolicy,
    SimpleRetryPolicy,
    TimeoutRetryPolicy,
)
from .stateful import RecoveryRetryCallback, StatefulRetryContext, StatefulRetryPolicy
from .template import RetryListener, RetryTemplate, current_retry_context

__all__ = [
    "RetryContext",
    "BinaryExceptionClassifier",
    "SubclassClassifier",
    "RetryPolicy",
    "NeverRetryPolicy",
    "AlwaysRetryPolicy",
    "SimpleRetryPolicy",
    "TimeoutRetryPolicy",
    "CompositeRetryPolicy",
    "ExceptionClassifierRetryPolicy",
    "DEFAULT_CAPACITY",
    "RetryContextCache",
    "MapRetryContextCache",
    "RecoveryRetryCallback",
    "StatefulRetryContext",
    "StatefulRetryPolicy",
    "BackOffPolicy",
    "NoBackOffPolicy",
    "FixedBackOffPolicy",
    "ExponentialBackOffPolicy",
    "RetryListener",
    "RetryTemplate",
    "current_retry_context",
]
