"""Retry context cache for stateful retry.

Stateful retry keeps each failed item's :class:`RetryContext` here, keyed
by the item's identity, so history survives transaction rollback and
re-delivery. Caches are constructed explicitly and passed to the policies
that share them; there is no process-wide cache.

A full cache is a hard failure (:class:`RetryCacheCapacityExceededError`),
never an eviction: dropping an entry would silently reset an item's retry
count, and a cache that fills up almost always means item keys are not
equal across redeliveries.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable
from typing import Protocol, runtime_checkable

from stepwise.core.errors import RetryCacheCapacityExceededError
from stepwise.core.logging import get_logger

from .context import RetryContext

logger = get_logger(__name__)

DEFAULT_CAPACITY = 4096


@runtime_checkable
class RetryContextCache(Protocol):
    """Storage for stateful retry contexts."""

    def get(self, key: Hashable) -> RetryContext | None:
        ...

    def put(self, key: Hashable, context: RetryContext) -> None:
        ...

    def remove(self, key: Hashable) -> None:
        ...

    def contains(self, key: Hashable) -> bool:
        ...


class MapRetryContextCache:
    """Bounded, thread-safe, dict-backed :class:`RetryContextCache`.

    Example:
        >>> cache = MapRetryContextCache(capacity=2)
        >>> cache.put("a", RetryContext())
        >>> cache.contains("a")
        True
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._map: dict[Hashable, RetryContext] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> RetryContext | None:
        with self._lock:
            return self._map.get(key)

    def put(self, key: Hashable, context: RetryContext) -> None:
        with self._lock:
            if key not in self._map and len(self._map) >= self.capacity:
                logger.error("retry_cache.capacity_exceeded", capacity=self.capacity)
                raise RetryCacheCapacityExceededError(
                    "Retry cache capacity limit breached. Consider whether the key "
                    "generator, or __eq__ and __hash__ of the failed items, are "
                    "consistent across redeliveries.",
                    capacity=self.capacity,
                )
            self._map[key] = context

    def remove(self, key: Hashable) -> None:
        with self._lock:
            self._map.pop(key, None)

    def contains(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._map

    def __len__(self) -> int:
        with self._lock:
            return len(self._map)


__all__ = ["DEFAULT_CAPACITY", "RetryContextCache", "MapRetryContextCache"]
