"""Retry context -- per-operation retry state."""

from __future__ import annotations

import time
from typing import Any


class RetryContext:
    """State of one logical retry operation.

    Tracks how many failures were registered, the last failure, and a
    reference to the enclosing context when retry operations are nested.
    Policies keep their own bookkeeping in the attribute bag.

    Attributes:
        parent: Enclosing context, or None
        exhausted_only: When set, no further attempts are made and the
            operation goes straight to exhaustion handling
        start_time: ``time.monotonic()`` at creation
    """

    def __init__(self, parent: RetryContext | None = None):
        self.parent = parent
        self.exhausted_only = False
        self.start_time = time.monotonic()
        self._retry_count = 0
        self._last_failure: BaseException | None = None
        self._attributes: dict[str, Any] = {}

    @property
    def retry_count(self) -> int:
        """Number of failures registered so far."""
        return self._retry_count

    @property
    def last_failure(self) -> BaseException | None:
        return self._last_failure

    def register_failure(self, error: BaseException | None) -> None:
        self._last_failure = error
        if error is not None:
            self._retry_count += 1

    def set_exhausted_only(self) -> None:
        self.exhausted_only = True

    # ── Attributes ───────────────────────────────────────────────

    def set_attribute(self, name: str, value: Any) -> None:
        self._attributes[name] = value

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self._attributes.get(name, default)

    def has_attribute(self, name: str) -> bool:
        return name in self._attributes

    def remove_attribute(self, name: str) -> Any:
        return self._attributes.pop(name, None)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(retry_count={self.retry_count}, "
            f"last_failure={self.last_failure!r}, exhausted_only={self.exhausted_only})"
        )
