"""Back-off policies applied between retry attempts.

Example:
    >>> policy = ExponentialBackOffPolicy(initial_interval=0.1, max_interval=2.0, jitter=False)
    >>> ctx = policy.start()
    >>> [policy.next_delay(ctx) for _ in range(3)]
    [0.1, 0.2, 0.4]
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

Sleeper = Callable[[float], None]


class BackOffPolicy(ABC):
    """Pause between attempts."""

    def start(self) -> Any:
        """Create per-operation back-off state."""
        return None

    @abstractmethod
    def back_off(self, state: Any) -> None:
        ...


class NoBackOffPolicy(BackOffPolicy):
    """Retry immediately."""

    def back_off(self, state: Any) -> None:
        return None


@dataclass
class FixedBackOffPolicy(BackOffPolicy):
    """Constant delay between attempts."""

    interval: float = 1.0
    sleeper: Sleeper = field(default=time.sleep, repr=False)

    def back_off(self, state: Any) -> None:
        self.sleeper(self.interval)


@dataclass
class _ExponentialState:
    attempt: int = 0


@dataclass
class ExponentialBackOffPolicy(BackOffPolicy):
    """Exponential back-off with optional jitter.

    Delay = min(initial_interval * (multiplier ** attempt), max_interval) + jitter

    Attributes:
        initial_interval: First delay in seconds
        multiplier: Exponential multiplier
        max_interval: Maximum delay cap in seconds
        jitter: Add randomness to spread out synchronized retries
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
        sleeper: Sleep function, injectable for tests
    """

    initial_interval: float = 0.1
    multiplier: float = 2.0
    max_interval: float = 30.0
    jitter: bool = True
    jitter_range: float = 0.25
    sleeper: Sleeper = field(default=time.sleep, repr=False)

    def start(self) -> _ExponentialState:
        return _ExponentialState()

    def next_delay(self, state: _ExponentialState) -> float:
        delay = min(
            self.initial_interval * (self.multiplier ** state.attempt),
            self.max_interval,
        )
        state.attempt += 1

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)

        return delay

    def back_off(self, state: _ExponentialState) -> None:
        self.sleeper(self.next_delay(state))


__all__ = [
    "Sleeper",
    "BackOffPolicy",
    "NoBackOffPolicy",
    "FixedBackOffPolicy",
    "ExponentialBackOffPolicy",
]
