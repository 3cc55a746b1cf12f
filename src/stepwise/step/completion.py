"""Chunk completion policies.

A completion policy decides when the current chunk is full. Reader
exhaustion always ends the chunk as well, independent of the policy.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass
class CompletionState:
    """Per-chunk counter and start time."""

    count: int = 0
    started: float = 0.0
    children: list[Any] = field(default_factory=list)


class CompletionPolicy(ABC):
    @abstractmethod
    def start(self) -> CompletionState:
        ...

    @abstractmethod
    def is_complete(self, state: CompletionState) -> bool:
        ...

    def update(self, state: CompletionState) -> None:
        """Record that one more item was added to the chunk."""
        state.count += 1


class SimpleCompletionPolicy(CompletionPolicy):
    """Complete after ``chunk_size`` items."""

    DEFAULT_CHUNK_SIZE = 5

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.chunk_size = chunk_size

    def start(self) -> CompletionState:
        return CompletionState()

    def is_complete(self, state: CompletionState) -> bool:
        return state.count >= self.chunk_size

    def __repr__(self) -> str:
        return f"SimpleCompletionPolicy(chunk_size={self.chunk_size})"


class TimeoutTerminationPolicy(CompletionPolicy):
    """Complete once ``timeout`` seconds have passed since the chunk started."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock

    def start(self) -> CompletionState:
        return CompletionState(started=self._clock())

    def is_complete(self, state: CompletionState) -> bool:
        return (self._clock() - state.started) >= self.timeout


class CompositeCompletionPolicy(CompletionPolicy):
    """Complete as soon as any child policy is complete."""

    def __init__(self, policies: Sequence[CompletionPolicy]):
        self.policies = list(policies)

    def start(self) -> CompletionState:
        return CompletionState(children=[p.start() for p in self.policies])

    def is_complete(self, state: CompletionState) -> bool:
        return any(p.is_complete(s) for p, s in zip(self.policies, state.children))

    def update(self, state: CompletionState) -> None:
        state.count += 1
        for policy, child in zip(self.policies, state.children):
            policy.update(child)


__all__ = [
    "CompletionState",
    "CompletionPolicy",
    "SimpleCompletionPolicy",
    "TimeoutTerminationPolicy",
    "CompositeCompletionPolicy",
]
