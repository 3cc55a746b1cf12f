"""Item reader / processor / writer contracts and simple implementations.

``read()`` returning None means the source is exhausted. ``process()``
returning None filters the item out of the chunk. ``write()`` receives
the whole chunk in one call.

Readers and writers that keep restart state also implement
:class:`ItemStream`: ``open`` restores from the step's ExecutionContext,
``update`` records progress into it just before each commit, ``close``
releases resources.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

from stepwise.domain.context import ExecutionContext

I = TypeVar("I")  # noqa: E741
O = TypeVar("O")  # noqa: E741


class ItemStream:
    """Restartable resource. All hooks are optional no-ops."""

    def open(self, execution_context: ExecutionContext) -> None:
        pass

    def update(self, execution_context: ExecutionContext) -> None:
        pass

    def close(self) -> None:
        pass


class ItemReader(ABC, Generic[I]):
    @abstractmethod
    def read(self) -> I | None:
        ...


class ItemProcessor(ABC, Generic[I, O]):
    @abstractmethod
    def process(self, item: I) -> O | None:
        ...


class ItemWriter(ABC, Generic[O]):
    @abstractmethod
    def write(self, items: list[O]) -> None:
        ...


class ListItemReader(ItemReader[I], ItemStream):
    """Reads from an in-memory list; restartable.

    The read position is saved in the ExecutionContext under
    ``"<name>.read.count"`` on every chunk commit, so a restarted step
    resumes at the first item of the failed chunk.
    """

    def __init__(self, items: Iterable[I], name: str = "list_reader"):
        self._items = list(items)
        self.name = name
        self._index = 0

    @property
    def _key(self) -> str:
        return f"{self.name}.read.count"

    def open(self, execution_context: ExecutionContext) -> None:
        self._index = execution_context.get(self._key, 0)

    def update(self, execution_context: ExecutionContext) -> None:
        execution_context.put(self._key, self._index)

    def read(self) -> I | None:
        if self._index >= len(self._items):
            return None
        item = self._items[self._index]
        self._index += 1
        return item


class PassThroughItemProcessor(ItemProcessor[Any, Any]):
    def process(self, item: Any) -> Any:
        return item


class FunctionItemProcessor(ItemProcessor[I, O]):
    """Adapts a plain function to :class:`ItemProcessor`."""

    def __init__(self, function: Callable[[I], O | None]):
        self._function = function

    def process(self, item: I) -> O | None:
        return self._function(item)


class ListItemWriter(ItemWriter[O]):
    """Collects written items; mostly for tests."""

    def __init__(self):
        self.written_items: list[O] = []
        self.write_calls = 0

    def write(self, items: list[O]) -> None:
        self.write_calls += 1
        self.written_items.extend(items)


__all__ = [
    "ItemStream",
    "ItemReader",
    "ItemProcessor",
    "ItemWriter",
    "ListItemReader",
    "PassThroughItemProcessor",
    "FunctionItemProcessor",
    "ListItemWriter",
]
