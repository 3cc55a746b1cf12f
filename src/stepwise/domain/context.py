"""ExecutionContext -- persisted restart state for jobs and steps.

A string-keyed bag of primitive values (``str``, ``int``, ``float``,
``bool``, ``datetime``, ``date``) and nested dicts of the same. Readers and
writers store just enough state here (an offset, a last-seen key) for a
step to resume mid-stream after a crash.

The dirty flag is raised only when a ``put`` actually changes content and
is cleared by the repository once the context has been persisted.

Example:
    >>> ctx = ExecutionContext()
    >>> ctx.put("reader.offset", 20)
    >>> ctx.is_dirty
    True
    >>> ctx.clear_dirty_flag()
    >>> ctx.put("reader.offset", 20)   # same value
    >>> ctx.is_dirty
    False
"""

from __future__ import annotations

from collections.abc import ItemsView, Iterator, KeysView, Mapping
from datetime import date, datetime
from typing import Any

_PRIMITIVES: tuple[type, ...] = (str, int, float, bool, datetime, date)

_MISSING = object()


def _check_value(key: str, value: Any) -> None:
    if isinstance(value, _PRIMITIVES):
        return
    if isinstance(value, Mapping):
        for nested_key, nested_value in value.items():
            if not isinstance(nested_key, str):
                raise TypeError(f"Nested keys under {key!r} must be strings, got {nested_key!r}")
            _check_value(f"{key}.{nested_key}", nested_value)
        return
    raise TypeError(f"Unsupported value type for key {key!r}: {type(value).__name__}")


class ExecutionContext:
    """String-keyed restart state with dirty tracking."""

    def __init__(self, source: ExecutionContext | Mapping[str, Any] | None = None):
        self._map: dict[str, Any] = {}
        self._dirty = False
        if source is not None:
            items = source.items()
            for key, value in items:
                _check_value(key, value)
                self._map[key] = _copy_value(value)

    # ── Mutation ─────────────────────────────────────────────────

    def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``; ``None`` removes the key."""
        if not isinstance(key, str):
            raise TypeError(f"ExecutionContext keys must be strings, got {key!r}")
        if value is None:
            if self._map.pop(key, _MISSING) is not _MISSING:
                self._dirty = True
            return
        _check_value(key, value)
        current = self._map.get(key, _MISSING)
        if current is _MISSING or current != value or type(current) is not type(value):
            self._dirty = True
        self._map[key] = _copy_value(value)

    def put_all(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self.put(key, value)

    def remove(self, key: str) -> Any:
        """Remove ``key`` and return its value (None when absent)."""
        value = self._map.pop(key, None)
        if value is not None:
            self._dirty = True
        return value

    def clear(self) -> None:
        if self._map:
            self._dirty = True
        self._map.clear()

    # ── Access ───────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        return self._map.get(key, default)

    def _typed(self, key: str, expected: tuple[type, ...], default: Any) -> Any:
        if key not in self._map:
            if default is _MISSING:
                raise KeyError(key)
            return default
        value = self._map[key]
        if isinstance(value, bool) and bool not in expected:
            raise TypeError(f"Value for key {key!r} is not of the requested type: bool")
        if not isinstance(value, expected):
            raise TypeError(
                f"Value for key {key!r} is not of the requested type: {type(value).__name__}"
            )
        return value

    def get_string(self, key: str, default: Any = _MISSING) -> str:
        return self._typed(key, (str,), default)

    def get_int(self, key: str, default: Any = _MISSING) -> int:
        return self._typed(key, (int,), default)

    def get_float(self, key: str, default: Any = _MISSING) -> float:
        return self._typed(key, (float,), default)

    def contains_key(self, key: str) -> bool:
        return key in self._map

    def contains_value(self, value: Any) -> bool:
        return value in self._map.values()

    def keys(self) -> KeysView[str]:
        return self._map.keys()

    def items(self) -> ItemsView[str, Any]:
        return self._map.items()

    def to_dict(self) -> dict[str, Any]:
        return {key: _copy_value(value) for key, value in self._map.items()}

    @property
    def is_empty(self) -> bool:
        return not self._map

    # ── Dirty tracking ───────────────────────────────────────────

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def clear_dirty_flag(self) -> None:
        self._dirty = False

    # ── Dunder ───────────────────────────────────────────────────

    def __contains__(self, key: object) -> bool:
        return key in self._map

    def __len__(self) -> int:
        return len(self._map)

    def __iter__(self) -> Iterator[str]:
        return iter(self._map)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExecutionContext):
            return NotImplemented
        return self._map == other._map

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ExecutionContext(dirty={self._dirty}, {self._map!r})"


def _copy_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _copy_value(v) for k, v in value.items()}
    return value


__all__ = ["ExecutionContext"]
