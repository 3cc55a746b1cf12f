"""Exception classifiers.

Classification is a lookup along the exception's MRO: the most specific
registered class wins, so registering ``ValueError: False`` under
``Exception: True`` excludes value errors from retry.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Generic, TypeVar

T = TypeVar("T")


class SubclassClassifier(Generic[T]):
    """Maps an exception to a value keyed by (a superclass of) its type."""

    def __init__(self, type_map: Mapping[type[BaseException], T] | None = None, default: T | None = None):
        self._type_map: dict[type[BaseException], T] = dict(type_map or {})
        self.default = default

    def add(self, error_type: type[BaseException], value: T) -> None:
        self._type_map[error_type] = value

    def classify(self, error: BaseException | None) -> T | None:
        if error is None:
            return self.default
        for klass in type(error).__mro__:
            if klass in self._type_map:
                return self._type_map[klass]
        return self.default


class BinaryExceptionClassifier(SubclassClassifier[bool]):
    """Boolean classifier: is this exception in the included set?

    Args:
        types: Either a mapping of exception class to bool, or an iterable
            of exception classes that classify as ``not default``
        default: Value for exceptions matching no registered class
        traverse_causes: When an exception classifies as the default, keep
            looking along its ``__cause__`` chain
    """

    def __init__(
        self,
        types: Mapping[type[BaseException], bool] | Iterable[type[BaseException]] | None = None,
        default: bool = False,
        traverse_causes: bool = False,
    ):
        if types is None:
            type_map: dict[type[BaseException], bool] = {}
        elif isinstance(types, Mapping):
            type_map = dict(types)
        else:
            type_map = {t: not default for t in types}
        super().__init__(type_map, default)
        self.traverse_causes = traverse_causes

    def classify(self, error: BaseException | None) -> bool:
        result = super().classify(error)
        if not self.traverse_causes or error is None:
            return bool(result)
        seen: set[int] = {id(error)}
        cause = error.__cause__
        while result == self.default and cause is not None and id(cause) not in seen:
            seen.add(id(cause))
            result = super().classify(cause)
            cause = cause.__cause__
        return bool(result)


__all__ = ["SubclassClassifier", "BinaryExceptionClassifier"]
