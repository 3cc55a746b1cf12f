"""ExecutionContext serialization.

JSON with tagged temporal values, so that a write-then-read round trip
preserves the key set and every value's type exactly::

    {"offset": 20, "as_of": {"__stepwise_type__": "date", "value": "2025-01-09"}}

``int`` and ``float`` survive as-is (``1.0`` stays a float), booleans stay
booleans, nested dicts are walked recursively.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from stepwise.domain.context import ExecutionContext

TYPE_TAG = "__stepwise_type__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {TYPE_TAG: "datetime", "value": value.isoformat()}
    if isinstance(value, date):
        return {TYPE_TAG: "date", "value": value.isoformat()}
    if isinstance(value, Mapping):
        return {key: _encode(nested) for key, nested in value.items()}
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        tag = value.get(TYPE_TAG)
        if tag == "datetime" and len(value) == 2:
            return datetime.fromisoformat(value["value"])
        if tag == "date" and len(value) == 2:
            return date.fromisoformat(value["value"])
        return {key: _decode(nested) for key, nested in value.items()}
    return value


class JsonExecutionContextSerializer:
    """Serialize an :class:`ExecutionContext` to and from a JSON string."""

    def serialize(self, context: ExecutionContext) -> str:
        return json.dumps({key: _encode(value) for key, value in context.items()}, sort_keys=True)

    def deserialize(self, data: str | None) -> ExecutionContext:
        """Rebuild a clean (not dirty) context; empty input gives an empty context."""
        if not data:
            return ExecutionContext()
        raw = json.loads(data)
        return ExecutionContext({key: _decode(value) for key, value in raw.items()})


__all__ = ["TYPE_TAG", "JsonExecutionContextSerializer"]
