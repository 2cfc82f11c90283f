"""
Value types shared by all document store backends.

Documents are plain field maps. Backends hand out ``DocumentSnapshot``
copies so that callers can never mutate stored state in place.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when a document is written."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_ServerTimestamp":
        return self


SERVER_TIMESTAMP = _ServerTimestamp()


def utc_now() -> datetime:
    """Default clock for stores and services."""
    return datetime.now(timezone.utc)


class DocumentSnapshot(BaseModel):
    """A point-in-time copy of one stored document."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Document id within its collection")
    collection: str = Field(..., description="Collection the document lives in")
    data: Dict[str, Any] = Field(default_factory=dict, description="Field map")

    def get(self, field: str, default: Any = None) -> Any:
        """Return a single field value."""
        return self.data.get(field, default)

    def to_dict(self) -> Dict[str, Any]:
        """Return a deep copy of the field map."""
        return copy.deepcopy(self.data)


_MISSING = object()


class FieldFilter(BaseModel):
    """A single ``field <op> value`` condition of a query."""

    field: str = Field(..., min_length=1)
    op: str = Field("==", pattern="^(==|!=|<|<=|>|>=)$")
    value: Any = None

    def matches(self, data: Dict[str, Any]) -> bool:
        """
        Check whether a document satisfies this condition.

        Documents that do not carry the field never match, and values that
        cannot be ordered against each other do not match either.

        Args:
            data: Document field map

        Returns:
            True if the condition holds
        """
        actual = data.get(self.field, _MISSING)
        if actual is _MISSING:
            return False

        try:
            if self.op == "==":
                return bool(actual == self.value)
            if self.op == "!=":
                return bool(actual != self.value)
            if self.op == "<":
                return bool(actual < self.value)
            if self.op == "<=":
                return bool(actual <= self.value)
            if self.op == ">":
                return bool(actual > self.value)
            return bool(actual >= self.value)
        except TypeError:
            return False


def where(field: str, op: str, value: Any) -> FieldFilter:
    """Shorthand for building a ``FieldFilter``."""
    return FieldFilter(field=field, op=op, value=value)


def apply_query(
    snapshots: Iterable[DocumentSnapshot],
    filters: Optional[Iterable[FieldFilter]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> List[DocumentSnapshot]:
    """
    Filter, order and limit snapshots the way every backend must.

    Ordering by a field drops documents that lack it. Without ``order_by``
    the backend's own order is kept.
    """
    conditions = list(filters or [])
    results = [s for s in snapshots if all(c.matches(s.data) for c in conditions)]

    if order_by:
        results = [s for s in results if order_by in s.data]
        results.sort(key=lambda s: s.data[order_by], reverse=descending)

    if limit is not None:
        results = results[:limit]

    return results


def resolve_sentinels(data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """Deep-copy a field map, replacing ``SERVER_TIMESTAMP`` with ``now``."""
    resolved: Dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = now
        elif isinstance(value, dict):
            resolved[key] = resolve_sentinels(value, now)
        else:
            resolved[key] = copy.deepcopy(value)
    return resolved


def merge_fields(existing: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``changes`` into ``existing``, recursing into nested maps."""
    merged = copy.deepcopy(existing)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_fields(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
