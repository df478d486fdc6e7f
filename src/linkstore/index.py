"""Secondary indexes over record fields."""

from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable

from linkstore.record import get_field


def _hashable(value: Any) -> Hashable:
    if isinstance(value, list):
        return tuple(_hashable(item) for item in value)
    try:
        hash(value)
    except TypeError:
        return ("__id__", id(value))
    return value


class Index:
    """Maps the tuple of indexed field values to records, in insertion order."""

    def __init__(self, name: str, fields: Iterable[str], record_id: Callable[[Any], Any]) -> None:
        self.name = name
        self.fields = tuple(fields)
        if not self.fields:
            raise ValueError("Index requires at least one field")
        self._record_id = record_id
        self._entries: dict[tuple, dict[Any, Any]] = {}
        self._keys_by_id: dict[Any, tuple] = {}

    def key_for(self, record: Any) -> tuple:
        return tuple(_hashable(get_field(record, name)) for name in self.fields)

    def insert(self, record: Any) -> None:
        record_id = self._record_id(record)
        key = self.key_for(record)
        self._entries.setdefault(key, {})[record_id] = record
        self._keys_by_id[record_id] = key

    def remove(self, record: Any) -> None:
        record_id = self._record_id(record)
        key = self._keys_by_id.pop(record_id, None)
        if key is None:
            return
        bucket = self._entries.get(key)
        if bucket is None:
            return
        bucket.pop(record_id, None)
        if not bucket:
            del self._entries[key]

    def update(self, record: Any) -> None:
        self.remove(record)
        self.insert(record)

    def get(self, *values: Any) -> list[Any]:
        if len(values) != len(self.fields):
            raise ValueError(f"index {self.name!r} expects {len(self.fields)} values")
        key = tuple(_hashable(value) for value in values)
        return list(self._entries.get(key, {}).values())

    def keys(self) -> list[tuple]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._keys_by_id)
