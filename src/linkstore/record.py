"""Record representation and field access helpers."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any, Optional

from linkstore.events import Emitter, EventKind, RecordEvent


_MISSING = object()
LINKED_AT_META = "linked_at"


class Record(MutableMapping, Emitter):
    """Mutable field mapping that announces its own changes.

    Metadata (for example the time the record was last linked into a
    collection) lives in a private slot and is never part of the fields.
    """

    def __init__(self, props: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        Emitter.__init__(self)
        self._data: dict[str, Any] = {}
        self._meta: dict[str, Any] = {}
        if props is not None:
            if not isinstance(props, Mapping):
                raise TypeError("Record props must be a mapping.")
            self._data.update(props)
        self._data.update(fields)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.update({key: value})

    def __delitem__(self, key: str) -> None:
        previous = self._data.pop(key)
        self._changed({key: (previous, None)})

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    def update(self, other: Any = (), /, **kwargs: Any) -> None:  # type: ignore[override]
        incoming = dict(other, **kwargs)
        changes: dict[str, tuple[Any, Any]] = {}
        for key, value in incoming.items():
            previous = self._data.get(key, _MISSING)
            if previous is value:
                continue
            if previous is not _MISSING and _plain_equal(previous, value):
                self._data[key] = value
                continue
            self._data[key] = value
            changes[key] = (None if previous is _MISSING else previous, value)
        if changes:
            self._changed(changes)

    def _changed(self, changes: dict[str, tuple[Any, Any]]) -> None:
        self.emit(RecordEvent(EventKind.FIELD_CHANGED, self, changes))

    def _set_meta(self, key: str, value: Any = _MISSING) -> None:
        """Set a metadata value; calling without a value unsets it."""
        if value is _MISSING:
            self._meta.pop(key, None)
        else:
            self._meta[key] = value

    def _get_meta(self, key: str, default: Any = None) -> Any:
        return self._meta.get(key, default)

    @property
    def linked_at(self) -> Optional[int]:
        """Epoch milliseconds of the last insert into a linked collection."""
        return self._get_meta(LINKED_AT_META)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)


def _plain_equal(left: Any, right: Any) -> bool:
    # Related records compare by identity; only scalars count as unchanged.
    if isinstance(left, (Mapping, list, tuple)) or isinstance(right, (Mapping, list, tuple)):
        return False
    return bool(left == right)


def get_field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def set_field(record: Any, name: str, value: Any) -> None:
    if isinstance(record, MutableMapping):
        record[name] = value
    else:
        setattr(record, name, value)


def supports_metadata(record: Any) -> bool:
    return callable(getattr(record, "_set_meta", None))
