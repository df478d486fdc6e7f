"""Indexed in-memory collection of records."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
import logging
from typing import Any, Callable, Iterable, Iterator, Optional, Union

from linkstore.errors import SchemaError
from linkstore.events import Emitter, EventKind, RecordEvent
from linkstore.index import Index
from linkstore.mapper import Mapper
from linkstore.record import get_field

logger = logging.getLogger(__name__)

Query = Union[None, Mapping[str, Any], Callable[[Any], bool]]

_ALLOWED_ON_CONFLICT = {"merge", "replace"}


def is_batch(records: Any) -> bool:
    return isinstance(records, (list, tuple))


class Collection(Emitter):
    """Ordered set of records, unique by id, with optional secondary indexes.

    Stored records that can emit events are subscribed to; every event they
    emit passes through :meth:`_on_record_event`.
    """

    mapper: Optional[Mapper] = None

    def __init__(
        self,
        records: Optional[Iterable[Any]] = None,
        *,
        mapper: Optional[Mapper] = None,
        id_attribute: Optional[str] = None,
        on_conflict: str = "merge",
    ) -> None:
        super().__init__()
        if mapper is not None:
            self.mapper = mapper
        if on_conflict not in _ALLOWED_ON_CONFLICT:
            raise SchemaError(f"on_conflict must be one of {sorted(_ALLOWED_ON_CONFLICT)}.")
        if id_attribute is None:
            id_attribute = self.mapper.id_attribute if self.mapper is not None else "id"
        self.id_attribute = id_attribute
        self.on_conflict = on_conflict
        self._records: dict[Any, Any] = {}
        self._indexes: dict[str, Index] = {}
        if records:
            self.add(list(records))

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._records.values()))

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __repr__(self) -> str:
        name = self.mapper.name if self.mapper is not None else "?"
        return f"{type(self).__name__}({name!r}, size={len(self)})"

    def record_id(self, record: Any) -> Any:
        return get_field(record, self.id_attribute)

    def get(self, record_id: Any) -> Any:
        return self._records.get(record_id)

    def add(self, records: Any, *, on_conflict: Optional[str] = None) -> Any:
        """Store one record or a batch; the return value mirrors the input shape."""
        singular = not is_batch(records)
        batch = [records] if singular else list(records)
        policy = on_conflict or self.on_conflict
        if policy not in _ALLOWED_ON_CONFLICT:
            raise SchemaError(f"on_conflict must be one of {sorted(_ALLOWED_ON_CONFLICT)}.")

        stored: list[Any] = []
        for record in batch:
            record_id = self.record_id(record)
            if record_id is None:
                raise SchemaError(
                    f"Record is missing its id field {self.id_attribute!r}: {record!r}."
                )
            existing = self._records.get(record_id)
            if existing is None:
                record = self._create_record(record)
                self._insert(record_id, record)
            elif existing is record:
                self.update_indexes(record)
            elif policy == "merge" and isinstance(existing, MutableMapping) and isinstance(record, Mapping):
                existing.update(record)
                if not isinstance(existing, Emitter):
                    # Emitting records are reindexed through their change event.
                    self.update_indexes(existing)
                record = existing
            else:
                self._discard(existing)
                record = self._create_record(record)
                self._insert(record_id, record)
            stored.append(record)

        logger.debug("%r stored %d record(s)", self, len(stored))
        return stored[0] if singular else stored

    def remove(self, record_id: Any) -> Any:
        record = self.get(record_id)
        if record is None:
            return None
        self._discard(record)
        return record

    def remove_all(self, query: Query = None) -> list[Any]:
        records = self.filter(query)
        for record in records:
            self._discard(record)
        logger.debug("%r removed %d record(s)", self, len(records))
        return records

    def filter(self, query: Query = None) -> list[Any]:
        records = list(self._records.values())
        if query is None:
            return records
        if isinstance(query, Mapping):
            return [
                record
                for record in records
                if all(get_field(record, key) == value for key, value in query.items())
            ]
        if callable(query):
            return [record for record in records if query(record)]
        raise TypeError("query must be None, a mapping of field values, or a callable")

    def create_index(self, name: str, fields: Union[str, Iterable[str]]) -> Index:
        if isinstance(fields, str):
            fields = [fields]
        index = Index(name, fields, self.record_id)
        for record in self._records.values():
            index.insert(record)
        self._indexes[name] = index
        return index

    def get_index(self, name: str) -> Index:
        if name not in self._indexes:
            raise SchemaError(f"Unknown index: {name}.")
        return self._indexes[name]

    def get_all(self, *values: Any, index: Optional[str] = None) -> list[Any]:
        if index is not None:
            return self.get_index(index).get(*values)
        if not values:
            return list(self._records.values())
        return [self._records[value] for value in values if value in self._records]

    def update_indexes(self, record: Any) -> None:
        for index in self._indexes.values():
            index.update(record)

    @classmethod
    def extend(cls, name: Optional[str] = None, **members: Any) -> type:
        """Build a subclass carrying extra members.

        ``LinkedCollection.extend(datastore=store, mapper=posts, foo=lambda self: 1)``
        returns a new class whose instances also expose ``foo``.
        """
        class_name = name or f"Extended{cls.__name__}"
        members.setdefault("__module__", cls.__module__)
        return type(class_name, (cls,), members)

    def to_dicts(self) -> list[dict[str, Any]]:
        return [dict(record) if isinstance(record, Mapping) else vars(record) for record in self]

    def _create_record(self, record: Any) -> Any:
        if self.mapper is None:
            return record
        return self.mapper.create_record(record)

    def _insert(self, record_id: Any, record: Any) -> None:
        self._records[record_id] = record
        for index in self._indexes.values():
            index.insert(record)
        if isinstance(record, Emitter):
            record.on(self._on_record_event)
        self.emit(RecordEvent(EventKind.ADDED, record))

    def _discard(self, record: Any) -> None:
        self._records.pop(self.record_id(record), None)
        for index in self._indexes.values():
            index.remove(record)
        if isinstance(record, Emitter):
            record.off(self._on_record_event)
        self.emit(RecordEvent(EventKind.REMOVED, record))

    def _on_record_event(self, event: RecordEvent) -> None:
        self.emit(event)
