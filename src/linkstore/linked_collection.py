"""Collection that keeps declared relations consistent on insert and remove."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterable, Optional

from linkstore.collection import Collection, Query, is_batch
from linkstore.config import now_millis
from linkstore.errors import ConfigurationError
from linkstore.events import EventKind, RecordEvent
from linkstore.record import LINKED_AT_META, get_field, set_field, supports_metadata
from linkstore.relations import CustomInsert, RelationDefinition, RelationKind

if TYPE_CHECKING:
    from linkstore.datastore import DataStore

logger = logging.getLogger(__name__)


class LinkedCollection(Collection):
    """Collection bound to a datastore that propagates inserts across relations.

    Every ``add`` walks the mapper's relation list once: nested related data is
    given its foreign key, inserted into the related collection and written
    back so the record holds the stored instance. Insert times are kept per id
    in ``added``.
    """

    datastore: Optional["DataStore"] = None

    def __init__(
        self,
        records: Optional[Iterable[Any]] = None,
        *,
        datastore: Optional["DataStore"] = None,
        **options: Any,
    ) -> None:
        if datastore is not None:
            self.datastore = datastore
        self._added: dict[Any, int] = {}
        super().__init__(None, **options)
        if self.datastore is None:
            raise ConfigurationError("This collection must have a datastore.")
        if records:
            self.add(list(records))

    @property
    def added(self) -> Mapping[Any, int]:
        return MappingProxyType(self._added)

    def linked_at(self, record_id: Any) -> Optional[int]:
        return self._added.get(record_id)

    def add(self, records: Any, *, on_conflict: Optional[str] = None) -> Any:
        mapper = self.mapper
        relation_list = mapper.relation_list if mapper is not None else ()
        timestamp = self._now()
        uses_metadata = mapper is not None and mapper.supports_metadata
        singular = not is_batch(records)
        batch = [records] if singular else list(records)

        claimed = self._claim_inflight(batch)
        try:
            if relation_list and batch:
                for definition in relation_list:
                    self._link_relation(definition, batch)
            batch = super().add(batch, on_conflict=on_conflict)
        finally:
            self._release_inflight(claimed)

        for record in batch:
            self._added[self.record_id(record)] = timestamp
            if uses_metadata and supports_metadata(record):
                record._set_meta(LINKED_AT_META, timestamp)

        return batch[0] if singular else batch

    def remove(self, record_id: Any) -> Any:
        self._added.pop(record_id, None)
        record = super().remove(record_id)
        if record is not None:
            if self.mapper is not None and self.mapper.supports_metadata and supports_metadata(record):
                record._set_meta(LINKED_AT_META)
        return record

    def remove_all(self, query: Query = None) -> list[Any]:
        records = super().remove_all(query)
        for record in records:
            self._added.pop(self.record_id(record), None)
        return records

    def _on_record_event(self, event: RecordEvent) -> None:
        super()._on_record_event(event)
        # Any field change reindexes the whole record.
        if event.kind is EventKind.FIELD_CHANGED:
            self.update_indexes(event.record)

    def _link_relation(self, definition: RelationDefinition, records: list[Any]) -> None:
        datastore = self.datastore
        related_mapper = datastore.get_mapper(definition.related)
        related_collection = datastore.get_collection(definition.related)
        related_id_attribute = related_mapper.id_attribute
        foreign_key = definition.foreign_key
        local_field = definition.local_field

        for record in records:
            related = get_field(record, local_field)
            if related is None or (not related and not isinstance(related, (list, tuple))):
                continue
            if isinstance(definition.strategy, CustomInsert):
                definition.strategy.func(datastore, definition, record)
                continue

            record_id = get_field(record, self.id_attribute)
            if definition.kind is RelationKind.HAS_MANY:
                linked = []
                for item in related:
                    if item is not related_collection.get(related_collection.record_id(item)):
                        if foreign_key:
                            set_field(item, foreign_key, record_id)
                        if self._should_insert(definition, related_collection.record_id(item)):
                            item = related_collection.add(item)
                    linked.append(item)
                related = linked
                if definition.local_keys:
                    set_field(
                        record,
                        definition.local_keys,
                        [get_field(item, related_id_attribute) for item in related],
                    )
            else:
                related_id = get_field(related, related_id_attribute)
                if related is not related_collection.get(related_id):
                    if foreign_key and definition.kind is RelationKind.BELONGS_TO:
                        set_field(record, foreign_key, related_id)
                    elif foreign_key and definition.kind is RelationKind.HAS_ONE:
                        set_field(related, foreign_key, record_id)
                    if self._should_insert(definition, related_id):
                        related = related_collection.add(related)
            set_field(record, local_field, related)

        logger.debug(
            "linked %s.%s (%s -> %s) for %d record(s)",
            self._name(),
            local_field,
            definition.kind.value,
            definition.related,
            len(records),
        )

    def _should_insert(self, definition: RelationDefinition, related_id: Any) -> bool:
        if not definition.auto_insert:
            return False
        if self._guard_cycles() and (definition.related, related_id) in self.datastore.inflight:
            logger.debug("skipping in-flight %s id=%r", definition.related, related_id)
            return False
        return True

    def _claim_inflight(self, batch: list[Any]) -> list[tuple[str, Any]]:
        if not self._guard_cycles():
            return []
        inflight = self.datastore.inflight
        claimed: list[tuple[str, Any]] = []
        for record in batch:
            key = (self._name(), self.record_id(record))
            if key[1] is not None and key not in inflight:
                inflight.add(key)
                claimed.append(key)
        return claimed

    def _release_inflight(self, claimed: list[tuple[str, Any]]) -> None:
        for key in claimed:
            self.datastore.inflight.discard(key)

    def _guard_cycles(self) -> bool:
        config = getattr(self.datastore, "config", None)
        return bool(getattr(config, "guard_cycles", False))

    def _now(self) -> int:
        config = getattr(self.datastore, "config", None)
        clock = getattr(config, "clock", None) or now_millis
        return int(clock())

    def _name(self) -> str:
        return self.mapper.name if self.mapper is not None else type(self).__name__
