"""Registry of mappers and their linked collections."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from linkstore.collection import Query
from linkstore.config import StoreConfig
from linkstore.errors import RelationLookupError, SchemaError
from linkstore.linked_collection import LinkedCollection
from linkstore.mapper import Mapper
from linkstore.record import Record
from linkstore.relations import RelationDefinition
from linkstore.schema_spec import parse_schema

logger = logging.getLogger(__name__)


class DataStore:
    """Owns one mapper and one collection per schema name.

    Relation targets are resolved by name at insert time; an unknown name
    raises :class:`RelationLookupError` straight to the caller of ``add``.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        *,
        collection_class: type = LinkedCollection,
    ) -> None:
        self.config = config or StoreConfig()
        self.collection_class = collection_class
        self.inflight: set[tuple[str, Any]] = set()
        self._mappers: dict[str, Mapper] = {}
        self._collections: dict[str, LinkedCollection] = {}

    def __repr__(self) -> str:
        return f"DataStore(mappers={self.mapper_names()!r})"

    def define_mapper(
        self,
        name: str,
        *,
        id_attribute: str = "id",
        relations: Iterable[RelationDefinition] = (),
        record_class: Optional[type] = Record,
        collection_class: Optional[type] = None,
    ) -> Mapper:
        mapper = Mapper(
            name,
            id_attribute=id_attribute,
            relations=relations,
            record_class=record_class,
        )
        return self.register_mapper(mapper, collection_class=collection_class)

    def register_mapper(self, mapper: Mapper, *, collection_class: Optional[type] = None) -> Mapper:
        if mapper.name in self._mappers:
            raise SchemaError(f"Mapper already defined: {mapper.name}.")
        cls = collection_class or self.collection_class
        collection = cls(datastore=self, mapper=mapper, on_conflict=self.config.on_conflict)
        self._mappers[mapper.name] = mapper
        self._collections[mapper.name] = collection
        logger.debug("registered mapper %s with %d relation(s)", mapper.name, len(mapper.relation_list))
        return mapper

    def load_schema(self, data: dict[str, Any], record_class: Optional[type] = Record) -> list[Mapper]:
        """Define every mapper of a declarative schema mapping."""
        specs = parse_schema(data)
        for spec in specs:
            if spec.name in self._mappers:
                raise SchemaError(f"Mapper already defined: {spec.name}.")
        return [
            self.register_mapper(Mapper.from_spec(spec, record_class=record_class))
            for spec in specs
        ]

    def get_mapper(self, name: str) -> Mapper:
        mapper = self._mappers.get(name)
        if mapper is None:
            raise RelationLookupError(f"Unknown mapper: {name}.")
        return mapper

    def get_collection(self, name: str) -> LinkedCollection:
        collection = self._collections.get(name)
        if collection is None:
            raise RelationLookupError(f"Unknown collection: {name}.")
        return collection

    def mapper_names(self) -> list[str]:
        return list(self._mappers)

    def unresolved_relations(self) -> list[tuple[str, str, str]]:
        """Relations naming a mapper that is not registered, as (mapper, local_field, related)."""
        missing: list[tuple[str, str, str]] = []
        for mapper in self._mappers.values():
            for definition in mapper.relation_list:
                if definition.related not in self._mappers:
                    missing.append((mapper.name, definition.local_field, definition.related))
        return missing

    def add(self, name: str, records: Any, **opts: Any) -> Any:
        return self.get_collection(name).add(records, **opts)

    def remove(self, name: str, record_id: Any) -> Any:
        return self.get_collection(name).remove(record_id)

    def remove_all(self, name: str, query: Query = None) -> list[Any]:
        return self.get_collection(name).remove_all(query)

    def get(self, name: str, record_id: Any) -> Any:
        return self.get_collection(name).get(record_id)

    def get_all(self, name: str, *values: Any, index: Optional[str] = None) -> list[Any]:
        return self.get_collection(name).get_all(*values, index=index)

    def filter(self, name: str, query: Query = None) -> list[Any]:
        return self.get_collection(name).filter(query)

    def cache_mappers(self, cache_dir: Optional[str] = None) -> int:
        from linkstore.schema_cache import cache_mapper

        target = cache_dir or self.config.cache_dir
        for mapper in self._mappers.values():
            cache_mapper(mapper, cache_dir=target)
        return len(self._mappers)

    def load_cached_mappers(
        self, cache_dir: Optional[str] = None, record_class: Optional[type] = Record
    ) -> list[Mapper]:
        from linkstore.schema_cache import load_cached_mappers

        mappers = load_cached_mappers(cache_dir or self.config.cache_dir, record_class=record_class)
        return [self.register_mapper(mapper) for mapper in mappers if mapper.name not in self._mappers]
