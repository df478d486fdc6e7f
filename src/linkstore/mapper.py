"""Mapper: schema descriptor for one record type."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable, Optional

from linkstore.errors import SchemaError
from linkstore.record import Record, supports_metadata
from linkstore.relations import RelationDefinition
from linkstore.schema_spec import MapperSpec, parse_mapper_spec


class Mapper:
    """Names the id field and the ordered relations of one schema."""

    def __init__(
        self,
        name: str,
        id_attribute: str = "id",
        relations: Iterable[RelationDefinition] = (),
        record_class: Optional[type] = Record,
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise SchemaError("Mapper name must be a non-empty string.")
        if not isinstance(id_attribute, str) or not id_attribute.strip():
            raise SchemaError("Mapper id_attribute must be a non-empty string.")
        relation_list = tuple(relations)
        for relation in relation_list:
            if not isinstance(relation, RelationDefinition):
                raise SchemaError("Mapper relations must be RelationDefinition instances.")
        if record_class is not None and not isinstance(record_class, type):
            raise SchemaError("Mapper record_class must be a class or None.")
        self.name = name.strip()
        self.id_attribute = id_attribute.strip()
        self.relation_list = relation_list
        self.record_class = record_class

    def __repr__(self) -> str:
        return f"Mapper(name={self.name!r}, id_attribute={self.id_attribute!r})"

    @property
    def supports_metadata(self) -> bool:
        return self.record_class is not None and supports_metadata(self.record_class)

    def relation(self, local_field: str) -> Optional[RelationDefinition]:
        for definition in self.relation_list:
            if definition.local_field == local_field:
                return definition
        return None

    def create_record(self, props: Any) -> Any:
        """Wrap a plain mapping in the record class; other objects pass through."""
        if self.record_class is None or isinstance(props, self.record_class):
            return props
        if isinstance(props, Mapping):
            return self.record_class(props)
        return props

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "id_attribute": self.id_attribute,
            "relations": [relation.to_dict() for relation in self.relation_list],
            "use_record_class": self.record_class is not None,
        }

    @staticmethod
    def from_spec(spec: MapperSpec, record_class: Optional[type] = Record) -> "Mapper":
        return Mapper(
            name=spec.name,
            id_attribute=spec.id_attribute,
            relations=[
                RelationDefinition.from_dict(relation.model_dump(exclude_none=True))
                for relation in spec.relations
            ],
            record_class=record_class if spec.use_record_class else None,
        )

    @staticmethod
    def from_dict(data: dict[str, object], record_class: Optional[type] = Record) -> "Mapper":
        return Mapper.from_spec(parse_mapper_spec(data), record_class=record_class)
