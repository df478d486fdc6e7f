"""Relation definitions between mappers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from linkstore.errors import SchemaError

if TYPE_CHECKING:
    from linkstore.datastore import DataStore


class RelationKind(str, Enum):
    BELONGS_TO = "belongs_to"
    HAS_MANY = "has_many"
    HAS_ONE = "has_one"


@dataclass(frozen=True)
class DefaultInsert:
    """Insert related data according to the relation kind."""


@dataclass(frozen=True)
class CustomInsert:
    """Hand related data to a caller-supplied function instead."""

    func: Callable[["DataStore", "RelationDefinition", Any], None]

    def __post_init__(self) -> None:
        if not callable(self.func):
            raise SchemaError("CustomInsert func must be callable.")


InsertStrategy = Union[DefaultInsert, CustomInsert]


@dataclass(frozen=True)
class RelationDefinition:
    """One declared relationship from the owning mapper to ``related``.

    ``foreign_key`` is written on the child side (the holder for
    belongs_to, the related items for has_many/has_one). ``local_keys`` only
    applies to has_many and receives the related ids in item order.
    """

    kind: RelationKind
    related: str
    local_field: str
    foreign_key: Optional[str] = None
    local_keys: Optional[str] = None
    auto_insert: bool = True
    strategy: InsertStrategy = field(default_factory=DefaultInsert)

    def __post_init__(self) -> None:
        try:
            kind = RelationKind(self.kind)
        except ValueError as exc:
            raise SchemaError(f"Unknown relation kind: {self.kind!r}.") from exc
        object.__setattr__(self, "kind", kind)
        if not isinstance(self.related, str) or not self.related.strip():
            raise SchemaError("Relation related mapper name must be a non-empty string.")
        if not isinstance(self.local_field, str) or not self.local_field.strip():
            raise SchemaError("Relation local_field must be a non-empty string.")
        for name in ("foreign_key", "local_keys"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, str) or not value.strip()):
                raise SchemaError(f"Relation {name} must be a non-empty string if provided.")
        if not isinstance(self.strategy, (DefaultInsert, CustomInsert)):
            raise SchemaError("Relation strategy must be DefaultInsert or CustomInsert.")
        object.__setattr__(self, "auto_insert", bool(self.auto_insert))

    @property
    def is_custom(self) -> bool:
        return isinstance(self.strategy, CustomInsert)

    def to_dict(self) -> dict[str, object]:
        if self.is_custom:
            raise SchemaError(
                f"Relation {self.local_field!r} uses a custom insert strategy and cannot be serialized."
            )
        data: dict[str, object] = {
            "kind": self.kind.value,
            "related": self.related,
            "local_field": self.local_field,
        }
        if self.foreign_key is not None:
            data["foreign_key"] = self.foreign_key
        if self.local_keys is not None:
            data["local_keys"] = self.local_keys
        if not self.auto_insert:
            data["auto_insert"] = False
        return data

    @staticmethod
    def from_dict(data: dict[str, object]) -> "RelationDefinition":
        for key in ("kind", "related", "local_field"):
            if key not in data:
                raise SchemaError(f"RelationDefinition requires {key}.")
        return RelationDefinition(
            kind=data["kind"],  # type: ignore[arg-type]
            related=str(data["related"]),
            local_field=str(data["local_field"]),
            foreign_key=data.get("foreign_key"),  # type: ignore[arg-type]
            local_keys=data.get("local_keys"),  # type: ignore[arg-type]
            auto_insert=bool(data.get("auto_insert", True)),
        )


def _strategy(custom_insert: Optional[Callable[..., None]]) -> InsertStrategy:
    if custom_insert is None:
        return DefaultInsert()
    return CustomInsert(custom_insert)


def belongs_to(
    related: str,
    *,
    local_field: str,
    foreign_key: str,
    auto_insert: bool = True,
    custom_insert: Optional[Callable[..., None]] = None,
) -> RelationDefinition:
    return RelationDefinition(
        kind=RelationKind.BELONGS_TO,
        related=related,
        local_field=local_field,
        foreign_key=foreign_key,
        auto_insert=auto_insert,
        strategy=_strategy(custom_insert),
    )


def has_many(
    related: str,
    *,
    local_field: str,
    foreign_key: Optional[str] = None,
    local_keys: Optional[str] = None,
    auto_insert: bool = True,
    custom_insert: Optional[Callable[..., None]] = None,
) -> RelationDefinition:
    return RelationDefinition(
        kind=RelationKind.HAS_MANY,
        related=related,
        local_field=local_field,
        foreign_key=foreign_key,
        local_keys=local_keys,
        auto_insert=auto_insert,
        strategy=_strategy(custom_insert),
    )


def has_one(
    related: str,
    *,
    local_field: str,
    foreign_key: str,
    auto_insert: bool = True,
    custom_insert: Optional[Callable[..., None]] = None,
) -> RelationDefinition:
    return RelationDefinition(
        kind=RelationKind.HAS_ONE,
        related=related,
        local_field=local_field,
        foreign_key=foreign_key,
        auto_insert=auto_insert,
        strategy=_strategy(custom_insert),
    )
