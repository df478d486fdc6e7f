"""In-memory linked record store with relation propagation."""

from linkstore.collection import Collection
from linkstore.config import StoreConfig
from linkstore.datastore import DataStore
from linkstore.errors import (
    CacheError,
    ConfigurationError,
    LinkstoreError,
    RelationLookupError,
    SchemaError,
)
from linkstore.events import Emitter, EventKind, RecordEvent
from linkstore.index import Index
from linkstore.linked_collection import LinkedCollection
from linkstore.mapper import Mapper
from linkstore.record import Record
from linkstore.relations import (
    CustomInsert,
    DefaultInsert,
    RelationDefinition,
    RelationKind,
    belongs_to,
    has_many,
    has_one,
)
from linkstore.schema_spec import MapperSpec, RelationSpec

__all__ = [
    "Collection",
    "StoreConfig",
    "DataStore",
    "CacheError",
    "ConfigurationError",
    "LinkstoreError",
    "RelationLookupError",
    "SchemaError",
    "Emitter",
    "EventKind",
    "RecordEvent",
    "Index",
    "LinkedCollection",
    "Mapper",
    "Record",
    "CustomInsert",
    "DefaultInsert",
    "RelationDefinition",
    "RelationKind",
    "belongs_to",
    "has_many",
    "has_one",
    "MapperSpec",
    "RelationSpec",
]
