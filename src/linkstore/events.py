"""Typed record notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class EventKind(str, Enum):
    FIELD_CHANGED = "field_changed"
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class RecordEvent:
    """One notification emitted by a record or a collection.

    ``changes`` maps each touched field to ``(previous, current)``. A single
    mutation call produces a single event, however many fields it touched.
    """

    kind: EventKind
    record: Any
    changes: dict[str, tuple[Any, Any]] = field(default_factory=dict)

    @property
    def fields(self) -> list[str]:
        return list(self.changes)


Listener = Callable[[RecordEvent], None]


class Emitter:
    """Minimal listener registry shared by records and collections."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def on(self, listener: Listener) -> None:
        if not callable(listener):
            raise TypeError("listener must be callable")
        if listener not in self._listeners:
            self._listeners.append(listener)

    def off(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: RecordEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
