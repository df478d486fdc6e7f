"""Store configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
import time
from typing import Callable, Mapping, Optional

from linkstore.errors import SchemaError


_ON_CONFLICT_ENV = "LINKSTORE_ON_CONFLICT"
_GUARD_CYCLES_ENV = "LINKSTORE_GUARD_CYCLES"
_CACHE_DIR_ENV = "LINKSTORE_CACHE_DIR"
_ALLOWED_ON_CONFLICT = {"merge", "replace"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def now_millis() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class StoreConfig:
    """Settings shared by every collection of one datastore.

    ``guard_cycles`` turns on the in-flight id guard for recursive inserts;
    it is off by default so revisiting an unsaved record recurses as usual.
    """

    on_conflict: str = "merge"
    guard_cycles: bool = False
    clock: Callable[[], int] = field(default=now_millis, compare=False)
    cache_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if self.on_conflict not in _ALLOWED_ON_CONFLICT:
            raise SchemaError(f"on_conflict must be one of {sorted(_ALLOWED_ON_CONFLICT)}.")
        if not callable(self.clock):
            raise SchemaError("clock must be callable.")

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "StoreConfig":
        env = os.environ if environ is None else environ
        guard_raw = env.get(_GUARD_CYCLES_ENV, "").strip().lower()
        if guard_raw in _TRUTHY:
            guard = True
        elif guard_raw in _FALSY:
            guard = False
        else:
            raise SchemaError(f"{_GUARD_CYCLES_ENV} must be a boolean flag, got {guard_raw!r}.")
        return StoreConfig(
            on_conflict=env.get(_ON_CONFLICT_ENV, "merge").strip().lower() or "merge",
            guard_cycles=guard,
            cache_dir=env.get(_CACHE_DIR_ENV) or None,
        )
