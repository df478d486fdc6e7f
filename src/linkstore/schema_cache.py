"""Disk cache for declarative mapper definitions."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import tempfile
from typing import Optional

from diskcache import Cache

from linkstore.errors import CacheError
from linkstore.mapper import Mapper
from linkstore.record import Record

logger = logging.getLogger(__name__)

_CACHE_ENV = "LINKSTORE_CACHE_DIR"
_KEY_PREFIX = "mapper:"


def _cache_dir(cache_dir: Optional[str] = None) -> Path:
    if cache_dir:
        return Path(cache_dir).expanduser()
    env_dir = os.environ.get(_CACHE_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path(tempfile.gettempdir()) / "linkstore" / "mapper_cache"


def _open_cache(cache_dir: Optional[str] = None) -> Cache:
    path = _cache_dir(cache_dir)
    try:
        return Cache(str(path))
    except OSError as exc:
        raise CacheError(f"Cannot open mapper cache at {path}: {exc}") from exc


def cache_mapper(mapper: Mapper, cache_dir: Optional[str] = None) -> None:
    payload = mapper.to_dict()
    cache = _open_cache(cache_dir)
    try:
        cache.set(_KEY_PREFIX + mapper.name, payload)
    finally:
        cache.close()
    logger.debug("cached mapper %s", mapper.name)


def load_cached_mappers(
    cache_dir: Optional[str] = None, record_class: Optional[type] = Record
) -> list[Mapper]:
    cache = _open_cache(cache_dir)
    try:
        keys = sorted(key for key in cache.iterkeys() if str(key).startswith(_KEY_PREFIX))
        items = [cache[key] for key in keys]
    finally:
        cache.close()
    logger.debug("loaded %d cached mappers", len(items))
    return [Mapper.from_dict(item, record_class=record_class) for item in items]


def clear_mapper_cache(cache_dir: Optional[str] = None) -> int:
    cache = _open_cache(cache_dir)
    try:
        keys = [key for key in cache.iterkeys() if str(key).startswith(_KEY_PREFIX)]
        for key in keys:
            cache.delete(key)
    finally:
        cache.close()
    return len(keys)
