"""Custom exceptions for the linked record store."""

from __future__ import annotations


class LinkstoreError(Exception):
    """Base exception for store failures."""


class ConfigurationError(LinkstoreError):
    """Raised when a collection or store is wired up incorrectly."""


class RelationLookupError(LinkstoreError, KeyError):
    """Raised when a mapper or collection name is not registered."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class SchemaError(LinkstoreError):
    """Raised when a mapper or relation declaration is invalid."""


class CacheError(LinkstoreError):
    """Raised when the mapper schema cache cannot be read or written."""
