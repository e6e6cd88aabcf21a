"""
Document store implementations.

`open_store` maps a connection string to a store:
- `memory://<name>` opens an `InMemoryDocumentStore`
- anything else is treated as an SQLAlchemy URL for `SqlDocumentStore`
"""
import logging

from sqlalchemy.exc import ArgumentError

from docmatic.errors import ConfigurationError

from .base import DocumentStore, as_uuid, hydrate
from .memory import InMemoryDocumentStore
from .sql import DocumentBase, DocumentRow, SqlDocumentStore

MEMORY_SCHEME = "memory://"

logger = logging.getLogger("DocumentStore")


def open_store(connection_string: str) -> DocumentStore:
    """Open a document store for a connection string."""
    if not connection_string:
        raise ConfigurationError("A connection string is required to open a document store")

    if connection_string.startswith(MEMORY_SCHEME):
        name = connection_string[len(MEMORY_SCHEME):] or "default"
        logger.info(f"Opening in-memory document store '{name}'")
        return InMemoryDocumentStore(name)

    try:
        return SqlDocumentStore.from_url(connection_string)
    except ArgumentError as e:
        raise ConfigurationError(f"Unsupported connection string {connection_string!r}: {e}") from e


__all__ = [
    "DocumentStore", "InMemoryDocumentStore", "SqlDocumentStore",
    "DocumentBase", "DocumentRow", "as_uuid", "hydrate", "open_store", "MEMORY_SCHEME",
]
