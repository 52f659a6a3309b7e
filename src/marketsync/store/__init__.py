"""Document store backends.

- base: DocumentStore contract, queries, batches and live listeners
- memory: In-memory backend for tests and local experiments
- sql: SQLAlchemy/SQLite backend
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from marketsync.store.base import (
    SERVER_TIMESTAMP,
    Direction,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    ListenerRegistration,
    Query,
    WriteBatch,
    document_path,
    split_path,
)
from marketsync.store.memory import MemoryDocumentStore
from marketsync.store.sql import SqlDocumentStore

if TYPE_CHECKING:
    from marketsync.core.config import MarketConfig


def create_store(config: MarketConfig) -> DocumentStore:
    """Create a document store from configuration.

    Args:
        config: Marketplace configuration. ``db_path`` selects SQLite;
            otherwise the in-memory store is used.

    Returns:
        DocumentStore instance.
    """
    if config.db_path is not None:
        return SqlDocumentStore(config.db_path)
    return MemoryDocumentStore()


__all__ = [
    "SERVER_TIMESTAMP",
    "Direction",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "ListenerRegistration",
    "MemoryDocumentStore",
    "Query",
    "SqlDocumentStore",
    "WriteBatch",
    "create_store",
    "document_path",
    "split_path",
]
