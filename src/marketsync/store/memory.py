"""In-memory document store for development and testing."""

from __future__ import annotations

import copy
from typing import Any

from marketsync.store.base import DocumentStore


class MemoryDocumentStore(DocumentStore):
    """Document store keeping every collection in a dict.

    Writes are applied with plain dict assignments after the base class has
    validated the whole commit, so a commit is all-or-nothing.
    """

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    @property
    def location(self) -> str:
        return "memory"

    def _load_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return self._collections.get(collection, {}).get(doc_id)

    def _load_collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return dict(self._collections.get(collection, {}))

    def _apply(self, writes: list[tuple[str, str, dict[str, Any] | None]]) -> None:
        for collection, doc_id, data in writes:
            documents = self._collections.setdefault(collection, {})
            if data is None:
                documents.pop(doc_id, None)
            else:
                documents[doc_id] = copy.deepcopy(data)

    def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        return len(self._collections.get(collection, {}))
