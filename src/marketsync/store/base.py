"""Document store abstraction.

This module provides:
- DocumentStore: Abstract realtime document store (collections of documents)
- Query, FieldFilter: Equality/range predicates with a single ordering field
- WriteBatch: All-or-nothing multi-document writes
- DocumentSnapshot: Immutable view of a stored document
- ListenerRegistration: Handle detaching a live query listener
- SERVER_TIMESTAMP: Sentinel replaced by the store clock at write time

Architecture:
    write ─► _commit ─► resolve sentinels ─► validate ─► _apply (atomic)
                                                            │
                                          re-run live queries on touched
                                          collections, push full results

Backends implement three primitives: load one document, load a collection,
and apply a list of resolved writes atomically. Query evaluation, listener
fan-out and the timestamp clock live here so every backend behaves the same.
Every public operation yields to the event loop once, which is where a remote
backend would suspend on the network.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from marketsync.core.errors import StoreError

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel type for store-assigned timestamps."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

EQUALITY_OPS = frozenset({"=="})
RANGE_OPS = frozenset({"<", "<=", ">", ">="})


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into its collection path and document id.

    Args:
        path: Slash-separated path with an even number of segments
            (e.g. "users/u1/notifications/n1").

    Returns:
        Tuple of (collection path, document id).

    Raises:
        StoreError: If the path does not address a document.
    """
    segments = [s for s in path.split("/") if s]
    if not segments or len(segments) % 2 != 0:
        raise StoreError(f"Invalid document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def document_path(collection: str, doc_id: str) -> str:
    """Join a collection path and a document id."""
    return f"{collection.strip('/')}/{doc_id}"


def get_field(data: dict[str, Any], name: str) -> Any:
    """Read a possibly dotted field path. Returns None if absent."""
    value: Any = data
    for part in name.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _set_field(data: dict[str, Any], name: str, value: Any) -> None:
    parts = name.split(".")
    target = data
    for part in parts[:-1]:
        nested = target.get(part)
        if not isinstance(nested, dict):
            nested = {}
            target[part] = nested
        target = nested
    target[parts[-1]] = value


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document as read from the store."""

    collection: str
    id: str
    data: dict[str, Any]

    @property
    def path(self) -> str:
        return document_path(self.collection, self.id)

    def get(self, name: str) -> Any:
        return get_field(self.data, name)


@dataclass(frozen=True)
class FieldFilter:
    """A single predicate on a document field."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in EQUALITY_OPS | RANGE_OPS:
            raise StoreError(f"Unsupported query operator: {self.op!r}")

    @property
    def is_range(self) -> bool:
        return self.op in RANGE_OPS

    def matches(self, data: dict[str, Any]) -> bool:
        actual = get_field(data, self.field)
        if actual is None:
            return False
        if isinstance(self.value, Enum):
            expected = self.value.value
        else:
            expected = self.value
        try:
            if self.op == "==":
                return bool(actual == expected)
            if self.op == "<":
                return bool(actual < expected)
            if self.op == "<=":
                return bool(actual <= expected)
            if self.op == ">":
                return bool(actual > expected)
            return bool(actual >= expected)
        except TypeError:
            # Values of different types never match
            return False


class Direction(str, Enum):
    """Ordering direction of a query."""

    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class Query:
    """A query over one collection.

    Attributes:
        collection: Collection path (e.g. "chats/c1/messages").
        filters: Predicates that must all match.
        any_of: Equality predicates of which at least one must match.
        order_by: Field to order results on. Documents without it are excluded.
        direction: Ordering direction.
        limit: Maximum number of results.
    """

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    any_of: tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    direction: Direction = Direction.ASCENDING
    limit: int | None = None

    def where(self, field_name: str, op: str, value: Any) -> Query:
        """Return a copy with one more AND-combined predicate."""
        return Query(
            collection=self.collection,
            filters=(*self.filters, FieldFilter(field_name, op, value)),
            any_of=self.any_of,
            order_by=self.order_by,
            direction=self.direction,
            limit=self.limit,
        )

    def validate(self) -> None:
        """Check the query against the store's capabilities.

        Raises:
            StoreError: If range predicates span more than one field or a
                disjunction contains a range predicate.
        """
        range_fields = {f.field for f in self.filters if f.is_range}
        if len(range_fields) > 1:
            raise StoreError(
                f"Range filters on multiple fields are not supported: {sorted(range_fields)}"
            )
        if any(f.is_range for f in self.any_of):
            raise StoreError("Disjunctions only support equality filters")

    def matches(self, data: dict[str, Any]) -> bool:
        if not all(f.matches(data) for f in self.filters):
            return False
        if self.any_of and not any(f.matches(data) for f in self.any_of):
            return False
        return not (self.order_by and get_field(data, self.order_by) is None)

    def apply(self, documents: Iterable[DocumentSnapshot]) -> list[DocumentSnapshot]:
        """Filter, order and limit documents of this query's collection."""
        results = [doc for doc in documents if self.matches(doc.data)]
        results.sort(key=lambda doc: doc.id)
        if self.order_by:
            order_by = self.order_by
            results.sort(
                key=lambda doc: get_field(doc.data, order_by),
                reverse=self.direction == Direction.DESCENDING,
            )
        if self.limit is not None:
            results = results[: self.limit]
        return results


@dataclass(frozen=True)
class WriteOp:
    """One write inside a commit.

    ``kind`` is "set", "update" or "delete". For "update", ``data`` holds
    dotted field paths merged into the existing document.
    """

    kind: str
    collection: str
    doc_id: str
    data: dict[str, Any] | None = None


class WriteBatch:
    """A set of writes applied as a single all-or-nothing unit.

    Usage:
        batch = store.batch()
        for doc in unread:
            batch.update(doc.path, {"read": True})
        await batch.commit()
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._ops: list[WriteOp] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, path: str, data: dict[str, Any]) -> WriteBatch:
        collection, doc_id = split_path(path)
        self._ops.append(WriteOp("set", collection, doc_id, dict(data)))
        return self

    def update(self, path: str, fields: dict[str, Any]) -> WriteBatch:
        collection, doc_id = split_path(path)
        self._ops.append(WriteOp("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, path: str) -> WriteBatch:
        collection, doc_id = split_path(path)
        self._ops.append(WriteOp("delete", collection, doc_id))
        return self

    async def commit(self) -> None:
        """Apply all writes atomically.

        Raises:
            StoreError: If the batch was already committed or any write
                fails. Nothing is applied in that case.
        """
        if self._committed:
            raise StoreError("Batch already committed")
        self._committed = True
        await self._store._commit(self._ops)


SnapshotCallback = Callable[[list[DocumentSnapshot]], None]
ErrorCallback = Callable[[BaseException], None]


@dataclass
class _Listener:
    query: Query
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True


@dataclass
class ListenerRegistration:
    """Handle returned by DocumentStore.listen()."""

    _remove: Callable[[], None]
    _removed: bool = field(default=False, init=False)

    def remove(self) -> None:
        """Detach the listener. Safe to call more than once."""
        if self._removed:
            return
        self._removed = True
        self._remove()


class DocumentStore(ABC):
    """Abstract realtime document store.

    Subclasses provide storage primitives; this class implements the public
    API on top of them.
    """

    def __init__(self) -> None:
        self._listeners: list[_Listener] = []
        self._last_timestamp: datetime | None = None

    # === Backend primitives ===

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where documents live."""

    @abstractmethod
    def _load_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Load one document's fields, or None if it does not exist."""

    @abstractmethod
    def _load_collection(self, collection: str) -> dict[str, dict[str, Any]]:
        """Load every document of a collection as {id: fields}."""

    @abstractmethod
    def _apply(self, writes: list[tuple[str, str, dict[str, Any] | None]]) -> None:
        """Atomically apply resolved writes.

        Args:
            writes: (collection, doc_id, fields) tuples. ``fields`` is the full
                new document, or None to delete it.

        Raises:
            StoreError: If the writes could not be applied. Nothing may be
                applied in that case.
        """

    def close(self) -> None:
        """Release backend resources and detach all listeners."""
        for listener in self._listeners:
            listener.active = False
        self._listeners.clear()

    # === Clock ===

    def now(self) -> datetime:
        """Return a store timestamp, strictly greater than any previous one."""
        current = datetime.now(UTC)
        if self._last_timestamp is not None and current <= self._last_timestamp:
            current = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = current
        return current

    def _resolve_sentinels(self, data: dict[str, Any], timestamp: datetime) -> dict[str, Any]:
        resolved: dict[str, Any] = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                resolved[key] = timestamp
            elif isinstance(value, dict):
                resolved[key] = self._resolve_sentinels(value, timestamp)
            else:
                resolved[key] = copy.deepcopy(value)
        return resolved

    # === Reads ===

    async def get(self, path: str) -> DocumentSnapshot | None:
        """Read one document.

        Returns:
            DocumentSnapshot, or None if the document does not exist.
        """
        collection, doc_id = split_path(path)
        await asyncio.sleep(0)
        data = self._load_document(collection, doc_id)
        if data is None:
            return None
        return DocumentSnapshot(collection, doc_id, copy.deepcopy(data))

    async def query(self, query: Query) -> list[DocumentSnapshot]:
        """Run a one-shot query.

        Raises:
            StoreError: If the query is not supported or the read fails.
        """
        query.validate()
        await asyncio.sleep(0)
        return self._run_query(query)

    def _run_query(self, query: Query) -> list[DocumentSnapshot]:
        documents = self._load_collection(query.collection)
        snapshots = (
            DocumentSnapshot(query.collection, doc_id, copy.deepcopy(data))
            for doc_id, data in documents.items()
        )
        return query.apply(snapshots)

    # === Writes ===

    def batch(self) -> WriteBatch:
        """Start a new atomic batch."""
        return WriteBatch(self)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id.

        Returns:
            The new document id.
        """
        doc_id = uuid.uuid4().hex[:20]
        await self._commit([WriteOp("set", collection.strip("/"), doc_id, dict(data))])
        return doc_id

    async def set(self, path: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document."""
        await self.batch().set(path, data).commit()

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing document.

        Raises:
            StoreError: If the document does not exist.
        """
        await self.batch().update(path, fields).commit()

    async def delete(self, path: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        await self.batch().delete(path).commit()

    async def _commit(self, ops: list[WriteOp]) -> None:
        await asyncio.sleep(0)
        if not ops:
            return
        timestamp = self.now()

        # Resolve every write against the current state before applying any
        staged: dict[tuple[str, str], dict[str, Any] | None] = {}
        for op in ops:
            key = (op.collection, op.doc_id)
            if op.kind == "delete":
                staged[key] = None
                continue
            data = self._resolve_sentinels(op.data or {}, timestamp)
            if op.kind == "set":
                staged[key] = data
                continue
            current = staged[key] if key in staged else self._load_document(*key)
            if current is None:
                raise StoreError(f"No document to update: {document_path(*key)}")
            merged = copy.deepcopy(current)
            for name, value in data.items():
                _set_field(merged, name, value)
            staged[key] = merged

        self._apply([(collection, doc_id, data) for (collection, doc_id), data in staged.items()])
        self._notify({collection for collection, _ in staged})

    # === Live queries ===

    def listen(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> ListenerRegistration:
        """Subscribe to a live query.

        The current result is pushed immediately; afterwards the full result
        is re-pushed after every commit touching the query's collection.
        Errors are delivered to ``on_error`` and detach the listener.

        Returns:
            Registration whose ``remove()`` detaches the listener.
        """
        listener = _Listener(query, on_snapshot, on_error)

        def remove() -> None:
            listener.active = False
            if listener in self._listeners:
                self._listeners.remove(listener)

        registration = ListenerRegistration(remove)
        try:
            query.validate()
        except StoreError as e:
            listener.active = False
            on_error(e)
            return registration

        self._listeners.append(listener)
        self._deliver(listener)
        return registration

    def _notify(self, collections: set[str]) -> None:
        for listener in list(self._listeners):
            if listener.active and listener.query.collection in collections:
                self._deliver(listener)

    def _deliver(self, listener: _Listener) -> None:
        try:
            snapshots = self._run_query(listener.query)
        except StoreError as e:
            listener.active = False
            if listener in self._listeners:
                self._listeners.remove(listener)
            listener.on_error(e)
            return
        if listener.active:
            listener.on_snapshot(snapshots)
