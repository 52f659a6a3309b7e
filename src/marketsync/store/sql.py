"""Document store persisted with SQLAlchemy over SQLite.

This module provides:
- DocumentRecord: ORM row holding one JSON-encoded document
- SqlDocumentStore: DocumentStore backed by a SQLite file

Live queries are delivered in-process: listeners registered on one
SqlDocumentStore instance see the writes made through that instance only.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, Index, String, Text, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from marketsync.core.errors import StoreError
from marketsync.store.base import DocumentStore

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

_TIMESTAMP_KEY = "$timestamp"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class DocumentRecord(Base):
    """One stored document."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(512), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (Index("idx_documents_collection", "collection"),)


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_TIMESTAMP_KEY: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode_object(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _TIMESTAMP_KEY in obj:
        return datetime.fromisoformat(obj[_TIMESTAMP_KEY])
    return obj


def encode_document(data: dict[str, Any]) -> str:
    """Serialize document fields to JSON, tagging timestamps."""
    return json.dumps(data, default=_encode_value, sort_keys=True)


def decode_document(text: str) -> dict[str, Any]:
    """Parse JSON produced by encode_document()."""
    return json.loads(text, object_hook=_decode_object)


class SqlDocumentStore(DocumentStore):
    """SQLite document store.

    Uses WAL mode so readers in other processes (e.g. the CLI) do not block
    the writer.
    """

    def __init__(self, db_path: Path) -> None:
        """Open or create the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        super().__init__()
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        Base.metadata.create_all(self._engine)

    @property
    def location(self) -> str:
        return str(self._db_path)

    def close(self) -> None:
        """Detach listeners and close the database connection."""
        super().close()
        self._engine.dispose()

    def _session(self) -> Session:
        return Session(self._engine)

    def _load_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            with self._session() as session:
                record = session.get(DocumentRecord, (collection, doc_id))
                if record is None:
                    return None
                return decode_document(record.data)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}") from e

    def _load_collection(self, collection: str) -> dict[str, dict[str, Any]]:
        try:
            with self._session() as session:
                stmt = select(DocumentRecord).where(DocumentRecord.collection == collection)
                return {
                    record.doc_id: decode_document(record.data)
                    for record in session.execute(stmt).scalars()
                }
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {collection}: {e}") from e

    def _apply(self, writes: list[tuple[str, str, dict[str, Any] | None]]) -> None:
        try:
            with self._session() as session, session.begin():
                for collection, doc_id, data in writes:
                    if data is None:
                        session.execute(
                            delete(DocumentRecord).where(
                                DocumentRecord.collection == collection,
                                DocumentRecord.doc_id == doc_id,
                            )
                        )
                        continue
                    record = session.get(DocumentRecord, (collection, doc_id))
                    if record is None:
                        session.add(
                            DocumentRecord(
                                collection=collection,
                                doc_id=doc_id,
                                data=encode_document(data),
                            )
                        )
                    else:
                        record.data = encode_document(data)
        except (SQLAlchemyError, TypeError) as e:
            raise StoreError(f"Failed to commit {len(writes)} writes: {e}") from e
        logger.debug("Committed %d writes to %s", len(writes), self._db_path)
