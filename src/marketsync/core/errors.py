"""Exception hierarchy for marketsync.

This module provides:
- MarketSyncError: Base class for every error raised by this package
- ValidationError: Caller-supplied data failed a local precondition
- StoreError: A document store read, write or batch failed
- DecodeError: A stored document does not match its entity shape
- PushDispatchError: Push delivery to a device failed

Validation errors are raised before any store call is made. Store errors wrap
the underlying cause in their message and chain it with ``raise ... from``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class MarketSyncError(Exception):
    """Base exception for marketsync errors."""


class ValidationError(MarketSyncError, ValueError):
    """Caller-supplied data failed a local precondition."""


class StoreError(MarketSyncError):
    """Document store operation failed."""


class DecodeError(StoreError):
    """A stored document is missing a field or has a malformed value.

    Attributes:
        collection: Collection path of the offending document.
        doc_id: Document id.
        field: Name of the missing or malformed field.
    """

    def __init__(self, collection: str, doc_id: str, field: str, reason: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self.field = field
        super().__init__(f"Cannot decode {collection}/{doc_id}: field '{field}': {reason}")


class PushDispatchError(MarketSyncError):
    """Push notification could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise store failures as StoreError("Failed to <action>: <cause>").

    DecodeError passes through unchanged so callers can still tell a
    malformed document from a failed operation.
    """
    try:
        yield
    except DecodeError:
        raise
    except StoreError as e:
        raise StoreError(f"Failed to {action}: {e}") from e
