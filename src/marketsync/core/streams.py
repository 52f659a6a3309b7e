"""Cancellable live values.

This module provides:
- LiveStream: The handle returned by every subscription in marketsync

Architecture:
    DocumentStore listener ─push()─► LiveStream ─async for─► consumer
                                        │
                                 (latest value only)

A LiveStream keeps only the most recent value that has not been consumed yet.
Consumers that fall behind skip intermediate values and always see the
newest snapshot. Producers call ``push()`` and ``fail()``; both are plain
synchronous calls so they can be invoked from store listener callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, TypeVar

from marketsync.core.errors import MarketSyncError, StoreError

if TYPE_CHECKING:
    from marketsync.store.base import DocumentSnapshot, DocumentStore, Query

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EMPTY = object()


class LiveStream(Generic[T]):
    """A subscription yielding repeated values until cancelled.

    Usage:
        stream = messages.subscribe(chat_id)
        async with stream:
            async for snapshot in stream:
                render(snapshot)

    Iteration ends when the stream is cancelled. If the source fails, the
    error is raised from the next ``next()`` call and the stream stops; it is
    never resubscribed automatically.
    """

    def __init__(self, name: str = "stream") -> None:
        """Initialize an empty stream.

        Args:
            name: Label used in log messages.
        """
        self._name = name
        self._latest: object = _EMPTY
        self._pending = False
        self._error: BaseException | None = None
        self._cancelled = False
        self._detach: Callable[[], None] | None = None
        self._wakeup = asyncio.Event()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "failed" if self._error else "live"
        return f"<LiveStream {self._name} {state}>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def cancelled(self) -> bool:
        """Check if cancel() has been called."""
        return self._cancelled

    @property
    def error(self) -> BaseException | None:
        """Error that stopped the stream, if any."""
        return self._error

    @property
    def has_value(self) -> bool:
        """Check if at least one value has been pushed."""
        return self._latest is not _EMPTY

    @property
    def latest(self) -> T | None:
        """Most recent value, or None before the first push."""
        if not self.has_value:
            return None
        return self._latest  # type: ignore[return-value]

    def bind(self, detach: Callable[[], None]) -> None:
        """Attach the function that releases the underlying subscription.

        If the stream was already cancelled or failed, the subscription is
        released immediately.
        """
        if self._cancelled or self._error is not None:
            detach()
            return
        self._detach = detach

    # === Producer side ===

    def push(self, value: T) -> None:
        """Publish a new value. Ignored after cancel or failure."""
        if self._cancelled or self._error is not None:
            return
        self._latest = value
        self._pending = True
        self._wakeup.set()

    def fail(self, error: BaseException) -> None:
        """Stop the stream with an error and release the subscription."""
        if self._cancelled or self._error is not None:
            return
        logger.warning("Live %s failed: %s", self._name, error)
        self._error = error
        self._release()
        self._wakeup.set()

    # === Consumer side ===

    def cancel(self) -> None:
        """Stop receiving values. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        self._release()
        self._wakeup.set()
        logger.debug("Live %s cancelled", self._name)

    async def next(self) -> T:
        """Wait for the next unseen value.

        Returns:
            The most recent value pushed since the previous call.

        Raises:
            StopAsyncIteration: If the stream was cancelled.
            Exception: The error passed to fail().
        """
        while True:
            if self._cancelled:
                raise StopAsyncIteration
            if self._pending:
                self._pending = False
                return self._latest  # type: ignore[return-value]
            if self._error is not None:
                raise self._error
            self._wakeup.clear()
            await self._wakeup.wait()

    def __aiter__(self) -> LiveStream[T]:
        return self

    async def __anext__(self) -> T:
        return await self.next()

    async def __aenter__(self) -> LiveStream[T]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()

    def _release(self) -> None:
        detach, self._detach = self._detach, None
        if detach is not None:
            detach()


def watch_query(
    store: DocumentStore,
    query: Query,
    transform: Callable[[list[DocumentSnapshot]], T],
    name: str,
) -> LiveStream[T]:
    """Subscribe to a live query and publish transformed snapshots.

    Every snapshot pushed by the store is passed through ``transform`` and
    the result is published. A transform error (typically DecodeError) or a
    store listener error fails the stream.

    Args:
        store: Document store to listen on.
        query: Live query.
        transform: Builds the published value from the matching documents.
        name: Label for the stream in log messages.

    Returns:
        LiveStream owning the store listener registration.
    """
    stream: LiveStream[T] = LiveStream(name)

    def on_snapshot(docs: list[DocumentSnapshot]) -> None:
        try:
            value = transform(docs)
        except MarketSyncError as e:
            stream.fail(e)
            return
        logger.debug("Live %s: %d documents", name, len(docs))
        stream.push(value)

    def on_error(error: BaseException) -> None:
        if not isinstance(error, StoreError):
            error = StoreError(f"Live {name} failed: {error}")
        stream.fail(error)

    registration = store.listen(query, on_snapshot, on_error)
    stream.bind(registration.remove)
    return stream
