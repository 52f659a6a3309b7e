"""Tests for the notification center."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pydantic
import pytest

from marketsync.client import Marketplace
from marketsync.client.notifications import DeliveryResult, notifications_collection
from marketsync.client.push import PushMessage
from marketsync.core.errors import PushDispatchError, StoreError
from marketsync.core.models import Notification, NotificationDraft
from marketsync.core.types import NotificationType, UserType
from marketsync.store.base import DocumentSnapshot
from marketsync.store.memory import MemoryDocumentStore

USER = "seller-1"


def _draft(title: str = "New offer") -> NotificationDraft:
    return NotificationDraft(type=NotificationType.OFFER, title=title, message="Someone offered 80")


@pytest.fixture
def dispatcher() -> AsyncMock:
    """Create a push dispatcher double."""
    return AsyncMock()


@pytest.fixture
def push_market(store: MemoryDocumentStore, dispatcher: AsyncMock) -> Marketplace:
    """Create a marketplace with push delivery."""
    return Marketplace(store, dispatcher)


async def _register(market: Marketplace, token: str | None = "device-token") -> None:
    await market.profiles.create_profile(USER, "s@example.com", "Sam", UserType.SELLER)
    if token is not None:
        await market.profiles.set_push_token(USER, token)


class TestCreate:
    """Tests for NotificationCenter.create."""

    @pytest.mark.asyncio
    async def test_persists_unread(self, market: Marketplace) -> None:
        result = await market.notifications.create(USER, _draft())
        assert isinstance(result, DeliveryResult)
        assert result.delivered is False
        assert result.error is None
        notification = result.notification
        assert notification.user_id == USER
        assert notification.type == NotificationType.OFFER
        assert notification.read is False

    @pytest.mark.asyncio
    async def test_pushes_to_registered_device(
        self, push_market: Marketplace, dispatcher: AsyncMock
    ) -> None:
        await _register(push_market)
        result = await push_market.notifications.create(USER, _draft())
        assert result.delivered is True
        dispatcher.dispatch.assert_awaited_once_with(
            PushMessage(
                token="device-token",
                title="New offer",
                body="Someone offered 80",
                data={"type": "offer", "userId": USER},
            )
        )

    @pytest.mark.asyncio
    async def test_no_push_without_token(
        self, push_market: Marketplace, dispatcher: AsyncMock
    ) -> None:
        await _register(push_market, token=None)
        result = await push_market.notifications.create(USER, _draft())
        assert result.delivered is False
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_push_without_profile(
        self, push_market: Marketplace, dispatcher: AsyncMock
    ) -> None:
        result = await push_market.notifications.create(USER, _draft())
        assert result.delivered is False
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_notification(
        self, push_market: Marketplace, store: MemoryDocumentStore, dispatcher: AsyncMock
    ) -> None:
        await _register(push_market)
        dispatcher.dispatch.side_effect = PushDispatchError("rejected", status_code=500)
        result = await push_market.notifications.create(USER, _draft())
        assert result.delivered is False
        assert isinstance(result.error, PushDispatchError)
        assert result.error.status_code == 500
        assert store.count(notifications_collection(USER)) == 1
        with pytest.raises(PushDispatchError, match="rejected"):
            result.raise_for_delivery()

    @pytest.mark.asyncio
    async def test_token_lookup_failure_reported(
        self, push_market: Marketplace, store: MemoryDocumentStore, dispatcher: AsyncMock
    ) -> None:
        await _register(push_market)
        original_get = store.get

        async def flaky_get(path: str) -> DocumentSnapshot | None:
            if path == f"users/{USER}":
                raise StoreError("offline")
            return await original_get(path)

        with patch.object(store, "get", side_effect=flaky_get):
            result = await push_market.notifications.create(USER, _draft())
        assert result.notification.title == "New offer"
        assert isinstance(result.error, PushDispatchError)
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    def test_unknown_type(self) -> None:
        with pytest.raises(pydantic.ValidationError, match="type"):
            NotificationDraft(type="promo", title="t", message="m")  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_store_failure(self, market: Marketplace, store: MemoryDocumentStore) -> None:
        with (
            patch.object(store, "_apply", side_effect=StoreError("disk full")),
            pytest.raises(StoreError, match="Failed to send notification"),
        ):
            await market.notifications.create(USER, _draft())


class TestFeeds:
    """Tests for live notification feeds."""

    @pytest.mark.asyncio
    async def test_newest_first(self, market: Marketplace) -> None:
        for title in ("first", "second", "third"):
            await market.notifications.create(USER, _draft(title))
        stream = market.notifications.subscribe(USER)
        assert [n.title for n in await stream.next()] == ["third", "second", "first"]
        stream.cancel()

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, market: Marketplace) -> None:
        await market.notifications.create("someone-else", _draft())
        stream = market.notifications.subscribe(USER)
        assert await stream.next() == []
        stream.cancel()

    @pytest.mark.asyncio
    async def test_unread_count(self, market: Marketplace) -> None:
        stream = market.notifications.unread_count(USER)
        assert await stream.next() == 0
        first = await market.notifications.create(USER, _draft())
        await market.notifications.create(USER, _draft())
        assert await stream.next() == 2
        await market.notifications.mark_read(USER, first.notification.id)
        assert await stream.next() == 1
        stream.cancel()


class TestReadState:
    """Tests for read transitions."""

    @pytest.mark.asyncio
    async def test_mark_read_is_idempotent(self, market: Marketplace) -> None:
        result = await market.notifications.create(USER, _draft())
        await market.notifications.mark_read(USER, result.notification.id)
        await market.notifications.mark_read(USER, result.notification.id)
        stream = market.notifications.subscribe(USER)
        (notification,) = await stream.next()
        assert notification.read is True
        stream.cancel()

    @pytest.mark.asyncio
    async def test_mark_read_missing(self, market: Marketplace) -> None:
        with pytest.raises(StoreError, match="Failed to mark notification as read"):
            await market.notifications.mark_read(USER, "ghost")

    @pytest.mark.asyncio
    async def test_mark_all_read(self, market: Marketplace) -> None:
        for _ in range(3):
            await market.notifications.create(USER, _draft())
        stream = market.notifications.subscribe(USER)
        await stream.next()

        assert await market.notifications.mark_all_read(USER) == 3
        assert all(n.read for n in await stream.next())
        assert await market.notifications.mark_all_read(USER) == 0
        stream.cancel()

    @pytest.mark.asyncio
    async def test_mark_all_read_is_one_emission(self, market: Marketplace) -> None:
        """Subscribers never observe a partially marked feed."""
        for _ in range(3):
            await market.notifications.create(USER, _draft())
        seen: list[list[bool]] = []
        stream = market.notifications.subscribe(USER)
        await stream.next()
        original_push = stream.push

        def record(value: list[Notification]) -> None:
            seen.append([n.read for n in value])
            original_push(value)

        with patch.object(stream, "push", side_effect=record):
            await market.notifications.mark_all_read(USER)
        assert seen == [[True, True, True]]
        stream.cancel()

    @pytest.mark.asyncio
    async def test_failed_batch_marks_nothing(
        self, market: Marketplace, store: MemoryDocumentStore
    ) -> None:
        """A notification deleted mid-operation aborts the whole batch."""
        results = [await market.notifications.create(USER, _draft()) for _ in range(3)]
        outcome, _ = await asyncio.gather(
            market.notifications.mark_all_read(USER),
            market.notifications.delete(USER, results[0].notification.id),
            return_exceptions=True,
        )
        assert isinstance(outcome, StoreError)
        stream = market.notifications.subscribe(USER)
        remaining = await stream.next()
        assert len(remaining) == 2
        assert not any(n.read for n in remaining)
        stream.cancel()

    @pytest.mark.asyncio
    async def test_created_during_mark_all_stays_unread(self, market: Marketplace) -> None:
        await market.notifications.create(USER, _draft("old"))
        marked, late = await asyncio.gather(
            market.notifications.mark_all_read(USER),
            market.notifications.create(USER, _draft("late")),
        )
        assert marked == 1
        stream = market.notifications.subscribe(USER)
        states = {n.title: n.read for n in await stream.next()}
        assert states == {"old": True, "late": False}
        assert late.notification.read is False
        stream.cancel()


class TestDeletion:
    """Tests for deletion."""

    @pytest.mark.asyncio
    async def test_delete(self, market: Marketplace, store: MemoryDocumentStore) -> None:
        result = await market.notifications.create(USER, _draft())
        await market.notifications.delete(USER, result.notification.id)
        assert store.count(notifications_collection(USER)) == 0

    @pytest.mark.asyncio
    async def test_clear_all(self, market: Marketplace, store: MemoryDocumentStore) -> None:
        for _ in range(4):
            await market.notifications.create(USER, _draft())
        await market.notifications.create("someone-else", _draft())
        assert await market.notifications.clear_all(USER) == 4
        assert store.count(notifications_collection(USER)) == 0
        assert store.count(notifications_collection("someone-else")) == 1

    @pytest.mark.asyncio
    async def test_clear_all_empty(self, market: Marketplace) -> None:
        assert await market.notifications.clear_all(USER) == 0
