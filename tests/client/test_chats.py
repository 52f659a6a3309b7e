"""Tests for chat creation and chat lists."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from marketsync.client import Marketplace
from marketsync.client.chats import ChatDirectory
from marketsync.core.errors import StoreError, ValidationError
from marketsync.core.models import Chat, Message, Product
from marketsync.core.types import MessageType
from marketsync.store.memory import MemoryDocumentStore

ProductFactory = Callable[..., Awaitable[Product]]

BUYER = "buyer-1"
SELLER = "seller-1"


def _at(seconds: int) -> datetime:
    return datetime(2024, 1, 1, tzinfo=UTC) + timedelta(seconds=seconds)


class TestGetOrCreateChat:
    """Tests for ChatDirectory.get_or_create_chat."""

    @pytest.mark.asyncio
    async def test_creates_chat(self, market: Marketplace, make_product: ProductFactory) -> None:
        product = await make_product()
        chat = await market.chats.get_or_create_chat(BUYER, SELLER, product.id)
        assert chat.buyer_id == BUYER
        assert chat.seller_id == SELLER
        assert chat.product_id == product.id
        assert chat.messages == []
        assert chat.last_message_at is None

    @pytest.mark.asyncio
    async def test_sequential_calls_return_same_chat(
        self, market: Marketplace, store: MemoryDocumentStore, make_product: ProductFactory
    ) -> None:
        product = await make_product()
        first = await market.chats.get_or_create_chat(BUYER, SELLER, product.id)
        second = await market.chats.get_or_create_chat(BUYER, SELLER, product.id)
        assert first.id == second.id
        assert store.count(Chat.COLLECTION) == 1

    @pytest.mark.asyncio
    async def test_distinct_triples_get_distinct_chats(
        self, market: Marketplace, make_product: ProductFactory
    ) -> None:
        bike = await make_product()
        lamp = await make_product(name="Lamp")
        a = await market.chats.get_or_create_chat(BUYER, SELLER, bike.id)
        b = await market.chats.get_or_create_chat(BUYER, SELLER, lamp.id)
        c = await market.chats.get_or_create_chat("buyer-2", SELLER, bike.id)
        assert len({a.id, b.id, c.id}) == 3

    @pytest.mark.asyncio
    async def test_concurrent_first_contact_can_duplicate(
        self, market: Marketplace, store: MemoryDocumentStore, make_product: ProductFactory
    ) -> None:
        """Racing first contacts may create two chats; later lookups pick the oldest."""
        product = await make_product()
        first, second = await asyncio.gather(
            market.chats.get_or_create_chat(BUYER, SELLER, product.id),
            market.chats.get_or_create_chat(BUYER, SELLER, product.id),
        )
        assert store.count(Chat.COLLECTION) == 2
        assert first.id != second.id

        oldest = min((first, second), key=lambda chat: chat.created_at)
        again = await market.chats.get_or_create_chat(BUYER, SELLER, product.id)
        assert again.id == oldest.id

    @pytest.mark.asyncio
    async def test_buyer_cannot_be_seller(
        self, market: Marketplace, store: MemoryDocumentStore, make_product: ProductFactory
    ) -> None:
        product = await make_product()
        with pytest.raises(ValidationError, match="different"):
            await market.chats.get_or_create_chat(SELLER, SELLER, product.id)
        assert store.count(Chat.COLLECTION) == 0

    @pytest.mark.asyncio
    async def test_unknown_product(self, market: Marketplace) -> None:
        with pytest.raises(ValidationError, match="Unknown product"):
            await market.chats.get_or_create_chat(BUYER, SELLER, "ghost")

    @pytest.mark.asyncio
    async def test_product_of_another_seller(
        self, market: Marketplace, make_product: ProductFactory
    ) -> None:
        product = await make_product(seller_id="seller-2")
        with pytest.raises(ValidationError, match="not listed by"):
            await market.chats.get_or_create_chat(BUYER, SELLER, product.id)

    @pytest.mark.asyncio
    async def test_lookup_failure_wrapped_once(
        self, market: Marketplace, store: MemoryDocumentStore, make_product: ProductFactory
    ) -> None:
        product = await make_product()
        with (
            patch.object(store, "query", side_effect=StoreError("offline")),
            pytest.raises(StoreError, match=r"^Failed to get chat: offline$"),
        ):
            await market.chats.get_or_create_chat(BUYER, SELLER, product.id)

    @pytest.mark.asyncio
    async def test_create_failure_wrapped_once(
        self, market: Marketplace, store: MemoryDocumentStore, make_product: ProductFactory
    ) -> None:
        product = await make_product()
        with (
            patch.object(store, "add", side_effect=StoreError("disk full")),
            pytest.raises(StoreError, match=r"^Failed to create chat: disk full$"),
        ):
            await market.chats.get_or_create_chat(BUYER, SELLER, product.id)


class TestListChats:
    """Tests for ChatDirectory.list_chats."""

    @pytest.mark.asyncio
    async def test_lists_chats_as_buyer_or_seller(
        self, market: Marketplace, make_product: ProductFactory
    ) -> None:
        bike = await make_product()
        other = await make_product(seller_id="seller-2")
        as_buyer = await market.chats.get_or_create_chat(BUYER, SELLER, bike.id)
        await market.chats.get_or_create_chat("buyer-2", "seller-2", other.id)
        as_seller = await market.chats.get_or_create_chat("seller-2", SELLER, bike.id)

        buyer_stream = market.chats.list_chats(BUYER)
        seller_stream = market.chats.list_chats(SELLER)
        assert [c.id for c in await buyer_stream.next()] == [as_buyer.id]
        assert [c.id for c in await seller_stream.next()] == [as_seller.id, as_buyer.id]
        buyer_stream.cancel()
        seller_stream.cancel()

    @pytest.mark.asyncio
    async def test_new_chat_emitted(
        self, market: Marketplace, make_product: ProductFactory
    ) -> None:
        product = await make_product()
        stream = market.chats.list_chats(SELLER)
        assert await stream.next() == []
        chat = await market.chats.get_or_create_chat(BUYER, SELLER, product.id)
        assert [c.id for c in await stream.next()] == [chat.id]
        stream.cancel()


class TestReadState:
    """Tests for read markers and unread counts."""

    @pytest.mark.asyncio
    async def test_mark_read(self, market: Marketplace, make_product: ProductFactory) -> None:
        product = await make_product()
        chat = await market.chats.get_or_create_chat(BUYER, SELLER, product.id)
        await market.chats.mark_read(chat.id, BUYER)
        updated = await market.chats.get_chat(chat.id)
        assert updated is not None
        assert set(updated.read_by) == {BUYER}
        assert updated.read_by[BUYER] > chat.created_at

    @pytest.mark.asyncio
    async def test_mark_read_unknown_chat(self, market: Marketplace) -> None:
        with pytest.raises(StoreError, match="Failed to mark chat as read"):
            await market.chats.mark_read("ghost", BUYER)

    @pytest.mark.asyncio
    async def test_unread_count(self, market: Marketplace, make_product: ProductFactory) -> None:
        product = await make_product()
        chat = await market.chats.get_or_create_chat(BUYER, SELLER, product.id)
        await market.messages.send(chat.id, SELLER, "hello")
        await market.messages.send(chat.id, BUYER, "hi")
        await market.chats.mark_read(chat.id, BUYER)
        await market.messages.send(chat.id, SELLER, "still there?")

        stream = market.messages.subscribe(chat.id)
        messages = await stream.next()
        stream.cancel()
        chat = await market.chats.get_chat(chat.id)  # type: ignore[assignment]
        assert ChatDirectory.unread_count(chat, messages, BUYER) == 1
        assert ChatDirectory.unread_count(chat, messages, SELLER) == 1

    def test_unread_count_never_read(self) -> None:
        chat = Chat(
            id="c1",
            buyer_id=BUYER,
            seller_id=SELLER,
            product_id="p1",
            created_at=_at(0),
        )
        messages = [
            Message(
                id=f"m{i}",
                sender_id=SELLER,
                content="x",
                type=MessageType.TEXT,
                created_at=_at(i),
            )
            for i in range(3)
        ]
        assert ChatDirectory.unread_count(chat, messages, BUYER) == 3
        assert ChatDirectory.unread_count(chat, messages, SELLER) == 0
