"""Chat thread identity and lifecycle.

This module provides:
- ChatDirectory: One chat per (buyer, seller, product) triple, live chat lists

A chat is created lazily the first time a buyer contacts a seller about a
product and is never deleted here. Lookup and creation are two separate
store calls, so two first-contact calls racing for the same triple can both
miss the lookup and create a chat each. Sequential calls always return the
same chat.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from marketsync.core.errors import StoreError, ValidationError, store_errors
from marketsync.core.models import Chat, ChatDraft, Message
from marketsync.core.streams import LiveStream, watch_query
from marketsync.store.base import (
    SERVER_TIMESTAMP,
    Direction,
    FieldFilter,
    Query,
    document_path,
)

if TYPE_CHECKING:
    from marketsync.client.catalog import CatalogIndex
    from marketsync.store.base import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)


class ChatDirectory:
    """Chats between buyers and sellers."""

    def __init__(self, store: DocumentStore, catalog: CatalogIndex) -> None:
        self._store = store
        self._catalog = catalog

    async def get_or_create_chat(self, buyer_id: str, seller_id: str, product_id: str) -> Chat:
        """Return the chat for a triple, creating it on first contact.

        Args:
            buyer_id: User asking about the product.
            seller_id: User who listed the product.
            product_id: Product the chat is about.

        Returns:
            The existing chat, or a new one with no messages.

        Raises:
            ValidationError: If buyer and seller are the same user, or the
                product does not exist or is not listed by the seller.
            StoreError: If a read or write fails.
        """
        if buyer_id == seller_id:
            raise ValidationError("Buyer and seller must be different users")
        product = await self._catalog.get_product(product_id)
        if product is None:
            raise ValidationError(f"Unknown product: {product_id}")
        if product.seller_id != seller_id:
            raise ValidationError(f"Product {product_id} is not listed by {seller_id}")

        existing = await self._find_chat(buyer_id, seller_id, product_id)
        if existing is not None:
            return existing

        draft = ChatDraft(buyer_id=buyer_id, seller_id=seller_id, product_id=product_id)
        with store_errors("create chat"):
            chat_id = await self._store.add(
                Chat.COLLECTION, {**draft.to_dict(), "createdAt": SERVER_TIMESTAMP}
            )
        chat = await self.get_chat(chat_id)
        if chat is None:
            raise StoreError(f"Failed to create chat: {chat_id} was not stored")
        logger.info(
            "Created chat %s (buyer=%s, seller=%s, product=%s)",
            chat_id,
            buyer_id,
            seller_id,
            product_id,
        )
        return chat

    async def _find_chat(self, buyer_id: str, seller_id: str, product_id: str) -> Chat | None:
        query = (
            Query(collection=Chat.COLLECTION, order_by="createdAt")
            .where("buyerId", "==", buyer_id)
            .where("sellerId", "==", seller_id)
            .where("productId", "==", product_id)
        )
        with store_errors("get chat"):
            docs = await self._store.query(query)
        if not docs:
            return None
        # Oldest wins if a first-contact race left duplicates behind
        return Chat.from_dict(docs[0].id, docs[0].data)

    async def get_chat(self, chat_id: str) -> Chat | None:
        """Look up one chat. Returns None if it does not exist."""
        with store_errors("get chat"):
            snapshot = await self._store.get(document_path(Chat.COLLECTION, chat_id))
        if snapshot is None:
            return None
        return Chat.from_dict(snapshot.id, snapshot.data)

    def list_chats(self, user_id: str) -> LiveStream[list[Chat]]:
        """Subscribe to the chats a user takes part in, newest first.

        Args:
            user_id: Buyer or seller.

        Returns:
            LiveStream of chat lists, re-published on every matching change.
        """
        query = Query(
            collection=Chat.COLLECTION,
            any_of=(
                FieldFilter("buyerId", "==", user_id),
                FieldFilter("sellerId", "==", user_id),
            ),
            order_by="createdAt",
            direction=Direction.DESCENDING,
        )

        def transform(docs: list[DocumentSnapshot]) -> list[Chat]:
            return [Chat.from_dict(doc.id, doc.data) for doc in docs]

        return watch_query(self._store, query, transform, f"chats:{user_id}")

    async def mark_read(self, chat_id: str, user_id: str) -> None:
        """Record that a user has read a chat up to now.

        Raises:
            StoreError: If the chat does not exist or the write fails.
        """
        with store_errors("mark chat as read"):
            await self._store.update(
                document_path(Chat.COLLECTION, chat_id),
                {f"readBy.{user_id}": SERVER_TIMESTAMP},
            )

    @staticmethod
    def unread_count(chat: Chat, messages: Iterable[Message], user_id: str) -> int:
        """Count messages from the other participant the user has not read.

        Args:
            chat: Chat carrying the user's last-read timestamp.
            messages: Current messages of the chat.
            user_id: Reader.

        Returns:
            Number of messages sent by someone else after the last read.
        """
        last_read = chat.read_by.get(user_id)
        return sum(
            1
            for message in messages
            if message.sender_id != user_id
            and (last_read is None or message.created_at > last_read)
        )
