"""Client module - Entity managers over the document store.

- identity: Signed-in user stream and profile documents
- catalog: Product listings, radius filtering and review aggregation
- chats: Chat identity per (buyer, seller, product)
- messages: Message feeds and price offers
- notifications: Notification feeds, push fan-out and batch read/clear
- push: Push dispatch backends
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from marketsync.client.catalog import CatalogIndex, ProductFilters
from marketsync.client.chats import ChatDirectory
from marketsync.client.identity import IdentityProvider, IdentityStream, UserProfiles
from marketsync.client.messages import MessageStream, format_amount, parse_offer
from marketsync.client.notifications import DeliveryResult, NotificationCenter
from marketsync.client.push import HttpPushDispatcher, PushDispatcher, PushMessage
from marketsync.store import create_store

if TYPE_CHECKING:
    from marketsync.core.config import MarketConfig
    from marketsync.store.base import DocumentStore

logger = logging.getLogger(__name__)


class Marketplace:
    """All entity managers wired to one document store.

    Usage:
        market = Marketplace.open(MarketConfig.from_env())
        chat = await market.chats.get_or_create_chat(buyer_id, seller_id, product_id)
        await market.messages.send(chat.id, buyer_id, "hi")
        await market.aclose()
    """

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: PushDispatcher | None = None,
        identity_provider: IdentityProvider | None = None,
    ) -> None:
        """Wire managers to a store.

        Args:
            store: Document store shared by every manager.
            dispatcher: Push delivery backend for notifications.
            identity_provider: Session provider. Required for ``identity``.
        """
        self.store = store
        self._dispatcher = dispatcher
        self.catalog = CatalogIndex(store)
        self.chats = ChatDirectory(store, self.catalog)
        self.messages = MessageStream(store)
        self.notifications = NotificationCenter(store, dispatcher)
        self.profiles = UserProfiles(store)
        self.identity = (
            IdentityStream(identity_provider, store) if identity_provider is not None else None
        )

    @classmethod
    def open(
        cls,
        config: MarketConfig,
        identity_provider: IdentityProvider | None = None,
    ) -> Marketplace:
        """Create the store and push dispatcher described by a config."""
        store = create_store(config)
        dispatcher = None
        if config.push_url is not None:
            dispatcher = HttpPushDispatcher(
                config.push_url,
                api_key=config.push_api_key,
                timeout=config.timeout,
            )
        logger.info(
            "Marketplace opened (store=%s, push=%s)",
            store.location,
            config.push_url or "disabled",
        )
        return cls(store, dispatcher, identity_provider)

    async def aclose(self) -> None:
        """Release the store and the push HTTP client."""
        if isinstance(self._dispatcher, HttpPushDispatcher):
            await self._dispatcher.aclose()
        self.store.close()


__all__ = [
    "CatalogIndex",
    "ChatDirectory",
    "DeliveryResult",
    "HttpPushDispatcher",
    "IdentityProvider",
    "IdentityStream",
    "Marketplace",
    "MessageStream",
    "NotificationCenter",
    "ProductFilters",
    "PushDispatcher",
    "PushMessage",
    "UserProfiles",
    "format_amount",
    "parse_offer",
]
