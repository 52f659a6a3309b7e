"""Shared fixtures for marketsync tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from marketsync.client import Marketplace
from marketsync.core.models import Location, Product
from marketsync.core.types import ProductCategory
from marketsync.store.memory import MemoryDocumentStore

BUYER_ID = "buyer-1"
SELLER_ID = "seller-1"

ProductFactory = Callable[..., Awaitable[Product]]


@pytest.fixture
def store() -> MemoryDocumentStore:
    """Create an empty in-memory document store."""
    return MemoryDocumentStore()


@pytest.fixture
def market(store: MemoryDocumentStore) -> Marketplace:
    """Create a marketplace without push delivery."""
    return Marketplace(store)


@pytest.fixture
def make_product(market: Marketplace) -> ProductFactory:
    """Return a coroutine function listing a product with sensible defaults."""

    async def factory(**overrides: Any) -> Product:
        fields: dict[str, Any] = {
            "seller_id": SELLER_ID,
            "name": "Bicycle",
            "price": 100.0,
            "category": ProductCategory.VEHICLES,
            "location": Location(latitude=0.0, longitude=0.0, address="Null Island"),
        }
        fields.update(overrides)
        return await market.catalog.create_product(**fields)

    return factory
