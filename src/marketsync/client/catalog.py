"""Product catalog with live listings and review aggregation.

This module provides:
- ProductFilters: Optional catalog filters (category, seller, price, radius)
- CatalogIndex: Live product listings, point lookups, reviews and mutations

Architecture:
    ProductFilters ─► Query (category/seller/price pushed to the store)
                            │
                   live snapshot (createdAt desc)
                            │
                  decode ─► haversine radius filter ─► LiveStream

The store cannot evaluate a radius around a point, so the location filter is
applied in memory to every pushed snapshot. The whole unfiltered result set is
transferred for each snapshot.

Product.rating is recomputed from every review after each insert with a plain
read-then-write. Concurrent reviewers of the same product can overwrite each
other's aggregate (last writer wins); the review documents themselves are
never lost.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from marketsync.core.errors import StoreError, ValidationError, store_errors
from marketsync.core.geo import GeoRadius, filter_by_distance
from marketsync.core.models import (
    Location,
    Product,
    ProductDraft,
    ProductUpdate,
    Review,
    ReviewDraft,
    validate_fields,
)
from marketsync.core.streams import LiveStream, watch_query
from marketsync.core.types import ProductCategory
from marketsync.store.base import SERVER_TIMESTAMP, Direction, Query, document_path

if TYPE_CHECKING:
    from marketsync.store.base import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)

# Fields fixed when the product is listed
IMMUTABLE_PRODUCT_FIELDS = frozenset({"id", "sellerId", "seller_id", "createdAt", "created_at"})


def reviews_collection(product_id: str) -> str:
    return f"{Product.COLLECTION}/{product_id}/reviews"


def mean_rating(reviews: Iterable[Review]) -> float:
    """Arithmetic mean of review ratings, 0.0 for no reviews."""
    ratings = [review.rating for review in reviews]
    if not ratings:
        return 0.0
    return sum(ratings) / len(ratings)


@dataclass(frozen=True)
class ProductFilters:
    """Catalog filters, all optional and AND-combined.

    Attributes:
        category: Only products in this category.
        seller_id: Only products listed by this seller.
        min_price: Minimum price (inclusive).
        max_price: Maximum price (inclusive).
        location: Only products within this radius (applied in memory).
    """

    category: ProductCategory | None = None
    seller_id: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    location: GeoRadius | None = None

    def to_query(self) -> Query:
        """Build the store query for the filters the store can evaluate."""
        query = Query(
            collection=Product.COLLECTION,
            order_by="createdAt",
            direction=Direction.DESCENDING,
        )
        if self.category is not None:
            query = query.where("category", "==", ProductCategory(self.category).value)
        if self.seller_id is not None:
            query = query.where("sellerId", "==", self.seller_id)
        if self.min_price is not None:
            query = query.where("price", ">=", self.min_price)
        if self.max_price is not None:
            query = query.where("price", "<=", self.max_price)
        return query


class CatalogIndex:
    """Product listings and reviews."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # === Listings ===

    def list_products(self, filters: ProductFilters | None = None) -> LiveStream[list[Product]]:
        """Subscribe to products matching the filters, newest first.

        Every snapshot pushed by the store is decoded and, if a location
        filter is set, narrowed to the products within its radius.

        Args:
            filters: Optional catalog filters.

        Returns:
            LiveStream of product lists.
        """
        filters = filters or ProductFilters()

        def transform(docs: list[DocumentSnapshot]) -> list[Product]:
            products = [Product.from_dict(doc.id, doc.data) for doc in docs]
            if filters.location is not None:
                products = filter_by_distance(products, filters.location)
            return products

        return watch_query(self._store, filters.to_query(), transform, "products")

    async def get_product(self, product_id: str) -> Product | None:
        """Look up one product. Returns None if it does not exist."""
        with store_errors("get product"):
            snapshot = await self._store.get(document_path(Product.COLLECTION, product_id))
        if snapshot is None:
            return None
        return Product.from_dict(snapshot.id, snapshot.data)

    # === Mutations ===

    async def create_product(
        self,
        seller_id: str,
        name: str,
        price: float,
        category: ProductCategory,
        location: Location,
        description: str = "",
        images: Iterable[str] = (),
        is_sponsored: bool = False,
    ) -> Product:
        """List a new product.

        Returns:
            The stored Product (rating 0.0, createdAt assigned by the store).

        Raises:
            ValidationError: If the name is blank, the price is negative or
                not finite, or another field has the wrong type.
            StoreError: If the write fails.
        """
        draft = validate_fields(
            ProductDraft,
            {
                "seller_id": seller_id,
                "name": name,
                "price": price,
                "category": category,
                "location": location,
                "description": description,
                "images": list(images),
                "is_sponsored": is_sponsored,
            },
            "product",
        )
        data = {**draft.to_dict(), "rating": 0.0, "createdAt": SERVER_TIMESTAMP}
        with store_errors("create product"):
            product_id = await self._store.add(Product.COLLECTION, data)
            snapshot = await self._store.get(document_path(Product.COLLECTION, product_id))
        if snapshot is None:
            raise StoreError(f"Failed to create product: {product_id} was not stored")
        logger.info("Listed product %s for seller %s", product_id, seller_id)
        return Product.from_dict(snapshot.id, snapshot.data)

    async def update_product(self, product_id: str, **fields: Any) -> None:
        """Change product fields.

        Every value is validated the same way as in create_product() before
        anything is written.

        Args:
            product_id: Product to change.
            **fields: Any of name, description, price, category, images,
                location, is_sponsored.

        Raises:
            ValidationError: If a field is unknown, immutable or invalid.
            StoreError: If the product does not exist or the write fails.
        """
        frozen = IMMUTABLE_PRODUCT_FIELDS.intersection(fields)
        if frozen:
            raise ValidationError(f"Cannot change {', '.join(sorted(frozen))}")
        update = validate_fields(ProductUpdate, fields, "product update")
        with store_errors("update product"):
            await self._store.update(
                document_path(Product.COLLECTION, product_id), update.to_dict()
            )

    async def delete_product(self, product_id: str) -> None:
        """Delete a product listing."""
        with store_errors("delete product"):
            await self._store.delete(document_path(Product.COLLECTION, product_id))
        logger.info("Deleted product %s", product_id)

    async def add_image(self, product_id: str, url: str) -> None:
        """Append the reference URL of an uploaded image to a product.

        Raises:
            ValidationError: If the URL is empty or the product does not exist.
        """
        if not url:
            raise ValidationError("Image URL must not be empty")
        product = await self.get_product(product_id)
        if product is None:
            raise ValidationError(f"Unknown product: {product_id}")
        await self.update_product(product_id, images=[*product.images, url])

    # === Reviews ===

    async def get_reviews(self, product_id: str) -> list[Review]:
        """Load every review of a product, newest first."""
        collection = reviews_collection(product_id)
        query = Query(collection=collection, order_by="createdAt", direction=Direction.DESCENDING)
        with store_errors("get reviews"):
            docs = await self._store.query(query)
        return [Review.from_dict(doc.id, doc.data, collection) for doc in docs]

    async def add_review(self, product_id: str, review: ReviewDraft) -> float | None:
        """Store a review and recompute the product rating.

        The rating is the mean over all reviews, re-read after the insert.
        This is not transactional: a concurrent review can be left out of the
        stored mean. The draft's 1 to 5 star range is checked when the draft
        is built, so an out-of-range review never reaches the store.

        Args:
            product_id: Reviewed product.
            review: Review content.

        Returns:
            The new rating, or None if the product does not exist (the
            review is still stored).

        Raises:
            StoreError: If a read or write fails.
        """
        with store_errors("add review"):
            await self._store.add(
                reviews_collection(product_id),
                {**review.to_dict(), "createdAt": SERVER_TIMESTAMP},
            )
        product = await self.get_product(product_id)
        if product is None:
            logger.warning("Review stored for unknown product %s", product_id)
            return None
        new_rating = mean_rating(await self.get_reviews(product_id))
        with store_errors("update rating"):
            await self._store.update(
                document_path(Product.COLLECTION, product_id), {"rating": new_rating}
            )
        logger.debug("Product %s rating is now %.2f", product_id, new_rating)
        return new_rating
