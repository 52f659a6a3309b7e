"""Pydantic models for marketplace documents.

This module provides:
- MarketModel: Base model mapping snake_case attributes to camelCase fields
- User, Product, Review, Chat, Message, Notification: Decoded entities
- Location: Geographic position attached to users and products
- UserDraft, ProductDraft, ReviewDraft, ChatDraft, MessageDraft,
  NotificationDraft: Validated data for new documents
- ProductUpdate, ProfileUpdate: Validated partial updates
- validate_fields: Validate caller data, raising ValidationError

Architecture:
    caller data ─► Draft / Update ─► to_dict() ─► DocumentStore
                                                      │
    Entity ◄── from_dict(doc_id, data) ◄──────── snapshot

Each entity extends its draft with the fields the store assigns (id,
createdAt, ...). Decoding fails fast with DecodeError on the first missing or
malformed field, so a corrupt document never produces a partially typed
object. The document id is never stored inside the document itself.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Annotated, Any, ClassVar, TypeVar

import pydantic
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    Strict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)
from pydantic.alias_generators import to_camel

from marketsync.core.errors import DecodeError, ValidationError
from marketsync.core.types import (
    Language,
    MessageType,
    NotificationType,
    ProductCategory,
    UserType,
)

M = TypeVar("M", bound="MarketModel")


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


Timestamp = Annotated[datetime, Strict()]
Name = Annotated[StrictStr, AfterValidator(_not_blank)]
Price = Annotated[StrictFloat, Field(ge=0)]
Stars = Annotated[StrictInt, Field(ge=1, le=5)]


def _first_error(error: pydantic.ValidationError) -> tuple[str, str]:
    detail = error.errors()[0]
    field = ".".join(str(part) for part in detail["loc"]) or "<document>"
    return field, detail["msg"]


def validate_fields(model: type[M], data: Mapping[str, Any], what: str) -> M:
    """Validate caller-supplied data against a model.

    Args:
        model: Draft or update model.
        data: Fields by attribute or document name.
        what: Label used in the error message.

    Raises:
        ValidationError: Naming the first offending field.
    """
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        field, reason = _first_error(e)
        raise ValidationError(f"Invalid {what}: {field}: {reason}") from None


class MarketModel(BaseModel):
    """Base for everything stored in the document store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )

    COLLECTION: ClassVar[str] = ""

    @classmethod
    def from_dict(
        cls: type[M], doc_id: str, data: dict[str, Any], collection: str | None = None
    ) -> M:
        """Decode a stored document.

        Args:
            doc_id: Document id.
            data: Document fields.
            collection: Collection path for error messages (defaults to
                the model's collection).

        Raises:
            DecodeError: If a field is missing or malformed.
        """
        collection = collection or cls.COLLECTION
        if not isinstance(data, dict):
            raise DecodeError(collection, doc_id, "<document>", "is not a mapping")
        try:
            return cls.model_validate({**data, "id": doc_id})
        except pydantic.ValidationError as e:
            field, reason = _first_error(e)
            raise DecodeError(collection, doc_id, field, reason) from None

    def to_dict(self) -> dict[str, Any]:
        """Encode as document fields (camelCase, no id, unset optionals dropped)."""
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)


class Location(MarketModel):
    """Geographic position with a display address."""

    model_config = ConfigDict(frozen=True)

    latitude: Annotated[StrictFloat, Field(ge=-90, le=90)]
    longitude: Annotated[StrictFloat, Field(ge=-180, le=180)]
    address: StrictStr = ""


class _PartialUpdate(MarketModel):
    """Fields to change on an existing document; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _no_nulls(self) -> _PartialUpdate:
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


# === Users ===


class UserDraft(MarketModel):
    """Profile data supplied at registration."""

    model_config = ConfigDict(extra="forbid")

    type: UserType
    name: Name
    email: StrictStr
    language: Language = Language.EN
    phone: StrictStr | None = None
    avatar: StrictStr | None = None
    location: Location | None = None
    push_token: StrictStr | None = None


class User(UserDraft):
    """A registered marketplace user (stored in ``users/{id}``)."""

    model_config = ConfigDict(extra="ignore")

    COLLECTION: ClassVar[str] = "users"

    id: StrictStr
    created_at: Timestamp


class ProfileUpdate(_PartialUpdate):
    """Profile fields a user may change after registration."""

    type: UserType | None = None
    name: Name | None = None
    email: StrictStr | None = None
    language: Language | None = None
    phone: StrictStr | None = None
    avatar: StrictStr | None = None
    location: Location | None = None
    push_token: StrictStr | None = None


# === Products ===


class ProductDraft(MarketModel):
    """Listing data supplied by the seller."""

    seller_id: StrictStr
    name: Name
    price: Price
    category: ProductCategory
    location: Location
    description: StrictStr = ""
    images: list[StrictStr] = Field(default_factory=list)
    is_sponsored: StrictBool = False


class Product(ProductDraft):
    """A catalog listing (stored in ``products/{id}``).

    ``rating`` is the mean of the product's reviews, recomputed by the catalog
    each time a review is added. It is 0.0 until the first review.
    """

    COLLECTION: ClassVar[str] = "products"

    id: StrictStr
    created_at: Timestamp
    rating: Annotated[StrictFloat, Field(ge=0, le=5)] = 0.0


class ProductUpdate(_PartialUpdate):
    """Listing fields a seller may change. The rating is derived from reviews."""

    name: Name | None = None
    description: StrictStr | None = None
    price: Price | None = None
    category: ProductCategory | None = None
    images: list[StrictStr] | None = None
    location: Location | None = None
    is_sponsored: StrictBool | None = None


# === Reviews ===


class ReviewDraft(MarketModel):
    """Review data supplied by the reviewer."""

    user_id: StrictStr
    rating: Stars
    comment: StrictStr = ""
    images: list[StrictStr] = Field(default_factory=list)


class Review(ReviewDraft):
    """A product review (stored in ``products/{id}/reviews/{id}``)."""

    COLLECTION: ClassVar[str] = "reviews"

    id: StrictStr
    created_at: Timestamp


# === Chats ===


class MessageDraft(MarketModel):
    """Message data supplied by the sender."""

    sender_id: StrictStr
    content: StrictStr
    type: MessageType = MessageType.TEXT


class Message(MessageDraft):
    """A chat message (stored in ``chats/{id}/messages/{id}``)."""

    COLLECTION: ClassVar[str] = "messages"

    id: StrictStr
    created_at: Timestamp


class ChatDraft(MarketModel):
    """Participants and product of a new chat.

    Messages live in the ``messages`` subcollection; the ``messages`` field of
    the chat document is kept empty.
    """

    buyer_id: StrictStr
    seller_id: StrictStr
    product_id: StrictStr
    messages: list[Message] = Field(default_factory=list)


class Chat(ChatDraft):
    """A conversation about one product between one buyer and one seller."""

    COLLECTION: ClassVar[str] = "chats"

    id: StrictStr
    created_at: Timestamp
    last_message_at: Timestamp | None = None
    read_by: dict[str, Timestamp] = Field(default_factory=dict)


# === Notifications ===


class NotificationDraft(MarketModel):
    """Notification content supplied by the sender."""

    type: NotificationType
    title: StrictStr
    message: StrictStr


class Notification(NotificationDraft):
    """A user notification (stored in ``users/{id}/notifications/{id}``)."""

    COLLECTION: ClassVar[str] = "notifications"

    id: StrictStr
    user_id: StrictStr
    read: StrictBool
    created_at: Timestamp
