"""Shared enums for marketsync.

String-valued so that members compare equal to the raw values stored in
documents.
"""

from __future__ import annotations

from enum import Enum


class UserType(str, Enum):
    """Role of a marketplace user."""

    BUYER = "buyer"
    SELLER = "seller"


class Language(str, Enum):
    """Preferred interface language of a user."""

    ES = "es"
    EN = "en"
    ZH = "zh"


class ProductCategory(str, Enum):
    """Catalog category of a product."""

    REAL_ESTATE = "real_estate"
    LOGISTICS = "logistics"
    CLOTHING = "clothing"
    ELECTRONICS = "electronics"
    HOME = "home"
    SERVICES = "services"
    VEHICLES = "vehicles"
    OTHER = "other"


class MessageType(str, Enum):
    """Kind of chat message.

    OFFER messages carry a proposed price as their content. They have no
    accepted/rejected state.
    """

    TEXT = "text"
    IMAGE = "image"
    OFFER = "offer"


class NotificationType(str, Enum):
    """Kind of user notification."""

    OFFER = "offer"
    CHAT = "chat"
    REVIEW = "review"
    SYSTEM = "system"
