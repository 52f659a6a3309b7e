"""Core module - Shared errors, enums, entities, config and live streams."""

from marketsync.core.config import MarketConfig
from marketsync.core.errors import (
    DecodeError,
    MarketSyncError,
    PushDispatchError,
    StoreError,
    ValidationError,
)
from marketsync.core.geo import GeoRadius, filter_by_distance, haversine_km
from marketsync.core.models import (
    Chat,
    Location,
    Message,
    Notification,
    NotificationDraft,
    Product,
    Review,
    ReviewDraft,
    User,
)
from marketsync.core.streams import LiveStream
from marketsync.core.types import (
    Language,
    MessageType,
    NotificationType,
    ProductCategory,
    UserType,
)

__all__ = [
    # Config
    "MarketConfig",
    # Errors
    "DecodeError",
    "MarketSyncError",
    "PushDispatchError",
    "StoreError",
    "ValidationError",
    # Geo
    "GeoRadius",
    "filter_by_distance",
    "haversine_km",
    # Models
    "Chat",
    "Location",
    "Message",
    "Notification",
    "NotificationDraft",
    "Product",
    "Review",
    "ReviewDraft",
    "User",
    # Streams
    "LiveStream",
    # Types
    "Language",
    "MessageType",
    "NotificationType",
    "ProductCategory",
    "UserType",
]
