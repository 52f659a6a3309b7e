"""Per-user notification feed.

This module provides:
- NotificationCenter: Live notification lists, creation with push fan-out,
  read-state transitions and bulk operations
- DeliveryResult: Outcome of creating a notification

Architecture:
    create() ─► users/{id}/notifications (always persisted first)
                    │
          users/{id}.pushToken? ─► PushDispatcher (best effort)

Bulk operations read a snapshot of matching notifications, then commit one
atomic batch over exactly those documents. Notifications created between the
read and the commit are not included; they show up unchanged in the next
emission.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from marketsync.client.push import PushMessage
from marketsync.core.errors import PushDispatchError, StoreError, store_errors
from marketsync.core.models import Notification, NotificationDraft, User
from marketsync.core.streams import LiveStream, watch_query
from marketsync.store.base import SERVER_TIMESTAMP, Direction, Query, document_path

if TYPE_CHECKING:
    from marketsync.client.push import PushDispatcher
    from marketsync.store.base import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)


def notifications_collection(user_id: str) -> str:
    return f"{User.COLLECTION}/{user_id}/notifications"


@dataclass
class DeliveryResult:
    """Outcome of NotificationCenter.create().

    Attributes:
        notification: The persisted notification.
        delivered: True if a push was dispatched successfully.
        error: Dispatch failure, if any. The notification is stored anyway.
    """

    notification: Notification
    delivered: bool = False
    error: PushDispatchError | None = None

    def raise_for_delivery(self) -> None:
        """Raise the dispatch failure, if there was one."""
        if self.error is not None:
            raise self.error


class NotificationCenter:
    """Notifications of users."""

    def __init__(self, store: DocumentStore, dispatcher: PushDispatcher | None = None) -> None:
        """Initialize the notification center.

        Args:
            store: Document store.
            dispatcher: Push delivery backend. None disables push delivery.
        """
        self._store = store
        self._dispatcher = dispatcher

    def _query(self, user_id: str) -> Query:
        return Query(
            collection=notifications_collection(user_id),
            order_by="createdAt",
            direction=Direction.DESCENDING,
        )

    def _decode(self, user_id: str, docs: list[DocumentSnapshot]) -> list[Notification]:
        collection = notifications_collection(user_id)
        return [Notification.from_dict(doc.id, doc.data, collection) for doc in docs]

    # === Live feeds ===

    def subscribe(self, user_id: str) -> LiveStream[list[Notification]]:
        """Subscribe to a user's notifications, newest first."""
        return watch_query(
            self._store,
            self._query(user_id),
            lambda docs: self._decode(user_id, docs),
            f"notifications:{user_id}",
        )

    def unread_count(self, user_id: str) -> LiveStream[int]:
        """Subscribe to the number of unread notifications of a user."""
        return watch_query(
            self._store,
            self._query(user_id),
            lambda docs: sum(1 for n in self._decode(user_id, docs) if not n.read),
            f"unread:{user_id}",
        )

    # === Creation ===

    async def create(self, user_id: str, draft: NotificationDraft) -> DeliveryResult:
        """Persist a notification, then push it to the user's device.

        The push is only attempted if the user has a push token and a
        dispatcher is configured. A dispatch failure is reported in the result
        and never undoes the stored notification.

        Args:
            user_id: Recipient.
            draft: Notification content.

        Returns:
            DeliveryResult with the stored notification.

        Raises:
            StoreError: If the notification could not be stored.
        """
        collection = notifications_collection(user_id)
        with store_errors("send notification"):
            notification_id = await self._store.add(
                collection,
                {
                    **draft.to_dict(),
                    "userId": user_id,
                    "read": False,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            snapshot = await self._store.get(document_path(collection, notification_id))
        if snapshot is None:
            raise StoreError(f"Failed to send notification: {notification_id} was not stored")
        result = DeliveryResult(Notification.from_dict(snapshot.id, snapshot.data, collection))

        if self._dispatcher is None:
            return result

        try:
            user = await self._store.get(document_path(User.COLLECTION, user_id))
        except StoreError as e:
            result.error = PushDispatchError(f"Failed to look up push token: {e}")
            logger.warning("Push skipped for %s: %s", user_id, e)
            return result
        token = user.get("pushToken") if user is not None else None
        if not token:
            return result

        try:
            await self._dispatcher.dispatch(
                PushMessage(
                    token=token,
                    title=draft.title,
                    body=draft.message,
                    data={"type": draft.type.value, "userId": user_id},
                )
            )
        except PushDispatchError as e:
            logger.warning("Push delivery failed for %s: %s", user_id, e)
            result.error = e
            return result
        result.delivered = True
        return result

    # === Read state ===

    async def mark_read(self, user_id: str, notification_id: str) -> None:
        """Mark one notification as read. Marking it again is a no-op.

        Raises:
            StoreError: If the notification does not exist or the write fails.
        """
        with store_errors("mark notification as read"):
            await self._store.update(
                document_path(notifications_collection(user_id), notification_id),
                {"read": True},
            )

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every currently unread notification as read in one batch.

        Returns:
            Number of notifications marked.

        Raises:
            StoreError: If the read or the batch fails. A failed batch marks
                nothing.
        """
        query = Query(collection=notifications_collection(user_id)).where("read", "==", False)
        with store_errors("mark all notifications as read"):
            unread = await self._store.query(query)
            batch = self._store.batch()
            for doc in unread:
                batch.update(doc.path, {"read": True})
            await batch.commit()
        logger.info("Marked %d notifications read for %s", len(unread), user_id)
        return len(unread)

    # === Deletion ===

    async def delete(self, user_id: str, notification_id: str) -> None:
        """Delete one notification."""
        with store_errors("delete notification"):
            await self._store.delete(
                document_path(notifications_collection(user_id), notification_id)
            )

    async def clear_all(self, user_id: str) -> int:
        """Delete every current notification of a user in one batch.

        Returns:
            Number of notifications deleted.

        Raises:
            StoreError: If the read or the batch fails. A failed batch deletes
                nothing.
        """
        query = Query(collection=notifications_collection(user_id))
        with store_errors("clear notifications"):
            docs = await self._store.query(query)
            batch = self._store.batch()
            for doc in docs:
                batch.delete(doc.path)
            await batch.commit()
        logger.info("Cleared %d notifications for %s", len(docs), user_id)
        return len(docs)
