"""Authenticated user as a live value, and user profile documents.

This module provides:
- IdentityProvider: Protocol for the external session provider
- IdentityStream: Publishes the signed-in User (or None) on session change
- UserProfiles: Reads and writes ``users/{id}`` profile documents

Credentials are issued by the external provider. This layer only consumes its
session-change callbacks (a user id, or None after sign-out).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from marketsync.core.errors import StoreError, ValidationError
from marketsync.core.models import ProfileUpdate, User, UserDraft, validate_fields
from marketsync.core.streams import LiveStream
from marketsync.core.types import Language, UserType
from marketsync.store.base import SERVER_TIMESTAMP, document_path

if TYPE_CHECKING:
    from marketsync.store.base import DocumentStore

logger = logging.getLogger(__name__)

# Fields that are fixed when the profile is created
IMMUTABLE_USER_FIELDS = frozenset({"id", "createdAt", "created_at"})

AuthStateCallback = Callable[[str | None], None]


class IdentityProvider(Protocol):
    """External session provider."""

    def on_auth_state_changed(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register a callback receiving the signed-in user id or None.

        Returns:
            Function removing the callback.
        """
        ...


class IdentityStream:
    """Publishes the currently authenticated user."""

    def __init__(self, provider: IdentityProvider, store: DocumentStore) -> None:
        self._provider = provider
        self._store = store

    def current_user(self) -> LiveStream[User | None]:
        """Subscribe to the signed-in user.

        Opens exactly one provider subscription. Each session change with a
        user id loads ``users/{id}`` and publishes the decoded profile, or None
        if no profile exists. Sign-out publishes None.

        Only the latest session change is published: a profile load that
        finishes after a newer sign-in or sign-out is dropped.

        Returns:
            LiveStream of User or None. Cancelling it unsubscribes from the
            provider; profile loads already in flight are discarded.
        """
        stream: LiveStream[User | None] = LiveStream("identity")
        tasks: set[asyncio.Task[None]] = set()
        session = 0

        async def load(user_id: str, generation: int) -> None:
            try:
                snapshot = await self._store.get(document_path(User.COLLECTION, user_id))
                user = User.from_dict(snapshot.id, snapshot.data) if snapshot else None
            except StoreError as e:
                if generation == session:
                    stream.fail(e)
                return
            if generation != session:
                logger.debug("Dropped stale profile load for %s", user_id)
                return
            stream.push(user)

        def on_change(user_id: str | None) -> None:
            nonlocal session
            if stream.cancelled:
                return
            session += 1
            if user_id is None:
                logger.debug("Session ended")
                stream.push(None)
                return
            task = asyncio.get_running_loop().create_task(load(user_id, session))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        unsubscribe = self._provider.on_auth_state_changed(on_change)
        stream.bind(unsubscribe)
        return stream


class UserProfiles:
    """Profile documents of registered users."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_profile(
        self,
        user_id: str,
        email: str,
        name: str,
        user_type: UserType,
        language: Language = Language.EN,
        **fields: Any,
    ) -> User:
        """Create the profile of a newly registered user.

        Args:
            user_id: Id issued by the identity provider.
            email: Account email.
            name: Display name.
            user_type: Buyer or seller.
            language: Preferred language.
            **fields: Optional profile fields (phone, avatar, location).

        Returns:
            The created User.

        Raises:
            ValidationError: If a profile already exists for this id, or a
                field is unknown to the profile or invalid.
            StoreError: If the write fails.
        """
        draft = validate_fields(
            UserDraft,
            {"type": user_type, "name": name, "email": email, "language": language, **fields},
            "profile",
        )
        path = document_path(User.COLLECTION, user_id)
        try:
            if await self._store.get(path) is not None:
                raise ValidationError(f"User {user_id} is already registered")
            await self._store.set(path, {**draft.to_dict(), "createdAt": SERVER_TIMESTAMP})
            snapshot = await self._store.get(path)
        except StoreError as e:
            raise StoreError(f"Registration failed: {e}") from e
        if snapshot is None:
            raise StoreError(f"Registration failed: profile {user_id} was not stored")
        logger.info("Registered %s %s", draft.type.value, user_id)
        return User.from_dict(snapshot.id, snapshot.data)

    async def get_profile(self, user_id: str) -> User | None:
        """Load a profile. Returns None if the user has none."""
        try:
            snapshot = await self._store.get(document_path(User.COLLECTION, user_id))
        except StoreError as e:
            raise StoreError(f"Profile lookup failed: {e}") from e
        if snapshot is None:
            return None
        return User.from_dict(snapshot.id, snapshot.data)

    async def update_profile(self, user_id: str, **fields: Any) -> None:
        """Merge fields into a profile.

        Values are validated the same way as at registration.

        Raises:
            ValidationError: If a field is immutable, unknown or invalid.
            StoreError: If the profile does not exist or the write fails.
        """
        frozen = IMMUTABLE_USER_FIELDS.intersection(fields)
        if frozen:
            raise ValidationError(f"Cannot change {', '.join(sorted(frozen))}")
        update = validate_fields(ProfileUpdate, fields, "profile update")
        try:
            await self._store.update(document_path(User.COLLECTION, user_id), update.to_dict())
        except StoreError as e:
            raise StoreError(f"Profile update failed: {e}") from e

    async def set_push_token(self, user_id: str, token: str) -> None:
        """Record the device token used to deliver push notifications."""
        await self.update_profile(user_id, push_token=token)
