"""Per-chat message feeds and price offers.

This module provides:
- MessageStream: Live ordered message lists, sending messages and offers
- format_amount, parse_offer: Offer content encoding

Every emission replays the full message list of the chat in ascending
``createdAt`` order; consumers re-render the whole list each time.

Sending is two writes: the message append, then the chat's ``lastMessageAt``
update. They are not atomic. If the second write fails the message stays and
the caller still gets a StoreError.

Offer content is the amount written the way a JavaScript client prints a
number, so every client renders the same string.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import TYPE_CHECKING, Annotated, Any

import pydantic
from pydantic import Field, StrictFloat, TypeAdapter

from marketsync.core.errors import StoreError, ValidationError, store_errors
from marketsync.core.models import Chat, Message, MessageDraft, validate_fields
from marketsync.core.streams import LiveStream, watch_query
from marketsync.core.types import MessageType
from marketsync.store.base import SERVER_TIMESTAMP, Direction, Query, document_path

if TYPE_CHECKING:
    from marketsync.store.base import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)

OfferAmount = Annotated[StrictFloat, Field(gt=0, allow_inf_nan=False)]

_offer_amount: TypeAdapter[float] = TypeAdapter(OfferAmount)


def messages_collection(chat_id: str) -> str:
    return f"{Chat.COLLECTION}/{chat_id}/messages"


def _check_amount(amount: Any) -> float:
    try:
        return _offer_amount.validate_python(amount)
    except pydantic.ValidationError:
        raise ValidationError(
            f"Offer amount must be a finite number > 0, got {amount!r}"
        ) from None


def format_amount(amount: float) -> str:
    """Render an offer amount the way it is stored in message content.

    Matches JavaScript ``Number.prototype.toString``: the shortest digits
    that round-trip, positional notation from 1e-7 up to 1e21 ("80", not
    "80.0"; "150.5"; "0.000001") and exponent notation outside that range
    ("1e+21", "1.5e-7").
    """
    value = float(amount)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    shortest = Decimal(repr(abs(value))).normalize()
    _, digit_tuple, exponent = shortest.as_tuple()
    digits = "".join(map(str, digit_tuple))
    k = len(digits)
    n = exponent + k  # type: ignore[operator]

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return f"{sign}{digits[:n]}.{digits[n:]}"
    if -6 < n <= 0:
        return f"{sign}0.{'0' * -n}{digits}"
    power = n - 1
    mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
    return f"{sign}{mantissa}e{'+' if power >= 0 else '-'}{abs(power)}"


def parse_offer(message: Message) -> float:
    """Read the amount carried by an offer message.

    Raises:
        ValidationError: If the message is not an offer or its content is not
            a positive finite number.
    """
    if message.type != MessageType.OFFER:
        raise ValidationError(f"Message {message.id} is not an offer")
    try:
        value = float(message.content)
    except ValueError:
        raise ValidationError(f"Offer {message.id} has non-numeric content") from None
    try:
        return _offer_amount.validate_python(value)
    except pydantic.ValidationError:
        raise ValidationError(
            f"Offer {message.id} has invalid amount {message.content!r}"
        ) from None


class MessageStream:
    """Messages of chats."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def subscribe(self, chat_id: str) -> LiveStream[list[Message]]:
        """Subscribe to the messages of a chat, oldest first.

        Returns:
            LiveStream of full message lists.
        """
        collection = messages_collection(chat_id)
        query = Query(collection=collection, order_by="createdAt", direction=Direction.ASCENDING)

        def transform(docs: list[DocumentSnapshot]) -> list[Message]:
            return [Message.from_dict(doc.id, doc.data, collection) for doc in docs]

        return watch_query(self._store, query, transform, f"messages:{chat_id}")

    async def send(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        type: MessageType | str = MessageType.TEXT,
    ) -> Message:
        """Append a message and bump the chat's lastMessageAt.

        Args:
            chat_id: Target chat.
            sender_id: Buyer or seller of the chat.
            content: Text, image URL or offer amount.
            type: Message kind.

        Returns:
            The stored message with its store-assigned timestamp.

        Raises:
            ValidationError: If the type is unknown or content is not a string.
            StoreError: If the append or the timestamp update fails. The
                append is kept when only the timestamp update fails.
        """
        draft = validate_fields(
            MessageDraft, {"sender_id": sender_id, "content": content, "type": type}, "message"
        )

        collection = messages_collection(chat_id)
        with store_errors("send message"):
            message_id = await self._store.add(
                collection,
                {**draft.to_dict(), "createdAt": SERVER_TIMESTAMP},
            )
            snapshot = await self._store.get(document_path(collection, message_id))
            await self._store.update(
                document_path(Chat.COLLECTION, chat_id),
                {"lastMessageAt": SERVER_TIMESTAMP},
            )
        if snapshot is None:
            raise StoreError(f"Failed to send message: {message_id} was not stored")
        logger.debug("Sent %s message %s in chat %s", draft.type.value, message_id, chat_id)
        return Message.from_dict(snapshot.id, snapshot.data, collection)

    async def send_offer(self, chat_id: str, sender_id: str, amount: float) -> Message:
        """Send a price offer.

        The amount is validated before anything is written.

        Raises:
            ValidationError: If the amount is not a finite number > 0.
            StoreError: If sending fails.
        """
        value = _check_amount(amount)
        return await self.send(chat_id, sender_id, format_amount(value), MessageType.OFFER)
