"""Push notification dispatch.

This module provides:
- PushMessage: Payload for one device
- PushDispatcher: Protocol for delivery backends
- HttpPushDispatcher: Calls a remote push function over HTTP

Delivery is best effort. Callers persist the notification first and treat a
dispatch failure as secondary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from marketsync.core.errors import PushDispatchError

logger = logging.getLogger(__name__)


@dataclass
class PushMessage:
    """Push payload addressed to one device token."""

    token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "title": self.title,
            "body": self.body,
            "data": dict(self.data),
        }


class PushDispatcher(Protocol):
    """Delivers push messages to devices."""

    async def dispatch(self, message: PushMessage) -> None:
        """Deliver one message.

        Raises:
            PushDispatchError: If delivery failed.
        """
        ...


class HttpPushDispatcher:
    """Push dispatcher calling an HTTPS callable function.

    The request body is ``{"data": {token, title, body, data}}``, the format
    used by callable cloud functions.
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            url: URL of the push function.
            api_key: Optional bearer key.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._url = url
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    async def dispatch(self, message: PushMessage) -> None:
        """POST the message to the push function.

        Raises:
            PushDispatchError: On transport errors or non-2xx responses.
        """
        try:
            response = await self._client.post(self._url, json={"data": message.to_dict()})
        except httpx.HTTPError as e:
            raise PushDispatchError(f"Push request failed: {e}") from e

        if response.is_error:
            raise PushDispatchError(
                f"Push rejected with HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        logger.debug("Push delivered to %s...", message.token[:8])

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
