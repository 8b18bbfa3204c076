"""Transport layer for the chat endpoint.

This module hides the design decision of how a conversation reaches the
server. Implementations must handle:
- Request body and header construction
- Status checking
- Turning the response body into stream events
- Honouring the abort signal between chunks

Supports async context manager protocol for proper resource cleanup:
    async with HttpChatTransport(base_url) as transport:
        async for event in transport.stream_chat(messages, context):
            ...
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

import httpx

from ..config import (
    ANONYMOUS_SESSION,
    DEFAULT_TIMEOUT_S,
    DEMO_SESSION_HEADER,
    USER_ENDPOINT,
)
from ..exceptions import ChatHTTPError
from .abort import AbortSignal
from .models import Message, SessionContext
from .stream import StreamEvent, iter_stream_events

logger = logging.getLogger(__name__)


def build_request_body(
    messages: Sequence[Message],
    context: SessionContext,
) -> dict[str, Any]:
    """Build the JSON body posted to the chat endpoint.

    Args:
        messages: Conversation history, oldest first
        context: Session data forwarded under ``data``

    Returns:
        ``{"messages": [...], "data": {...}}``
    """
    return {
        "messages": [message.to_wire() for message in messages],
        "data": context.to_wire(),
    }


class ChatTransport(ABC):
    """Abstract base class for chat transports."""

    @abstractmethod
    def stream_chat(
        self,
        messages: Sequence[Message],
        context: SessionContext,
        signal: AbortSignal | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send the conversation and stream back parsed events.

        Args:
            messages: Conversation history including the new user message
            context: Session context for the request
            signal: Abort signal checked after every received chunk

        Returns:
            Async iterator of stream events

        Raises:
            ChatHTTPError: On a non-2xx response
            RequestAborted: Once the signal has been aborted
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "ChatTransport":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def _checked_chunks(
    chunks: AsyncIterable[bytes],
    signal: AbortSignal | None,
) -> AsyncIterator[bytes]:
    async for chunk in chunks:
        # A superseded request may still receive one more chunk
        if signal is not None:
            signal.throw_if_aborted()
        yield chunk


class HttpChatTransport(ChatTransport):
    """Chat transport over an httpx streaming POST.

    Hidden design decisions:
    - HTTP client lifecycle (owned unless injected)
    - Session correlation header name
    - Body streaming and decoding
    """

    def __init__(
        self,
        base_url: str,
        endpoint: str = USER_ENDPOINT,
        session_header: str = DEMO_SESSION_HEADER,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_S,
    ):
        """Initialize the transport.

        Args:
            base_url: Server root, e.g. ``http://localhost:3000``
            endpoint: Path of the chat route
            session_header: Header carrying the session id
            client: Optional pre-configured client (not closed by ``close``)
            timeout: Request timeout in seconds for an owned client
        """
        self._url = base_url.rstrip("/") + endpoint
        self._session_header = session_header
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def url(self) -> str:
        return self._url

    @property
    def session_header(self) -> str:
        return self._session_header

    def build_headers(self, context: SessionContext) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            self._session_header: context.session_id or ANONYMOUS_SESSION,
        }

    async def stream_chat(
        self,
        messages: Sequence[Message],
        context: SessionContext,
        signal: AbortSignal | None = None,
    ) -> AsyncIterator[StreamEvent]:
        body = build_request_body(messages, context)
        logger.info(
            "Sending message: %d messages, session=%s",
            len(messages),
            body["data"]["sessionId"],
        )

        async with self._client.stream(
            "POST",
            self._url,
            json=body,
            headers=self.build_headers(context),
        ) as response:
            if not response.is_success:
                raise ChatHTTPError(response.status_code)

            async for event in iter_stream_events(_checked_chunks(response.aiter_bytes(), signal)):
                yield event

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
