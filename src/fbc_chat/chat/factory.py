from typing import Any

import httpx

from ..config import (
    ADMIN_ENDPOINT,
    ADMIN_SESSION_ID,
    CHAT_MODE_ADMIN,
    CHAT_MODE_USER,
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT_S,
    DEMO_SESSION_HEADER,
    INTELLIGENCE_SESSION_HEADER,
    USER_ENDPOINT,
)
from .models import SessionContext
from .session import ChatSession
from .transport import HttpChatTransport


def create_chat_session(
    mode: str = CHAT_MODE_USER,
    base_url: str = DEFAULT_BASE_URL,
    context: SessionContext | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_S,
    **session_kwargs: Any
) -> ChatSession:
    """Create a chat session wired to the right endpoint.

    This factory function hides which route and correlation header each
    chat mode uses. Every call returns an independent session.

    Args:
        mode: Chat mode ('user' or 'admin')
        base_url: Server root URL
        context: Session context; admin mode defaults its session id
            to 'admin-session'
        client: Optional shared httpx client
        timeout: Request timeout in seconds
        **session_kwargs: Passed through to ChatSession
            - on_finish, on_error, notifier
            - usage_bus, throttle
            - initial_messages, fallback_message

    Returns:
        Initialized ChatSession

    Raises:
        ValueError: If mode is not supported

    Examples:
        >>> session = create_chat_session("user", base_url="http://localhost:3000")

        >>> admin = create_chat_session(
        ...     "admin",
        ...     context=SessionContext(user_id="admin@example.com"),
        ... )
    """
    mode_lower = mode.lower()

    if mode_lower == CHAT_MODE_USER:
        transport = HttpChatTransport(
            base_url,
            endpoint=USER_ENDPOINT,
            session_header=DEMO_SESSION_HEADER,
            client=client,
            timeout=timeout,
        )
        return ChatSession(transport, context=context, **session_kwargs)

    if mode_lower == CHAT_MODE_ADMIN:
        context = context or SessionContext()
        if not context.session_id:
            context = context.model_copy(update={"session_id": ADMIN_SESSION_ID})
        transport = HttpChatTransport(
            base_url,
            endpoint=ADMIN_ENDPOINT,
            session_header=INTELLIGENCE_SESSION_HEADER,
            client=client,
            timeout=timeout,
        )
        return ChatSession(transport, context=context, **session_kwargs)

    raise ValueError(
        f"Unsupported chat mode: {mode}. "
        f"Supported modes: '{CHAT_MODE_USER}', '{CHAT_MODE_ADMIN}'"
    )
