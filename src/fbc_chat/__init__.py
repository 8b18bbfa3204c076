"""
fbc-chat: streaming chat client for the F.B/c AI assistant.

Each module hides one design decision: the wire format, the transport,
message storage, throttling, cancellation and cost accounting.
"""

__version__ = "0.1.0"

from .chat import (
    ChatSession,
    HttpChatTransport,
    LeadContext,
    Message,
    MessageStore,
    SessionContext,
    create_chat_session,
)
from .exceptions import ChatError, ChatHTTPError, RequestAborted, StreamError
from .guards import IdempotencyCache, WindowRateLimiter
from .usage import SessionCostTracker, UsageEventBus

__all__ = [
    "ChatError",
    "ChatHTTPError",
    "ChatSession",
    "HttpChatTransport",
    "IdempotencyCache",
    "LeadContext",
    "Message",
    "MessageStore",
    "RequestAborted",
    "SessionContext",
    "SessionCostTracker",
    "StreamError",
    "UsageEventBus",
    "WindowRateLimiter",
    "create_chat_session",
]
