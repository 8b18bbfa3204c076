from .abort import AbortController, AbortCoordinator, AbortSignal
from .factory import create_chat_session
from .models import LeadContext, Message, SessionContext, Source
from .session import ChatSession, SessionSnapshot
from .store import MessageStore
from .stream import (
    ContentDelta,
    StreamDecoder,
    StreamDone,
    StreamEvent,
    StreamFailure,
    UsageReport,
    iter_stream_events,
)
from .throttle import SendThrottle
from .transport import ChatTransport, HttpChatTransport, build_request_body

__all__ = [
    "AbortController",
    "AbortCoordinator",
    "AbortSignal",
    "ChatSession",
    "ChatTransport",
    "ContentDelta",
    "HttpChatTransport",
    "LeadContext",
    "Message",
    "MessageStore",
    "SendThrottle",
    "SessionContext",
    "SessionSnapshot",
    "Source",
    "StreamDecoder",
    "StreamDone",
    "StreamEvent",
    "StreamFailure",
    "UsageReport",
    "build_request_body",
    "create_chat_session",
    "iter_stream_events",
]
