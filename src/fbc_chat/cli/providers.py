"""Session factory functions for the CLI.

Centralizes creation of chat sessions and flag resolvers from environment
variables. Hides configuration details from command implementations.
"""

import os

from rich.console import Console

from ..chat import ChatSession, SessionContext, create_chat_session
from ..config import CHAT_MODE_ADMIN, CHAT_MODE_USER, DEFAULT_BASE_URL, DEFAULT_TIMEOUT_S
from ..flags import FlagResolver
from ..usage import SessionCostTracker, UsageEventBus

# Default console for output
_console = Console()


def get_base_url() -> str:
    """Chat server root from FBC_CHAT_BASE_URL (default: http://localhost:3000)."""
    return os.getenv("FBC_CHAT_BASE_URL", DEFAULT_BASE_URL)


def get_timeout(console: Console | None = None) -> float:
    """Request timeout in seconds from FBC_CHAT_TIMEOUT.

    An unparsable value falls back to the default with a warning.
    """
    con = console or _console
    raw = os.getenv("FBC_CHAT_TIMEOUT")
    if raw is None:
        return DEFAULT_TIMEOUT_S
    try:
        return float(raw)
    except ValueError:
        con.print(f"[yellow]Warning: invalid FBC_CHAT_TIMEOUT {raw!r}, using {DEFAULT_TIMEOUT_S}s[/yellow]")
        return DEFAULT_TIMEOUT_S


def get_session(
    admin: bool = False,
    session_id: str | None = None,
    user_id: str | None = None,
    base_url: str | None = None,
    console: Console | None = None,
) -> tuple[ChatSession, SessionCostTracker]:
    """Create a chat session and a cost tracker listening to it.

    Args:
        admin: Use the admin chat route
        session_id: Session id (default: FBC_CHAT_SESSION_ID)
        user_id: Optional user id forwarded with requests
        base_url: Server root (default: FBC_CHAT_BASE_URL)
        console: Optional Rich console for error notifications

    Returns:
        (session, tracker) pair

    Environment variables:
        FBC_CHAT_BASE_URL: Server root (default: http://localhost:3000)
        FBC_CHAT_SESSION_ID: Session id when none is given
        FBC_CHAT_TIMEOUT: Request timeout in seconds
    """
    con = console or _console
    context = SessionContext(
        session_id=session_id or os.getenv("FBC_CHAT_SESSION_ID"),
        user_id=user_id,
    )

    bus = UsageEventBus()
    session = create_chat_session(
        CHAT_MODE_ADMIN if admin else CHAT_MODE_USER,
        base_url=base_url or get_base_url(),
        context=context,
        timeout=get_timeout(con),
        usage_bus=bus,
        notifier=lambda detail: con.print(f"[red]Error: {detail}[/red]"),
    )
    tracker = SessionCostTracker(session.context.session_id)
    tracker.attach(bus)
    return session, tracker


def get_flag_resolver() -> FlagResolver:
    """Flag resolver reading overrides from the process environment."""
    return FlagResolver()
