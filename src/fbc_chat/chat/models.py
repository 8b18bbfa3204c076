"""Data models for chat sessions.

These models define messages and session context independent of the
transport used to reach the chat endpoint. Messages are frozen: every
change produces a new record through ``model_copy``.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class Source(BaseModel):
    """A citation attached to an assistant message."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str


class Message(BaseModel):
    """A single chat message owned by a session's message list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Role = Field(description="Role of the message sender: 'user' or 'assistant'")
    content: str = Field(default="", description="Message text; grows while streaming")
    timestamp: datetime = Field(default_factory=datetime.now)
    image_url: str | None = Field(default=None, alias="imageUrl")
    sources: list[Source] | None = None

    @classmethod
    def create(
        cls,
        role: Role,
        content: str,
        image_url: str | None = None,
        sources: list[Source] | None = None,
    ) -> "Message":
        """Build a message with a fresh id and the current timestamp."""
        return cls(role=role, content=content, image_url=image_url, sources=sources)

    def to_wire(self) -> dict[str, Any]:
        """Shape sent to the chat endpoint for conversation history."""
        return {
            "role": self.role,
            "content": self.content,
            "imageUrl": self.image_url,
        }


class LeadContext(BaseModel):
    """Lead profile forwarded to the endpoint alongside the conversation."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    company: str | None = None
    role: str | None = None
    interests: str | None = None


class SessionContext(BaseModel):
    """Externally supplied session data, read-only to the chat session."""

    model_config = ConfigDict(frozen=True)

    session_id: str | None = None
    lead_context: LeadContext | None = None
    user_id: str | None = None

    def to_wire(self, fallback_session_id: str | None = None) -> dict[str, Any]:
        """Shape of the ``data`` field in the request body.

        Args:
            fallback_session_id: Used when no session id was supplied

        Returns:
            Dict with ``leadContext``, ``sessionId`` and ``userId`` keys
        """
        lead = self.lead_context.model_dump(exclude_none=True) if self.lead_context else None
        return {
            "leadContext": lead,
            "sessionId": self.session_id or fallback_session_id or str(uuid4()),
            "userId": self.user_id,
        }

