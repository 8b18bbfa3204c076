"""Exception hierarchy for the chat client."""


class ChatError(Exception):
    """Base class for all chat client errors."""


class ChatHTTPError(ChatError):
    """The chat endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP error! status: {status_code}")


class StreamError(ChatError):
    """The server reported a failure inside the stream (``{"error": ...}``)."""


class RequestAborted(ChatError):
    """The request was cancelled by its abort controller."""

    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__(reason or "Request aborted")


class DuplicateMessageError(ChatError):
    """A message with the same id is already in the store."""

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"Message id already present: {message_id}")
