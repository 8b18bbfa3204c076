"""Decoder for the chat endpoint's line stream.

The endpoint answers with newline-delimited text where payload lines look
like ``data: {"content": "..."}``. This module hides:
- Incremental UTF-8 decoding across arbitrary byte boundaries
- Line reassembly (only the current unterminated line is buffered)
- Mapping JSON payloads to typed stream events

It knows nothing about HTTP, so it can be driven by any byte source.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..config import DATA_PREFIX
from ..usage.models import TokenUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentDelta:
    """Incremental fragment of assistant text."""

    content: str


@dataclass(frozen=True)
class StreamDone:
    """Terminal success sentinel (``{"done": true}``)."""


@dataclass(frozen=True)
class StreamFailure:
    """Terminal failure reported by the server (``{"error": "..."}``)."""

    error: str


@dataclass(frozen=True)
class UsageReport:
    """Token usage reported by the server for the current completion."""

    usage: TokenUsage
    provider: str | None = None
    model: str | None = None


StreamEvent = ContentDelta | StreamDone | StreamFailure | UsageReport


def parse_payload(payload: dict[str, Any]) -> list[StreamEvent]:
    """Map one decoded JSON object to stream events.

    Args:
        payload: Object parsed from a ``data:`` line

    Returns:
        Events in the order content, usage, done, error
    """
    events: list[StreamEvent] = []

    content = payload.get("content")
    if isinstance(content, str) and content:
        events.append(ContentDelta(content))

    usage = payload.get("usage")
    if isinstance(usage, dict):
        try:
            events.append(UsageReport(
                usage=TokenUsage.model_validate(usage),
                provider=payload.get("provider"),
                model=payload.get("model"),
            ))
        except ValidationError as e:
            logger.warning("Ignoring malformed usage payload: %s", e)

    if payload.get("done") is True:
        events.append(StreamDone())

    error = payload.get("error")
    if error:
        events.append(StreamFailure(str(error)))

    return events


class StreamDecoder:
    """Turns raw body chunks into stream events.

    Usage:
        decoder = StreamDecoder()
        for chunk in body:
            for event in decoder.feed(chunk):
                ...
        for event in decoder.flush():
            ...
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.skipped_lines = 0

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Decode a chunk and return the events of every completed line."""
        text = self._pending + self._decoder.decode(chunk)
        *lines, self._pending = text.split("\n")

        events: list[StreamEvent] = []
        for line in lines:
            events.extend(self._parse_line(line))
        return events

    def flush(self) -> list[StreamEvent]:
        """Decode whatever is left once the body has ended."""
        line = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return self._parse_line(line)

    def _parse_line(self, line: str) -> list[StreamEvent]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return []

        raw = line[len(DATA_PREFIX):]
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            self.skipped_lines += 1
            logger.warning("Failed to parse streaming data: %s (line=%r)", e, raw[:200])
            return []

        if not isinstance(payload, dict):
            self.skipped_lines += 1
            logger.warning("Ignoring non-object stream payload: %r", raw[:200])
            return []

        return parse_payload(payload)


async def iter_stream_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Lazily decode an async byte source into stream events.

    Args:
        chunks: Async iterable of raw body chunks

    Yields:
        Stream events in arrival order
    """
    decoder = StreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
