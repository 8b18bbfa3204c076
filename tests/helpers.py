"""Test doubles and stream builders shared by the test modules."""
import asyncio
import json
from collections.abc import Sequence

from fbc_chat.chat import ChatTransport, SessionContext, iter_stream_events
from fbc_chat.chat.abort import AbortSignal
from fbc_chat.chat.models import Message

# Marker inside a script: pause until the test releases the transport
HOLD = object()


def data_line(payload: dict) -> bytes:
    """Encode one payload the way the chat endpoint frames it."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode()


class FakeClock:
    """Millisecond clock driven by the test."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ScriptedTransport(ChatTransport):
    """Transport that replays one script of body chunks per request.

    A script is a list of bytes chunks, optionally containing HOLD, or an
    exception to raise instead of streaming.
    """

    def __init__(self, *scripts) -> None:
        self.scripts = list(scripts)
        self.calls: list[tuple[tuple[Message, ...], SessionContext]] = []
        self.holding = asyncio.Event()
        self.release = asyncio.Event()
        self.closed = False

    async def stream_chat(
        self,
        messages: Sequence[Message],
        context: SessionContext,
        signal: AbortSignal | None = None,
    ):
        self.calls.append((tuple(messages), context))
        script = self.scripts.pop(0) if self.scripts else []
        if isinstance(script, Exception):
            raise script

        async def chunks():
            for item in script:
                if item is HOLD:
                    self.holding.set()
                    await self.release.wait()
                    continue
                if signal is not None:
                    signal.throw_if_aborted()
                yield item

        async for event in iter_stream_events(chunks()):
            yield event

    async def close(self) -> None:
        self.closed = True
