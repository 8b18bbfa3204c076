"""Chat session: the request/response lifecycle of one conversation.

A session owns its message list, send throttle and abort coordinator.
Two sessions (e.g. user chat and admin chat) never share any of them.

Usage:
    async with ChatSession(HttpChatTransport(base_url)) as session:
        await session.send_message("Hello")
        print(session.messages[-1].content)
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..config import FALLBACK_MESSAGE
from ..exceptions import RequestAborted, StreamError
from ..usage import TokenUsageEvent, UsageEventBus
from .abort import AbortController, AbortCoordinator
from .models import Message, Role, SessionContext, Source
from .store import MessageStore
from .stream import ContentDelta, StreamDone, StreamFailure, UsageReport
from .throttle import SendThrottle
from .transport import ChatTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSnapshot:
    """Observable state of a session at one point in time."""

    messages: tuple[Message, ...]
    input: str
    is_loading: bool
    error: Exception | None


SnapshotListener = Callable[[SessionSnapshot], None]


class ChatSession:
    """Sends messages and streams assistant replies into a message list.

    Failures never propagate out of ``send_message``: they end up in
    ``error``, in the assistant bubble (as the fallback text), in ``on_error``
    and in ``notifier``.
    """

    def __init__(
        self,
        transport: ChatTransport,
        context: SessionContext | None = None,
        initial_messages: Iterable[Message] = (),
        on_finish: Callable[[Message], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        notifier: Callable[[str], None] | None = None,
        usage_bus: UsageEventBus | None = None,
        throttle: SendThrottle | None = None,
        fallback_message: str = FALLBACK_MESSAGE,
    ):
        """Initialize the session.

        Args:
            transport: Transport used for every request of this session
            context: Session context forwarded with each request
            initial_messages: Messages to seed the list with
            on_finish: Called with the final assistant message on ``done``
            on_error: Called once per failed request
            notifier: User-facing notification hook (toast), gets the detail
            usage_bus: Receives a TokenUsageEvent per usage report
            throttle: Send throttle (default: 1000 ms window)
            fallback_message: Text shown in the assistant bubble on failure
        """
        self._transport = transport
        self._context = context or SessionContext()
        self._store = MessageStore(initial_messages)
        self._on_finish = on_finish
        self._on_error = on_error
        self._notifier = notifier
        self._usage_bus = usage_bus
        self._throttle = throttle or SendThrottle()
        self._fallback_message = fallback_message

        self._aborts = AbortCoordinator()
        self._input = ""
        self._is_loading = False
        self._error: Exception | None = None
        self._listeners: list[SnapshotListener] = []
        self._debounce_timer: asyncio.Future | None = None

        self._store.subscribe(lambda _messages: self._notify())

    # State

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._store.messages

    @property
    def input(self) -> str:
        return self._input

    @input.setter
    def input(self, value: str) -> None:
        self._input = value
        self._notify()

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def active_controller(self) -> AbortController | None:
        return self._aborts.active

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            messages=self._store.messages,
            input=self._input,
            is_loading=self._is_loading,
            error=self._error,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_context(self, context: SessionContext) -> None:
        """Swap the session context.

        A different non-empty session id starts a fresh conversation.
        """
        previous = self._context.session_id
        self._context = context
        if context.session_id and context.session_id != previous:
            logger.info("Session changed from %s to %s, resetting messages", previous, context.session_id)
            self._aborts.stop()
            self._store.clear()
            self._input = ""
            self._error = None
            self._set_loading(False)
            self._notify()

    # Message list operations

    def append(
        self,
        role: Role,
        content: str,
        image_url: str | None = None,
        sources: list[Source] | None = None,
    ) -> Message:
        return self._store.append(Message.create(role, content, image_url=image_url, sources=sources))

    def update_message(self, message_id: str, **fields: Any) -> bool:
        return self._store.update_by_id(message_id, **fields)

    def delete_message(self, message_id: str) -> bool:
        return self._store.delete_by_id(message_id)

    def clear_messages(self) -> None:
        """Empty the list, the pending input and the error."""
        self._store.clear()
        self._input = ""
        self._error = None
        self._notify()

    # Request lifecycle

    async def send_message(self, content: str, image_url: str | None = None) -> bool:
        """Send a user message and stream the assistant reply.

        Args:
            content: Message text (surrounding whitespace is trimmed)
            image_url: Optional image attached to the user message

        Returns:
            False if the send was dropped (blank or throttled), True otherwise
        """
        if not content.strip():
            return False

        if not self._acquire(content):
            return False
        await self._dispatch(content, image_url)
        return True

    def debounced_send(self, content: str, image_url: str | None = None) -> asyncio.Task:
        """Send after the throttle window, keeping only the latest call.

        Each call cancels the previous call while it is still waiting. A send
        that already started is only superseded through the abort coordinator.

        Returns:
            The task that will perform the send
        """
        if self._debounce_timer is not None and not self._debounce_timer.done():
            self._debounce_timer.cancel()

        timer = asyncio.ensure_future(asyncio.sleep(self._throttle.delay_ms / 1000.0))
        self._debounce_timer = timer

        async def _later() -> bool:
            await timer
            return await self.send_message(content, image_url)

        return asyncio.create_task(_later())

    async def reload(self) -> bool:
        """Resend the last user message, dropping it and everything after it.

        Returns:
            False if there is nothing to resend or the send was dropped
        """
        messages = self._store.messages
        last_user_index = next(
            (i for i in range(len(messages) - 1, -1, -1) if messages[i].role == "user"),
            None,
        )
        if last_user_index is None:
            return False

        last_user = messages[last_user_index]
        if not self._acquire(last_user.content):
            return False
        self._store.truncate(last_user_index)
        await self._dispatch(last_user.content, last_user.image_url)
        return True

    def stop(self) -> None:
        """Abort the in-flight request, if any. Partial content is kept."""
        if self._aborts.stop():
            logger.info("Stopped in-flight request")
        self._set_loading(False)

    async def close(self) -> None:
        self.stop()
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
        await self._transport.close()

    async def __aenter__(self) -> "ChatSession":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Internals

    def _acquire(self, content: str) -> bool:
        if self._throttle.try_acquire():
            return True
        logger.debug(
            "Rate limited: skipping rapid send (%.0f ms since last): %r",
            self._throttle.time_since_last() or 0.0,
            content[:50],
        )
        return False

    async def _dispatch(self, content: str, image_url: str | None) -> None:
        history = self._store.messages
        user_message = self._store.append(
            Message.create("user", content.strip(), image_url=image_url)
        )
        self._input = ""
        self._error = None
        self._set_loading(True)
        assistant = self._store.append(Message.create("assistant", ""))

        controller = self._aborts.begin()
        task = asyncio.create_task(
            self._consume((*history, user_message), assistant.id, controller)
        )
        controller.attach(task)

        try:
            await task
        except asyncio.CancelledError:
            if not controller.signal.aborted:
                raise
            logger.info("Request aborted (%s)", controller.signal.reason)
        except RequestAborted as e:
            logger.info("Request aborted (%s)", e.reason)
        except Exception as e:
            self._fail(assistant.id, e)
        finally:
            if self._aborts.is_current(controller):
                self._aborts.release(controller)
                self._set_loading(False)

    async def _consume(
        self,
        history: tuple[Message, ...],
        assistant_id: str,
        controller: AbortController,
    ) -> None:
        content = ""
        stream = self._transport.stream_chat(history, self._context, controller.signal)
        async with aclosing(stream) as events:
            async for event in events:
                # Deltas that arrive after an abort are dropped
                controller.signal.throw_if_aborted()

                if isinstance(event, ContentDelta):
                    content += event.content
                    self._store.update_by_id(assistant_id, content=content)
                elif isinstance(event, UsageReport):
                    self._publish_usage(event)
                elif isinstance(event, StreamDone):
                    self._finish(assistant_id, controller)
                    return
                elif isinstance(event, StreamFailure):
                    raise StreamError(event.error)

        logger.warning("Stream closed without a done marker (%d chars received)", len(content))

    def _finish(self, assistant_id: str, controller: AbortController) -> None:
        self._store.update_by_id(assistant_id, timestamp=datetime.now())
        final = self._store.get(assistant_id)
        logger.info("Message completed: %d chars", len(final.content) if final else 0)

        if self._on_finish is not None and final is not None:
            try:
                self._on_finish(final)
            except Exception:
                logger.exception("on_finish callback failed")

        self._aborts.release(controller)
        self._set_loading(False)

    def _fail(self, assistant_id: str, error: Exception) -> None:
        logger.error("Message error: %s", error)
        self._error = error
        self._store.update_by_id(assistant_id, content=self._fallback_message)

        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("on_error callback failed")
        if self._notifier is not None:
            try:
                self._notifier(str(error))
            except Exception:
                logger.exception("Notifier failed")

    def _publish_usage(self, report: UsageReport) -> None:
        if self._usage_bus is None:
            return
        self._usage_bus.publish(TokenUsageEvent(
            session_id=self._context.session_id,
            provider=report.provider or "unknown",
            model=report.model or "unknown",
            usage=report.usage,
        ))

    def _set_loading(self, value: bool) -> None:
        if self._is_loading == value:
            return
        self._is_loading = value
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
