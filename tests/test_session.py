"""Unit tests for the chat session request lifecycle."""
import asyncio

import pytest
from helpers import HOLD, ScriptedTransport, data_line

from fbc_chat.chat import ChatSession, Message, SendThrottle, SessionContext
from fbc_chat.config import FALLBACK_MESSAGE
from fbc_chat.exceptions import ChatHTTPError, StreamError
from fbc_chat.usage import SessionCostTracker, UsageEventBus


def _session(transport, throttle, **kwargs) -> ChatSession:
    kwargs.setdefault("context", SessionContext(session_id="session-123"))
    return ChatSession(transport, throttle=throttle, **kwargs)


def _loading_transitions(session: ChatSession) -> list[bool]:
    transitions: list[bool] = []

    def listener(snapshot):
        if not transitions or transitions[-1] != snapshot.is_loading:
            transitions.append(snapshot.is_loading)

    session.subscribe(listener)
    return transitions


class TestSendMessage:
    """Tests for a successful send."""

    @pytest.mark.asyncio
    async def test_hello_streams_hi_there(self, hello_script, throttle):
        transport = ScriptedTransport(hello_script)
        session = _session(transport, throttle)

        assert await session.send_message("Hello") is True

        user, assistant = session.messages
        assert user.role == "user"
        assert user.content == "Hello"
        assert assistant.role == "assistant"
        assert assistant.content == "Hi there"
        assert session.is_loading is False
        assert session.error is None

    @pytest.mark.asyncio
    async def test_loading_goes_false_exactly_once_at_done(self, throttle):
        transport = ScriptedTransport([
            data_line({"content": "a"}),
            data_line({"content": "b"}),
            data_line({"content": "c"}),
            data_line({"done": True}),
        ])
        finished = []
        session = _session(
            transport,
            throttle,
            on_finish=lambda message: finished.append(session.is_loading),
        )
        transitions = _loading_transitions(session)

        await session.send_message("go")

        assert session.messages[-1].content == "abc"
        assert transitions == [False, True, False]
        # on_finish runs at the done line, while the request is still loading
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_request_carries_history_and_context(self, hello_script, throttle, clock):
        transport = ScriptedTransport(hello_script, list(hello_script))
        session = _session(transport, throttle)

        await session.send_message("Hello")
        clock.advance(1000)
        await session.send_message("  Again  ")

        history, context = transport.calls[1]
        assert [m.content for m in history] == ["Hello", "Hi there", "Again"]
        assert context.session_id == "session-123"

    @pytest.mark.asyncio
    async def test_on_finish_receives_final_message(self, hello_script, throttle):
        finished: list[Message] = []
        session = _session(ScriptedTransport(hello_script), throttle, on_finish=finished.append)

        await session.send_message("Hello")

        assert len(finished) == 1
        assert finished[0].content == "Hi there"
        assert finished[0].id == session.messages[-1].id

    @pytest.mark.asyncio
    async def test_image_url_is_kept_on_user_message(self, hello_script, throttle):
        transport = ScriptedTransport(hello_script)
        session = _session(transport, throttle)

        await session.send_message("Look", image_url="https://example.com/cat.png")

        assert session.messages[0].image_url == "https://example.com/cat.png"
        assert transport.calls[0][0][-1].image_url == "https://example.com/cat.png"

    @pytest.mark.asyncio
    async def test_stream_without_done_keeps_content(self, throttle):
        finished = []
        session = _session(
            ScriptedTransport([data_line({"content": "partial"})]),
            throttle,
            on_finish=finished.append,
        )

        await session.send_message("Hello")

        assert session.messages[-1].content == "partial"
        assert session.is_loading is False
        assert finished == []

    @pytest.mark.asyncio
    async def test_malformed_line_does_not_fail_request(self, throttle):
        session = _session(ScriptedTransport([
            data_line({"content": "a"}),
            b"data: {broken\n\n",
            data_line({"content": "b"}),
            data_line({"done": True}),
        ]), throttle)

        await session.send_message("Hello")

        assert session.messages[-1].content == "ab"
        assert session.error is None


class TestThrottling:
    """Tests for dropped sends."""

    @pytest.mark.asyncio
    async def test_blank_message_is_ignored(self, throttle):
        transport = ScriptedTransport()
        session = _session(transport, throttle)

        assert await session.send_message("   ") is False
        assert session.messages == ()
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_rapid_sends_only_dispatch_first(self, hello_script, throttle, clock):
        transport = ScriptedTransport(hello_script, list(hello_script), list(hello_script))
        session = _session(transport, throttle)

        results = [await session.send_message("one")]
        for _ in range(4):
            clock.advance(200)
            session.input = "draft"
            results.append(await session.send_message("again"))

        assert results == [True, False, False, False, False]
        assert len(transport.calls) == 1
        assert len(session.messages) == 2
        # Dropped sends leave the pending input alone
        assert session.input == "draft"

    @pytest.mark.asyncio
    async def test_send_after_window_is_dispatched(self, hello_script, throttle, clock):
        transport = ScriptedTransport(hello_script, list(hello_script))
        session = _session(transport, throttle)

        await session.send_message("one")
        clock.advance(1000)

        assert await session.send_message("two") is True
        assert len(transport.calls) == 2


class TestFailures:
    """Tests for error handling."""

    @pytest.mark.asyncio
    async def test_error_payload_replaces_content(self, throttle):
        errors: list[Exception] = []
        toasts: list[str] = []
        session = _session(
            ScriptedTransport([
                data_line({"content": "Hal"}),
                data_line({"error": "model overloaded"}),
                data_line({"content": "never"}),
            ]),
            throttle,
            on_error=errors.append,
            notifier=toasts.append,
        )

        assert await session.send_message("Hello") is True

        assert session.messages[-1].content == FALLBACK_MESSAGE
        assert len(errors) == 1
        assert isinstance(errors[0], StreamError)
        assert str(errors[0]) == "model overloaded"
        assert toasts == ["model overloaded"]
        assert session.error is errors[0]
        assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_http_error_uses_fallback(self, throttle):
        errors: list[Exception] = []
        session = _session(ScriptedTransport(ChatHTTPError(500)), throttle, on_error=errors.append)

        await session.send_message("Hello")

        assert session.messages[-1].content == FALLBACK_MESSAGE
        assert [type(e) for e in errors] == [ChatHTTPError]
        assert "500" in str(session.error)

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, throttle):
        errors: list[Exception] = []
        session = _session(ScriptedTransport(ConnectionError("reset")), throttle, on_error=errors.append)

        await session.send_message("Hello")

        assert isinstance(session.error, ConnectionError)
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_next_send_clears_error(self, hello_script, throttle, clock):
        session = _session(ScriptedTransport(ChatHTTPError(502), hello_script), throttle)

        await session.send_message("Hello")
        assert session.error is not None

        clock.advance(1000)
        await session.send_message("Hello again")

        assert session.error is None
        assert session.messages[-1].content == "Hi there"

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_session(self, throttle):
        def explode(error):
            raise RuntimeError("callback bug")

        session = _session(ScriptedTransport(ChatHTTPError(500)), throttle, on_error=explode)

        await session.send_message("Hello")

        assert session.messages[-1].content == FALLBACK_MESSAGE


class TestStop:
    """Tests for stop() and request superseding."""

    @pytest.mark.asyncio
    async def test_stop_in_flight_aborts_controller(self, throttle):
        errors = []
        transport = ScriptedTransport([
            data_line({"content": "partial"}),
            HOLD,
            data_line({"content": " more"}),
            data_line({"done": True}),
        ])
        session = _session(transport, throttle, on_error=errors.append)

        task = asyncio.create_task(session.send_message("Hello"))
        await transport.holding.wait()
        controller = session.active_controller
        assert session.is_loading is True

        session.stop()
        await task

        assert controller.signal.aborted is True
        assert session.is_loading is False
        assert session.active_controller is None
        assert session.messages[-1].content == "partial"
        assert session.error is None
        assert errors == []

    def test_stop_when_idle_is_noop(self, throttle):
        session = _session(ScriptedTransport(), throttle)
        snapshots = []
        session.subscribe(snapshots.append)

        session.stop()

        assert session.is_loading is False
        assert snapshots == []

    @pytest.mark.asyncio
    async def test_new_send_supersedes_in_flight_request(self, throttle, clock):
        transport = ScriptedTransport(
            [data_line({"content": "A"}), HOLD, data_line({"content": "late"}), data_line({"done": True})],
            [data_line({"content": "B"}), data_line({"done": True})],
        )
        errors = []
        session = _session(transport, throttle, on_error=errors.append)

        first = asyncio.create_task(session.send_message("first"))
        await transport.holding.wait()
        first_controller = session.active_controller

        clock.advance(1000)
        await session.send_message("second")
        await first

        contents = [m.content for m in session.messages]
        assert contents == ["first", "A", "second", "B"]
        assert first_controller.signal.aborted is True
        assert session.is_loading is False
        assert errors == []


class TestMessageOperations:
    """Tests for list operations exposed by the session."""

    @pytest.mark.asyncio
    async def test_clear_messages_resets_everything(self, throttle):
        session = _session(ScriptedTransport(ChatHTTPError(500)), throttle)
        await session.send_message("Hello")
        session.input = "typing"

        session.clear_messages()

        assert session.messages == ()
        assert session.error is None
        assert session.input == ""

    def test_clear_on_empty_session(self, throttle):
        session = _session(ScriptedTransport(), throttle)

        session.clear_messages()

        assert session.messages == ()
        assert session.error is None

    def test_append_update_delete(self, throttle):
        session = _session(ScriptedTransport(), throttle)
        message = session.append("assistant", "draft")

        assert session.update_message(message.id, content="final") is True
        assert session.messages[0].content == "final"
        assert session.update_message("missing", content="x") is False
        assert session.delete_message(message.id) is True
        assert session.messages == ()

    @pytest.mark.asyncio
    async def test_reload_resends_last_user_message(self, throttle, clock):
        transport = ScriptedTransport(
            [data_line({"content": "first answer"}), data_line({"done": True})],
            [data_line({"content": "second answer"}), data_line({"done": True})],
        )
        session = _session(transport, throttle)
        await session.send_message("Question")
        clock.advance(1000)

        assert await session.reload() is True

        assert [m.content for m in session.messages] == ["Question", "second answer"]
        assert [m.content for m in transport.calls[1][0]] == ["Question"]

    @pytest.mark.asyncio
    async def test_throttled_reload_keeps_messages(self, hello_script, throttle):
        transport = ScriptedTransport(hello_script)
        session = _session(transport, throttle)
        await session.send_message("Question")
        before = session.messages

        assert await session.reload() is False

        assert session.messages == before
        assert [m.content for m in session.messages] == ["Question", "Hi there"]
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_reload_without_user_message(self, throttle):
        session = _session(ScriptedTransport(), throttle)

        assert await session.reload() is False

    def test_session_change_resets_conversation(self, throttle):
        session = _session(ScriptedTransport(), throttle)
        session.append("user", "old")
        session.input = "typing"

        session.set_context(SessionContext(session_id="session-456"))

        assert session.messages == ()
        assert session.input == ""
        assert session.context.session_id == "session-456"

    def test_same_session_keeps_conversation(self, throttle):
        session = _session(ScriptedTransport(), throttle)
        session.append("user", "kept")

        session.set_context(SessionContext(session_id="session-123", user_id="u-1"))

        assert [m.content for m in session.messages] == ["kept"]

    def test_sessions_do_not_share_state(self, throttle):
        a = _session(ScriptedTransport(), throttle)
        b = _session(ScriptedTransport(), throttle)

        a.append("user", "only in a")

        assert b.messages == ()


class TestUsageReporting:
    """Tests for usage events published during a stream."""

    @pytest.mark.asyncio
    async def test_usage_is_published_to_bus(self, throttle):
        bus = UsageEventBus()
        tracker = SessionCostTracker("session-123")
        tracker.attach(bus)
        session = _session(ScriptedTransport([
            data_line({"content": "ok"}),
            data_line({
                "usage": {"inputTokens": 1_000_000, "outputTokens": 0, "totalTokens": 1_000_000},
                "provider": "openai",
                "model": "gpt-4o-mini",
            }),
            data_line({"done": True}),
        ]), throttle, usage_bus=bus)

        await session.send_message("Hello")

        assert tracker.request_count == 1
        assert tracker.total_tokens == 1_000_000
        assert tracker.total_cost == pytest.approx(0.15)


class TestDebouncedSend:
    """Tests for the trailing-edge debounced send."""

    @pytest.mark.asyncio
    async def test_only_last_call_fires(self, hello_script):
        transport = ScriptedTransport(hello_script)
        session = ChatSession(transport, throttle=SendThrottle(delay_ms=10))

        first = session.debounced_send("one")
        second = session.debounced_send("two")
        assert await second is True

        assert first.cancelled()
        assert [m.content for m in transport.calls[0][0]] == ["two"]

    @pytest.mark.asyncio
    async def test_close_cancels_pending_debounce(self, hello_script):
        transport = ScriptedTransport(hello_script)
        session = ChatSession(transport, throttle=SendThrottle(delay_ms=10_000))
        pending = session.debounced_send("later")

        await session.close()
        with pytest.raises(asyncio.CancelledError):
            await pending

        assert pending.cancelled()
        assert transport.closed is True
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_later_call_does_not_cut_off_a_started_send(self):
        transport = ScriptedTransport(
            [data_line({"content": "A"}), HOLD, data_line({"content": " rest"}), data_line({"done": True})],
            [data_line({"content": "B"}), data_line({"done": True})],
        )
        session = ChatSession(transport, throttle=SendThrottle(delay_ms=10))

        first = session.debounced_send("one")
        await transport.holding.wait()
        second = session.debounced_send("two")
        transport.release.set()

        assert await first is True
        assert await second is True
        assert not first.cancelled()
        assert [m.content for m in session.messages] == ["one", "A rest", "two", "B"]
