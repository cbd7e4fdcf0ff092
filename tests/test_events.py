"""Unit tests for session event streams."""
import json

import httpx
import pytest

from agentrelay.sync.stream import follow_session_events
from agentrelay.transport.errors import ErrorCode, ProxyError
from agentrelay.transport.events import EventDispatcher, SSEDecoder, decode_event_frame
from agentrelay.transport.models import SessionEventsOptions


def frame(payload) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


def stream_response(*frames: str) -> httpx.Response:
    return httpx.Response(
        200,
        content="".join(frames).encode(),
        headers={"content-type": "text/event-stream"},
    )


class Collector:
    """Records callback invocations."""

    def __init__(self):
        self.messages = []
        self.statuses = []
        self.errors: list[ProxyError] = []

    def dispatcher(self) -> EventDispatcher:
        return EventDispatcher(self.messages.append, self.statuses.append, self.errors.append)


class TestSSEDecoder:
    """Tests for the line-level decoder."""

    def test_single_frame(self):
        """Test that a blank line completes a frame."""
        decoder = SSEDecoder()
        assert decoder.feed('data: {"a": 1}') is None
        assert decoder.feed("") == '{"a": 1}'

    def test_multiline_data_and_ignored_fields(self):
        """Test that data lines are joined and other fields are ignored."""
        decoder = SSEDecoder()
        for line in [": keep-alive", "event: message", "id: 3", "data: one", "data:two"]:
            assert decoder.feed(line) is None
        assert decoder.feed("") == "one\ntwo"

    def test_blank_line_without_data(self):
        """Test that a blank line alone yields nothing."""
        assert SSEDecoder().feed("") is None

    def test_crlf_terminated_lines(self):
        """Test that carriage returns are stripped from lines."""
        decoder = SSEDecoder()
        decoder.feed("data: x\r")
        assert decoder.feed("\r") == "x"


class TestEventDispatcher:
    """Tests for frame routing."""

    def test_routes_by_type(self):
        """Test that frames reach the message and status callbacks by type."""
        collector = Collector()
        dispatcher = collector.dispatcher()
        dispatcher.dispatch(json.dumps({"type": "message", "data": {"id": 1, "role": "agent", "content": "hi"}}))
        dispatcher.dispatch(json.dumps({"type": "status", "data": {"status": "running"}}))

        assert collector.messages[0].content == "hi"
        assert collector.statuses[0].status == "running"
        assert collector.errors == []

    def test_error_frame(self):
        """Test that an error frame becomes a STREAM_ERROR."""
        collector = Collector()
        collector.dispatcher().dispatch(json.dumps({"type": "error", "data": {"error": "agent crashed"}}))
        assert collector.errors[0].code == ErrorCode.STREAM_ERROR
        assert collector.errors[0].message == "agent crashed"

    def test_malformed_frame_reports_and_continues(self):
        """Test that a malformed frame is reported and later frames still arrive."""
        collector = Collector()
        dispatcher = collector.dispatcher()
        dispatcher.dispatch("{not json")
        dispatcher.dispatch(json.dumps({"type": "status", "data": {"status": "stable"}}))

        assert [e.code for e in collector.errors] == [ErrorCode.RESPONSE_PARSE_ERROR]
        assert collector.statuses[0].status == "stable"

    def test_invalid_data_is_parse_error(self):
        """Test that a frame with invalid data is a RESPONSE_PARSE_ERROR."""
        collector = Collector()
        collector.dispatcher().dispatch(json.dumps({"type": "status", "data": {"status": "bogus"}}))
        assert collector.errors[0].code == ErrorCode.RESPONSE_PARSE_ERROR

    def test_unknown_type_is_skipped(self):
        """Test that frames of unknown type are ignored."""
        collector = Collector()
        collector.dispatcher().dispatch(json.dumps({"type": "typing", "data": {}}))
        assert collector.messages == collector.statuses == collector.errors == []

    def test_callback_exception_is_isolated(self):
        """Test that an exception in a callback does not reach the stream."""
        errors = []

        def explode(message):
            raise RuntimeError("listener bug")

        dispatcher = EventDispatcher(explode, on_error=errors.append)
        dispatcher.dispatch(json.dumps({"type": "message", "data": {"id": 1, "role": "agent"}}))
        assert errors == []

    def test_decode_event_frame_requires_type(self):
        """Test that a frame without a type is rejected."""
        with pytest.raises(ProxyError):
            decode_event_frame(json.dumps({"data": {}}))


class TestEventSubscription:
    """Tests for a subscription over the HTTP transport."""

    @pytest.mark.asyncio
    async def test_malformed_frame_does_not_stop_stream(self, config, make_transport):
        """Test that a bad frame mid-stream does not end the subscription."""
        body = [
            frame({"type": "message", "data": {"id": 1, "role": "agent", "content": "first"}}),
            frame("garbage"),
            frame({"type": "message", "data": {"id": 2, "role": "agent", "content": "second"}}),
        ]
        transport, requests = make_transport(config, lambda request: stream_response(*body))
        collector = Collector()

        subscription = transport.subscribe_to_session_events(
            "s1", collector.messages.append, collector.statuses.append, collector.errors.append
        )
        error = await subscription.wait()

        assert [m.content for m in collector.messages] == ["first", "second"]
        assert collector.errors[0].code == ErrorCode.RESPONSE_PARSE_ERROR
        # The server closing the stream is reported once, at the end
        assert collector.errors[1] is error
        assert len(collector.errors) == 2
        assert error.code == ErrorCode.NETWORK_ERROR
        assert subscription.closed
        assert requests[0].headers["accept"] == "text/event-stream"
        assert requests[0].url.path == "/s1/events"

    @pytest.mark.asyncio
    async def test_connect_uses_auth_fallback(self, config, make_transport):
        """Test that the stream connection retries with X-API-Key after a 401."""
        def handler(request):
            if "authorization" in request.headers:
                return httpx.Response(401)
            return stream_response(frame({"type": "status", "data": {"status": "stable"}}))

        transport, requests = make_transport(config, handler)
        collector = Collector()
        subscription = transport.subscribe_to_session_events(
            "s1", collector.messages.append, collector.statuses.append, collector.errors.append
        )
        await subscription.wait()

        assert len(requests) == 2
        assert collector.statuses[0].status == "stable"

    @pytest.mark.asyncio
    async def test_http_error_reported_once(self, anonymous_config, make_transport):
        """Test that an HTTP error when connecting is reported exactly once."""
        transport, _ = make_transport(
            anonymous_config,
            lambda request: httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": "gone"}}),
        )
        collector = Collector()
        subscription = transport.subscribe_to_session_events(
            "s1", collector.messages.append, on_error=collector.errors.append,
            options=SessionEventsOptions(reconnect=False),
        )
        error = await subscription.wait()

        assert [e.code for e in collector.errors] == ["NOT_FOUND"]
        assert error.status == 404
        assert subscription.reconnect_delay is None

    @pytest.mark.asyncio
    async def test_invalid_session_id_reported_as_network_error(self, anonymous_config, make_transport):
        """Test that a URL the client cannot build ends the stream through on_error."""
        transport, requests = make_transport(anonymous_config, lambda request: stream_response())
        collector = Collector()
        subscription = transport.subscribe_to_session_events(
            "bad\x00id", collector.messages.append, on_error=collector.errors.append,
            options=SessionEventsOptions(reconnect=False),
        )
        error = await subscription.wait()

        assert error.code == ErrorCode.NETWORK_ERROR
        assert [e.code for e in collector.errors] == [ErrorCode.NETWORK_ERROR]
        assert requests == []
        await subscription.close()

    @pytest.mark.asyncio
    async def test_reconnect_delay_from_options(self, anonymous_config, make_transport):
        """Test that the reconnect delay comes from the subscription options."""
        transport, _ = make_transport(anonymous_config, lambda request: stream_response())
        subscription = transport.subscribe_to_session_events(
            "s1", lambda m: None, options=SessionEventsOptions(reconnect_interval=1.5)
        )
        await subscription.close()
        assert subscription.reconnect_delay == 1.5


class TestFollowSessionEvents:
    """Tests for caller-owned reconnection."""

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, anonymous_config, make_transport, recording_sleep):
        """Test that following stops after the configured reconnect attempts."""
        transport, requests = make_transport(anonymous_config, lambda request: httpx.Response(503))
        errors = []

        error = await follow_session_events(
            transport, "s1", lambda m: None, on_error=errors.append,
            options=SessionEventsOptions(reconnect_interval=5.0, max_reconnect_attempts=2),
            sleep=recording_sleep,
        )

        assert len(requests) == 3
        assert len(errors) == 3
        assert recording_sleep.delays == [5.0, 5.0]
        assert error.status == 503

    @pytest.mark.asyncio
    async def test_no_reconnect(self, anonymous_config, make_transport, recording_sleep):
        """Test that following stops after one failure when reconnect is off."""
        transport, requests = make_transport(anonymous_config, lambda request: httpx.Response(503))

        error = await follow_session_events(
            transport, "s1", lambda m: None,
            options=SessionEventsOptions(reconnect=False),
            sleep=recording_sleep,
        )

        assert len(requests) == 1
        assert recording_sleep.delays == []
        assert error is not None
