"""Server-Sent Events support for session event streams.

Hides the text/event-stream framing, the JSON decoding of frames and the
lifetime of one stream connection. A subscription covers exactly one
connection: when it ends, the caller decides whether to reconnect.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from pydantic import ValidationError

from .errors import TRANSPORT_EXCEPTIONS, ErrorCode, ProxyError, normalize_exception
from .models import AgentStatus, SessionEvent, SessionEventsOptions, SessionMessage

logger = logging.getLogger(__name__)

StreamOpener = Callable[[], AbstractAsyncContextManager[AsyncIterable[str]]]


class SSEDecoder:
    """Incremental decoder turning event-stream lines into data payloads."""

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed(self, line: str) -> str | None:
        """Consume one line (without its terminator).

        Returns:
            The joined data payload when the line completes a frame,
            otherwise None
        """
        line = line.rstrip("\r")
        if not line:
            if not self._data:
                return None
            payload = "\n".join(self._data)
            self._data = []
            return payload

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        # event/id/retry fields carry nothing we route on
        return None


async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield the data payload of every complete frame in a line stream."""
    decoder = SSEDecoder()
    async for line in lines:
        payload = decoder.feed(line)
        if payload is not None:
            yield payload
    # A trailing frame without its blank line is dropped, as browsers do.


def decode_event_frame(data: str) -> SessionEvent:
    """Decode one frame payload into a SessionEvent.

    Raises:
        ProxyError: RESPONSE_PARSE_ERROR when the payload is not a valid event
    """
    try:
        raw = json.loads(data)
        return SessionEvent.model_validate(raw)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ProxyError(0, ErrorCode.RESPONSE_PARSE_ERROR, f"Failed to parse session event: {e}") from e


class EventDispatcher:
    """Routes decoded frames to caller callbacks.

    Exceptions raised by callbacks are logged and never stop the stream.
    """

    def __init__(
        self,
        on_message: Callable[[SessionMessage], None],
        on_status: Callable[[AgentStatus], None] | None = None,
        on_error: Callable[[ProxyError], None] | None = None,
    ) -> None:
        self._on_message = on_message
        self._on_status = on_status
        self._on_error = on_error

    def _invoke(self, callback: Callable[[Any], None] | None, value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("Session event callback failed")

    def report(self, error: ProxyError) -> None:
        """Deliver an error to the caller's on_error callback."""
        self._invoke(self._on_error, error)

    def dispatch(self, data: str) -> None:
        """Decode one frame payload and route it by event type."""
        try:
            event = decode_event_frame(data)
            if event.type == "message":
                value: Any = SessionMessage.model_validate(event.data)
            elif event.type == "status":
                value = AgentStatus.model_validate(event.data)
            elif event.type == "error":
                message = event.data.get("error") if isinstance(event.data, dict) else event.data
                self.report(ProxyError(0, ErrorCode.STREAM_ERROR, str(message or "Session stream error")))
                return
            else:
                logger.warning("Unknown session event type: %s", event.type)
                return
        except ValidationError as e:
            self.report(ProxyError(0, ErrorCode.RESPONSE_PARSE_ERROR, f"Invalid session event data: {e}"))
            return
        except ProxyError as e:
            logger.warning("Malformed session event frame: %s", e.message)
            self.report(e)
            return

        logger.debug("Session event received: %s", event.type)
        if event.type == "message":
            self._invoke(self._on_message, value)
        else:
            self._invoke(self._on_status, value)


class EventSubscription:
    """One live connection to a session event stream.

    The connection runs in a background task. A stream-level failure, including
    the server closing the stream, is reported once through on_error and ends
    the subscription. Reconnecting is the caller's job; `reconnect_delay`
    tells it how long to wait, or is None when reconnecting is disabled.
    """

    def __init__(
        self,
        session_id: str,
        opener: StreamOpener,
        dispatcher: EventDispatcher,
        options: SessionEventsOptions | None = None,
    ) -> None:
        self.session_id = session_id
        self.options = options or SessionEventsOptions()
        self._opener = opener
        self._dispatcher = dispatcher
        self._task: asyncio.Task[None] | None = None
        self._error: ProxyError | None = None

    @property
    def closed(self) -> bool:
        """Whether the connection has ended or was closed."""
        return self._task is None or self._task.done()

    @property
    def error(self) -> ProxyError | None:
        """The stream-level error that ended the subscription, if any."""
        return self._error

    @property
    def reconnect_delay(self) -> float | None:
        """Seconds the caller should wait before subscribing again."""
        if not self.options.reconnect:
            return None
        return self.options.reconnect_interval

    def start(self) -> "EventSubscription":
        """Open the connection in a background task."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"session-events-{self.session_id}"
            )
        return self

    async def _run(self) -> None:
        try:
            async with self._opener() as lines:
                async for data in iter_sse_data(lines):
                    self._dispatcher.dispatch(data)
            error = ProxyError(0, ErrorCode.NETWORK_ERROR, "Session event stream closed by server")
        except ProxyError as e:
            error = e
        except TRANSPORT_EXCEPTIONS as e:
            error = normalize_exception(e).error

        self._error = error
        logger.error("Session event stream error for %s: %s", self.session_id, error.message)
        self._dispatcher.report(error)
        if self.reconnect_delay is not None:
            logger.info(
                "Session event stream for %s may reconnect in %.1fs",
                self.session_id, self.reconnect_delay
            )

    async def wait(self) -> ProxyError | None:
        """Wait until the connection ends.

        Returns:
            The stream-level error, or None if closed by the caller
        """
        if self._task is not None:
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise
        return self._error

    async def close(self) -> None:
        """Close the connection without reporting an error."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
