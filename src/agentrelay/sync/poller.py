"""Periodic session refresh.

Hides the polling loop that keeps a view of a session up to date: the
interval pauses while the host is hidden and resumes when it is shown
again.
"""

import logging
from collections.abc import Callable

from ..scheduler.interval import BackgroundAwareInterval, Clock
from ..scheduler.visibility import VisibilityMonitor
from ..transport.base import SessionTransport
from ..transport.errors import ProxyError
from ..transport.models import AgentStatus, SessionMessage, SessionMessageListParams

logger = logging.getLogger(__name__)

MessagesListener = Callable[[list[SessionMessage]], None]
StatusListener = Callable[[AgentStatus], None]
ErrorListener = Callable[[ProxyError], None]


class SessionPoller:
    """Fetch a session's messages and agent status on an interval.

    Listeners are notified only when the fetched value differs from the
    previous poll. Each tick schedules poll_once() as a task; a poll slower
    than the interval can overlap the next one.

    Example:
        poller = SessionPoller(transport, session_id, visibility=monitor)
        poller.on_messages(render)
        poller.start()
    """

    def __init__(
        self,
        transport: SessionTransport,
        session_id: str,
        *,
        interval: float = 2.0,
        visibility: VisibilityMonitor | None = None,
        clock: Clock | None = None,
        params: SessionMessageListParams | None = None,
    ) -> None:
        self._transport = transport
        self._session_id = session_id
        self._params = params
        self._messages: list[SessionMessage] | None = None
        self._status: AgentStatus | None = None
        self._message_listeners: list[MessagesListener] = []
        self._status_listeners: list[StatusListener] = []
        self._error_listeners: list[ErrorListener] = []
        self._interval = BackgroundAwareInterval(
            self.poll_once, interval, visibility=visibility, clock=clock
        )

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def interval(self) -> BackgroundAwareInterval:
        """The underlying scheduler handle."""
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._interval.is_running

    @property
    def messages(self) -> list[SessionMessage]:
        """Messages from the latest successful poll."""
        return list(self._messages or [])

    @property
    def status(self) -> AgentStatus | None:
        """Agent status from the latest successful poll."""
        return self._status

    def on_messages(self, listener: MessagesListener) -> Callable[[], None]:
        return self._subscribe(self._message_listeners, listener)

    def on_status(self, listener: StatusListener) -> Callable[[], None]:
        return self._subscribe(self._status_listeners, listener)

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        return self._subscribe(self._error_listeners, listener)

    def start(self) -> None:
        self._interval.start()

    def stop(self) -> None:
        self._interval.stop()

    def dispose(self) -> None:
        self._interval.dispose()
        self._message_listeners.clear()
        self._status_listeners.clear()
        self._error_listeners.clear()

    async def poll_once(self) -> bool:
        """Fetch messages and status once.

        Returns:
            True if both requests succeeded
        """
        try:
            response = await self._transport.get_session_messages(self._session_id, self._params)
            status = await self._transport.get_session_status(self._session_id)
        except ProxyError as e:
            logger.warning("Polling session %s failed: %s", self._session_id, e.message)
            self._emit(self._error_listeners, e)
            return False

        if self._messages is None or _dump(response.messages) != _dump(self._messages):
            self._messages = list(response.messages)
            self._emit(self._message_listeners, self.messages)

        if self._status is None or status.model_dump() != self._status.model_dump():
            self._status = status
            self._emit(self._status_listeners, status)

        return True

    @staticmethod
    def _subscribe(listeners: list, listener: Callable) -> Callable[[], None]:
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _emit(listeners: list, value: object) -> None:
        for listener in list(listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Poller listener failed")


def _dump(messages: list[SessionMessage]) -> list[dict]:
    return [m.model_dump() for m in messages]
