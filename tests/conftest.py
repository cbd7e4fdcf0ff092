"""Pytest configuration and shared fixtures."""
import asyncio
from collections import deque
from collections.abc import Callable

import httpx
import pytest

from agentrelay.config import ClientConfig
from agentrelay.transport.base import SessionTransport
from agentrelay.transport.errors import ErrorCode, ProxyError
from agentrelay.transport.http import HttpSessionTransport
from agentrelay.transport.models import (
    AgentStatus,
    SendSessionMessageRequest,
    Session,
    SessionListResponse,
    SessionMessage,
    SessionMessageListResponse,
)


class FakeTimer:
    """Handle returned by FakeClock.call_later."""

    def __init__(self, when: float, callback: Callable[[], object]):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manually advanced clock implementing call_later."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], object]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[FakeTimer]:
        """Timers that are scheduled and neither fired nor cancelled."""
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self.active if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.now = timer.when
            timer.fired = True
            timer.callback()
        self.now = target


class RecordingSleep:
    """Sleep replacement that records delays and only yields once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeTransport(SessionTransport):
    """In-memory transport with scripted send results.

    Each entry of `send_results` is either an exception to raise or None
    for success. When the script is exhausted, sends succeed.
    """

    def __init__(self, send_results: list[Exception | None] | None = None):
        self.send_results = deque(send_results or [])
        self.sent: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None
        self.messages: list[SessionMessage] = []
        self.status = AgentStatus(status="stable")
        self.fail_reads: ProxyError | None = None
        self.closed = False

    async def start(self, environment=None, metadata=None, tags=None) -> Session:
        return Session(session_id="session-1", status="active")

    async def search(self, params=None) -> SessionListResponse:
        return SessionListResponse()

    async def delete(self, session_id: str) -> None:
        return None

    async def get_session_messages(self, session_id, params=None) -> SessionMessageListResponse:
        if self.fail_reads is not None:
            raise self.fail_reads
        return SessionMessageListResponse(messages=list(self.messages))

    async def send_session_message(
        self, session_id: str, request: SendSessionMessageRequest
    ) -> SessionMessage:
        self.sent.append((session_id, request.content))
        if self.gate is not None:
            await self.gate.wait()
        result = self.send_results.popleft() if self.send_results else None
        if result is not None:
            raise result
        return SessionMessage(id=len(self.sent), role="user", content=request.content)

    async def get_session_status(self, session_id: str) -> AgentStatus:
        if self.fail_reads is not None:
            raise self.fail_reads
        return self.status

    def subscribe_to_session_events(self, session_id, on_message, on_status=None, on_error=None, options=None):
        raise NotImplementedError

    async def close(self) -> None:
        self.closed = True


def network_error(message: str = "connection refused") -> ProxyError:
    return ProxyError(0, ErrorCode.NETWORK_ERROR, message)


@pytest.fixture
def config():
    """Return a client configuration with an API key."""
    return ClientConfig(base_url="http://relay.test/", api_key="secret", timeout=10.0, max_sessions=3)


@pytest.fixture
def anonymous_config():
    """Return a client configuration without credentials."""
    return ClientConfig(base_url="http://relay.test")


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_transport(recording_sleep):
    """Build an HttpSessionTransport whose requests go to a handler.

    The returned factory records every request in `requests`.
    """
    def _make(config: ClientConfig, handler: Callable[[httpx.Request], httpx.Response]):
        requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        transport = HttpSessionTransport(config, client=client, sleep=recording_sleep)
        return transport, requests

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_transport():
    return FakeTransport()
