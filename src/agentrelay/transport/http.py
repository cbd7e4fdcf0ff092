"""HTTP transport for the session service, built on httpx."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import ClientConfig
from .base import SessionTransport
from .errors import (
    ErrorCode,
    ProxyError,
    RequestOutcome,
    TRANSPORT_EXCEPTIONS,
    normalize_exception,
    normalize_response,
    unwrap,
)
from .events import EventDispatcher, EventSubscription
from .models import (
    AgentStatus,
    CreateSessionRequest,
    SendSessionMessageRequest,
    Session,
    SessionEventsOptions,
    SessionListParams,
    SessionListResponse,
    SessionMessage,
    SessionMessageListParams,
    SessionMessageListResponse,
    params_to_query,
)
from .retry import SEND_TIMEOUT_MESSAGE, SendRetryPolicy, is_timeout_error

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, application/problem+json",
}

AUTH_REJECTED_STATUSES = frozenset({401, 403})

M = TypeVar("M", bound=BaseModel)


def _validate(model: type[M], data: Any) -> M:
    """Validate a decoded payload, keeping validation errors inside ProxyError."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProxyError(
            0, ErrorCode.RESPONSE_PARSE_ERROR, f"Unexpected {model.__name__} payload: {e}"
        ) from e


def _accepted_message(
    session_id: str, request: SendSessionMessageRequest, data: Any
) -> SessionMessage:
    """Build the sent message for a 2xx send reply.

    The server accepted the message even when its reply is not a message
    object, so an unexpected body is logged rather than raised.
    """
    try:
        return SessionMessage.model_validate(data)
    except ValidationError:
        logger.warning(
            "Session %s accepted a message with an unexpected reply: %r", session_id, data
        )

    message_id = data.get("id") if isinstance(data, dict) else None
    return SessionMessage(
        id=message_id if isinstance(message_id, (str, int)) else "",
        role="user",
        content=request.content,
    )


class HttpSessionTransport(SessionTransport):
    """Session service client over HTTP/JSON and Server-Sent Events.

    Hidden design decisions:
    - Which authentication header the server accepts (Bearer first,
      X-API-Key once on 401/403)
    - How responses and exceptions become ProxyError
    - The linear retry schedule for timed-out sends
    - Connection pooling through a shared httpx.AsyncClient
    """

    def __init__(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient | None = None,
        retry_policy: SendRetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the transport.

        Args:
            config: Client configuration (base URL, API key, timeout)
            client: Optional preconfigured httpx client, mainly for tests
            retry_policy: Retry schedule for timed-out sends
            sleep: Coroutine used to wait between send retries
        """
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._retry_policy = retry_policy or SendRetryPolicy()
        self._sleep = sleep

        logger.debug(
            "Initialized transport base_url=%s max_sessions=%d session_timeout=%.0fs",
            config.base_url, config.max_sessions, config.session_timeout
        )

    @property
    def config(self) -> ClientConfig:
        """Get the client configuration."""
        return self._config

    @property
    def retry_policy(self) -> SendRetryPolicy:
        """Get the send retry policy."""
        return self._retry_policy

    @property
    def is_closed(self) -> bool:
        """Whether the underlying HTTP client has been closed."""
        return self._client.is_closed

    def _url(self, endpoint: str) -> str:
        return f"{self._config.base_url}{endpoint}"

    def _auth_attempts(self) -> list[tuple[str, dict[str, str]]]:
        """Header sets to try, in order, for one logical call."""
        api_key = self._config.api_key
        if not api_key:
            return [("no auth", {})]
        return [
            ("Bearer token", {"Authorization": f"Bearer {api_key}"}),
            ("X-API-Key fallback", {"X-API-Key": api_key}),
        ]

    async def _send_once(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        json: Any,
        params: dict[str, str] | None,
    ) -> tuple[RequestOutcome, int | None]:
        try:
            response = await self._client.request(
                method,
                url,
                headers={**DEFAULT_HEADERS, **headers},
                json=json,
                params=params or None,
                timeout=self._config.timeout,
            )
        except TRANSPORT_EXCEPTIONS as e:
            return normalize_exception(e), None
        return normalize_response(response), response.status_code

    async def _execute(
        self,
        endpoint: str,
        method: str = "GET",
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> RequestOutcome:
        """Run one logical call, including the authentication fallback."""
        url = self._url(endpoint)
        attempts = self._auth_attempts()
        outcome: RequestOutcome | None = None

        for index, (scheme, headers) in enumerate(attempts):
            logger.debug("%s %s (%s)", method, url, scheme)
            outcome, status = await self._send_once(method, url, headers, json, params)
            is_last = index == len(attempts) - 1
            if is_last or status not in AUTH_REJECTED_STATUSES:
                break
            logger.info("%s %s rejected with %d, retrying with X-API-Key", method, url, status)

        logger.debug("%s %s -> %s", method, url, type(outcome).__name__)
        return outcome

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """Perform a normalized request against the service.

        Args:
            endpoint: Path relative to the base URL, starting with '/'
            method: HTTP method
            json: Optional JSON body
            params: Optional query parameters

        Returns:
            Decoded JSON payload (None for an empty body)

        Raises:
            ProxyError: NETWORK_ERROR, TIMEOUT_ERROR, RESPONSE_PARSE_ERROR,
                UNKNOWN_ERROR or the server's own code
        """
        return unwrap(await self._execute(endpoint, method, json, params))

    async def start(
        self,
        environment: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
        tags: dict[str, str] | None = None,
    ) -> Session:
        body = CreateSessionRequest(environment=environment, tags=tags)
        if metadata:
            body.metadata = metadata

        data = await self.request(
            "/start", method="POST", json=body.model_dump(exclude_none=True)
        )
        session = _validate(Session, data)
        logger.info("Started session %s", session.session_id)
        return session

    async def start_batch(
        self,
        count: int,
        environment: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
        tags: dict[str, str] | None = None,
    ) -> list[Session]:
        """Start several sessions concurrently.

        Raises:
            ValueError: If count exceeds the configured max_sessions
        """
        if count > self._config.max_sessions:
            raise ValueError(
                f"Cannot start {count} sessions, max_sessions is {self._config.max_sessions}"
            )
        return list(await asyncio.gather(
            *(self.start(environment, metadata, tags) for _ in range(count))
        ))

    async def search(self, params: SessionListParams | None = None) -> SessionListResponse:
        data = await self.request("/search", params=params_to_query(params))
        return _validate(SessionListResponse, data or {})

    async def delete(self, session_id: str) -> None:
        await self.request(f"/sessions/{session_id}", method="DELETE")
        logger.info("Deleted session %s", session_id)

    async def delete_batch(self, session_ids: list[str]) -> None:
        """Delete several sessions concurrently."""
        await asyncio.gather(*(self.delete(session_id) for session_id in session_ids))

    async def get_session_messages(
        self,
        session_id: str,
        params: SessionMessageListParams | None = None
    ) -> SessionMessageListResponse:
        data = await self.request(f"/{session_id}/messages", params=params_to_query(params))
        return _validate(SessionMessageListResponse, data or {})

    async def send_session_message(
        self,
        session_id: str,
        request: SendSessionMessageRequest
    ) -> SessionMessage:
        policy = self._retry_policy
        retry_index = 0
        while True:
            logger.debug("Sending message to session %s (attempt %d)", session_id, retry_index + 1)
            try:
                data = await self.request(
                    f"/{session_id}/message", method="POST", json=request.model_dump()
                )
                return _accepted_message(session_id, request, data)
            except ProxyError as e:
                if e.code == ErrorCode.RESPONSE_PARSE_ERROR.value and 200 <= e.status < 300:
                    return _accepted_message(session_id, request, None)
                if not is_timeout_error(e):
                    raise
                if retry_index >= policy.max_retries:
                    raise ProxyError(
                        e.status, ErrorCode.TIMEOUT_ERROR, SEND_TIMEOUT_MESSAGE, e.details
                    ) from e
                delay = policy.delay_for(retry_index)
                logger.info(
                    "Send to session %s timed out (%s), retrying in %.1fs",
                    session_id, e.message, delay
                )
                await self._sleep(delay)
                retry_index += 1

    async def get_session_status(self, session_id: str) -> AgentStatus:
        data = await self.request(f"/{session_id}/status")
        return _validate(AgentStatus, data)

    async def health_check(self) -> bool:
        """Check whether the service answers on /health."""
        try:
            await self.request("/health")
        except ProxyError as e:
            logger.debug("Health check failed: %s", e.message)
            return False
        return True

    @asynccontextmanager
    async def _open_event_stream(self, session_id: str) -> AsyncIterator[AsyncIterator[str]]:
        """Connect to the event stream, applying the authentication fallback."""
        url = self._url(f"/{session_id}/events")
        attempts = self._auth_attempts()
        timeout = httpx.Timeout(self._config.timeout, read=None)

        for index, (scheme, headers) in enumerate(attempts):
            logger.debug("GET %s (%s, event stream)", url, scheme)
            async with self._client.stream(
                "GET",
                url,
                headers={**headers, "Accept": "text/event-stream", "Cache-Control": "no-cache"},
                timeout=timeout,
            ) as response:
                if response.is_success:
                    yield response.aiter_lines()
                    return
                if response.status_code in AUTH_REJECTED_STATUSES and index < len(attempts) - 1:
                    continue
                await response.aread()
                unwrap(normalize_response(response))

    def subscribe_to_session_events(
        self,
        session_id: str,
        on_message: Callable[[SessionMessage], None],
        on_status: Callable[[AgentStatus], None] | None = None,
        on_error: Callable[[ProxyError], None] | None = None,
        options: SessionEventsOptions | None = None,
    ) -> EventSubscription:
        dispatcher = EventDispatcher(on_message, on_status, on_error)
        subscription = EventSubscription(
            session_id,
            lambda: self._open_event_stream(session_id),
            dispatcher,
            options,
        )
        return subscription.start()

    async def close(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
