from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from .errors import ProxyError
from .events import EventSubscription
from .models import (
    AgentStatus,
    Session,
    SessionEventsOptions,
    SessionListParams,
    SessionListResponse,
    SessionMessage,
    SessionMessageListParams,
    SessionMessageListResponse,
    SendSessionMessageRequest,
)


class SessionTransport(ABC):
    """Abstract base class for session service transports.

    This module hides the design decision of how the client reaches the
    session service. Implementations must handle:
    - Authentication scheme negotiation
    - Error normalization into ProxyError
    - Retrying transient send failures
    - Opening the session event stream

    Every failure crossing this interface is a ProxyError. Cancelling the
    task that awaits a call aborts the underlying request.

    Supports async context manager protocol for proper resource cleanup:
        async with transport:
            session = await transport.start()
        # Automatically cleaned up
    """

    @abstractmethod
    async def start(
        self,
        environment: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
        tags: dict[str, str] | None = None,
    ) -> Session:
        """Create a new session.

        Args:
            environment: Environment variables for the agent
            metadata: Free-form metadata stored with the session
            tags: Searchable tags

        Returns:
            The created session

        Raises:
            ProxyError: On any failure
        """

    @abstractmethod
    async def search(self, params: SessionListParams | None = None) -> SessionListResponse:
        """List sessions page by page."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Delete a session."""

    @abstractmethod
    async def get_session_messages(
        self,
        session_id: str,
        params: SessionMessageListParams | None = None
    ) -> SessionMessageListResponse:
        """Fetch the messages of a session."""

    @abstractmethod
    async def send_session_message(
        self,
        session_id: str,
        request: SendSessionMessageRequest
    ) -> SessionMessage:
        """Send a message to a session.

        Implementations retry classified timeouts before giving up with a
        TIMEOUT_ERROR.

        Args:
            session_id: Target session
            request: Message content and type

        Returns:
            The message as stored by the server

        Raises:
            ProxyError: When the message could not be delivered
        """

    @abstractmethod
    async def get_session_status(self, session_id: str) -> AgentStatus:
        """Fetch the agent status of a session."""

    @abstractmethod
    def subscribe_to_session_events(
        self,
        session_id: str,
        on_message: Callable[[SessionMessage], None],
        on_status: Callable[[AgentStatus], None] | None = None,
        on_error: Callable[[ProxyError], None] | None = None,
        options: SessionEventsOptions | None = None,
    ) -> EventSubscription:
        """Open the session event stream.

        Must be called from a running event loop. The subscription never
        reconnects on its own; see SessionEventsOptions.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""

    async def __aenter__(self) -> "SessionTransport":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup."""
        await self.close()
