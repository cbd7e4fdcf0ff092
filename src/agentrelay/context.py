"""Application-wide client context.

This module hides how the client's long-lived pieces are wired together.
The host application creates one RelayContext, passes it to whatever needs
the transport, the queue or the caches, and destroys it on shutdown.

Usage:
    async with await RelayContext.create() as ctx:
        message_id = await ctx.send(session_id, "hello")
"""

import logging
from pathlib import Path
from typing import Any

from .config import ClientConfig, load_config
from .history.base import RecentMessageStore
from .history.factory import create_initial_message_cache, create_recent_message_store
from .queue.message_queue import MessageQueue
from .queue.pacer import MessagePacer
from .scheduler.visibility import VisibilityMonitor
from .sync.poller import SessionPoller
from .transport.base import SessionTransport
from .transport.factory import create_transport

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"


class RelayContext:
    """Owns the transport, message queue, visibility source and caches."""

    def __init__(
        self,
        config: ClientConfig,
        transport: SessionTransport,
        queue: MessageQueue,
        visibility: VisibilityMonitor,
        recent_messages: RecentMessageStore,
        initial_messages: RecentMessageStore,
        owns_transport: bool = True,
    ):
        self.config = config
        self.transport = transport
        self.queue = queue
        self.visibility = visibility
        self.recent_messages = recent_messages
        self.initial_messages = initial_messages
        self._owns_transport = owns_transport
        self._pollers: list[SessionPoller] = []
        self._destroyed = False

    @classmethod
    async def create(
        cls,
        config: ClientConfig | None = None,
        *,
        transport: SessionTransport | None = None,
        pacer: MessagePacer | None = None,
        visibility: VisibilityMonitor | None = None,
        history_backend: str = "memory",
        history_path: str | Path | None = None,
        **queue_options: Any,
    ) -> "RelayContext":
        """Build and connect a context.

        Args:
            config: Client configuration (default: read from environment)
            transport: Transport to use (default: HTTP transport from config);
                a supplied transport is not closed by destroy()
            pacer: Pacer for the message queue (default: InlinePacer)
            visibility: Visibility source (default: always visible)
            history_backend: "memory" or "sqlite"
            history_path: Database file for the sqlite backend
            **queue_options: Extra MessageQueue options (sleep, backoff_base, backoff_cap)

        Returns:
            A ready context
        """
        config = config or load_config()
        owns_transport = transport is None
        transport = transport or create_transport("http", config)

        store_options: dict[str, Any] = {}
        if history_backend == "sqlite" and history_path is not None:
            store_options["path"] = history_path
        stores: list[RecentMessageStore] = []
        try:
            recent = create_recent_message_store(history_backend, **store_options)
            stores.append(recent)
            initial = create_initial_message_cache(history_backend, **store_options)
            stores.append(initial)
            for store in stores:
                await store.connect()
        except Exception:
            logger.error("Failed to open %s message history", history_backend)
            for store in stores:
                await store.disconnect()
            if owns_transport:
                await transport.close()
            raise

        context = cls(
            config=config,
            transport=transport,
            queue=MessageQueue(transport, pacer=pacer, **queue_options),
            visibility=visibility or VisibilityMonitor(),
            recent_messages=recent,
            initial_messages=initial,
            owns_transport=owns_transport,
        )
        logger.debug("Relay context created for %s", config.base_url)
        return context

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    async def send(
        self,
        session_id: str,
        content: str,
        profile_id: str = DEFAULT_PROFILE,
        max_retries: int = 3,
    ) -> str:
        """Queue a message and remember its text.

        Returns:
            The queued message id
        """
        message_id = self.queue.add_message(session_id, content, max_retries)
        await self.remember(self.recent_messages, profile_id, content)
        return message_id

    async def remember(self, store: RecentMessageStore, profile_id: str, content: str) -> None:
        """Save text to a cache; failures are logged and never raised."""
        try:
            await store.save_message(profile_id, content)
        except Exception:
            logger.exception("Failed to remember message for profile %s", profile_id)

    def create_poller(self, session_id: str, interval: float = 2.0, **kwargs: Any) -> SessionPoller:
        """Create a session poller tied to this context's visibility source.

        The poller is disposed together with the context.
        """
        poller = SessionPoller(
            self.transport, session_id, interval=interval, visibility=self.visibility, **kwargs
        )
        self._pollers.append(poller)
        return poller

    async def destroy(self) -> None:
        """Stop pollers and the queue, then release connections."""
        if self._destroyed:
            return
        self._destroyed = True

        for poller in self._pollers:
            poller.dispose()
        self._pollers.clear()

        await self.queue.destroy()
        if self._owns_transport:
            await self.transport.close()
        await self.recent_messages.disconnect()
        await self.initial_messages.disconnect()
        logger.debug("Relay context destroyed")

    async def __aenter__(self) -> "RelayContext":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.destroy()
