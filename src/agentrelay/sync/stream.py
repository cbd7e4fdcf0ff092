"""Caller-owned reconnection for session event streams.

The transport opens one stream per subscription and never reconnects.
This module is the caller side of that contract: it subscribes again after
each stream-level failure, honouring SessionEventsOptions.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..transport.base import SessionTransport
from ..transport.errors import ProxyError
from ..transport.events import EventSubscription
from ..transport.models import AgentStatus, SessionEventsOptions, SessionMessage

logger = logging.getLogger(__name__)


async def follow_session_events(
    transport: SessionTransport,
    session_id: str,
    on_message: Callable[[SessionMessage], None],
    on_status: Callable[[AgentStatus], None] | None = None,
    on_error: Callable[[ProxyError], None] | None = None,
    options: SessionEventsOptions | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ProxyError | None:
    """Follow a session's events until reconnecting is no longer allowed.

    Every stream-level failure reaches on_error once. After a failure the
    stream is reopened after `options.reconnect_interval` seconds unless
    reconnecting is disabled or `max_reconnect_attempts` consecutive
    attempts have failed. A stream that delivered at least one event resets
    the attempt counter. Cancel the awaiting task to stop following.

    Args:
        transport: Transport used to subscribe
        session_id: Session to follow
        on_message: Called for every message event
        on_status: Called for every status event
        on_error: Called for every error, including stream failures
        options: Reconnect policy (default: SessionEventsOptions())
        sleep: Coroutine function used between attempts

    Returns:
        The error that ended following, or None if the stream was closed
        without one
    """
    options = options or SessionEventsOptions()
    attempts = 0
    received = False

    def handle_message(message: SessionMessage) -> None:
        nonlocal received
        received = True
        on_message(message)

    def handle_status(status: AgentStatus) -> None:
        nonlocal received
        received = True
        if on_status is not None:
            on_status(status)

    while True:
        received = False
        subscription: EventSubscription = transport.subscribe_to_session_events(
            session_id, handle_message, handle_status, on_error, options
        )
        try:
            error = await subscription.wait()
        finally:
            await subscription.close()

        if error is None:
            return None
        delay = subscription.reconnect_delay
        if delay is None:
            return error

        attempts = 1 if received else attempts + 1
        if options.max_reconnect_attempts is not None and attempts > options.max_reconnect_attempts:
            logger.warning(
                "Giving up on session %s events after %d reconnect attempts",
                session_id, options.max_reconnect_attempts
            )
            return error

        logger.info("Reconnecting to session %s events in %.1fs", session_id, delay)
        await sleep(delay)
