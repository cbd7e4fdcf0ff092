"""Outbound message queue.

This module hides the design decision of how outbound messages move from
"accepted" to "delivered". It owns every message's state machine:

    pending -> sending -> sent
    sending -> pending   (retryable failure, after backoff)
    sending -> failed    (retries exhausted)
    pending|sending|failed -> cancelled
    failed|cancelled|sent -> pending   (manual retry)

Pacing is delegated to a MessagePacer; the network call always runs on the
event loop through a SessionTransport. Callers only ever see snapshots.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..transport.base import SessionTransport
from ..transport.errors import ProxyError
from ..transport.models import SendSessionMessageRequest
from .models import MessageStatus, QueuedMessage, QueueStats, generate_message_id, now_ms
from .pacer import InlinePacer, MessagePacer, PacerSignal

logger = logging.getLogger(__name__)

MessageListener = Callable[[QueuedMessage], None]
StatsListener = Callable[[QueueStats], None]
Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_CAP = 10.0


def backoff_delay(
    retry_count: int,
    base: float = DEFAULT_BACKOFF_BASE,
    cap: float = DEFAULT_BACKOFF_CAP
) -> float:
    """Delay in seconds before re-dispatching after the given retry.

    Args:
        retry_count: Retry number, starting at 1

    Returns:
        ``min(base * 2 ** (retry_count - 1), cap)``
    """
    if retry_count < 1:
        raise ValueError("retry_count must be >= 1")
    return min(base * 2 ** (retry_count - 1), cap)


class MessageQueue:
    """Per-message delivery state machine with retry and backoff.

    Every dispatch of a message gets a new generation number. Pacer signals
    and transport results carry the generation they belong to and are
    dropped when it is stale, so one message never has two deliveries in
    flight and a cancelled message is never resurrected by a late result.

    Must be used from a running event loop; the loop is captured on first
    use.

    Example:
        queue = MessageQueue(transport)
        message_id = queue.add_message("session-1", "hello")
        message = await queue.wait_for(message_id)
    """

    def __init__(
        self,
        transport: SessionTransport,
        pacer: MessagePacer | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_cap: float = DEFAULT_BACKOFF_CAP,
    ) -> None:
        """Initialize the queue.

        Args:
            transport: Transport used for delivery
            pacer: Pacer for sequencing (default: InlinePacer)
            sleep: Coroutine function used for backoff waits
            backoff_base: First backoff delay in seconds
            backoff_cap: Upper bound for backoff delays in seconds
        """
        self._transport = transport
        self._pacer = pacer or InlinePacer()
        self._sleep = sleep
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap

        self._messages: dict[str, QueuedMessage] = {}
        self._generations: dict[str, int] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._waiters: dict[str, list[asyncio.Future[QueuedMessage]]] = {}
        self._message_listeners: list[MessageListener] = []
        self._stats_listeners: list[StatsListener] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._destroyed = False

    @property
    def pacer(self) -> MessagePacer:
        return self._pacer

    @property
    def transport(self) -> SessionTransport:
        return self._transport

    # Commands

    def add_message(self, session_id: str, content: str, max_retries: int = 3) -> str:
        """Accept a message for delivery without waiting for it.

        Args:
            session_id: Target session
            content: Message text
            max_retries: Automatic retries allowed after the first attempt

        Returns:
            The new message id
        """
        self._ensure_bound()
        timestamp = now_ms()
        message = QueuedMessage(
            id=generate_message_id(timestamp),
            session_id=session_id,
            content=content,
            timestamp=timestamp,
            max_retries=max_retries,
        )
        self._messages[message.id] = message
        logger.debug("Queued %s for session %s", message.id, session_id)
        self._notify(message)
        self._dispatch(message.id)
        return message.id

    def retry_message(self, message_id: str) -> bool:
        """Reset a message and queue it again.

        Returns:
            False if the message does not exist or is currently sending
        """
        message = self._messages.get(message_id)
        if message is None or message.status == MessageStatus.SENDING:
            return False

        self._ensure_bound()
        self._abandon(message_id)
        message.status = MessageStatus.PENDING
        message.retry_count = 0
        message.error = None
        logger.info("Manual retry of %s", message_id)
        self._notify(message)
        self._dispatch(message_id)
        return True

    def retry_all_failed(self) -> int:
        """Retry every failed message.

        Returns:
            Number of messages retried
        """
        failed = [m.id for m in self._messages.values() if m.status == MessageStatus.FAILED]
        return sum(1 for message_id in failed if self.retry_message(message_id))

    def cancel_message(self, message_id: str) -> bool:
        """Cancel a message, aborting any request in flight.

        Returns:
            False if the message does not exist or was already sent
        """
        message = self._messages.get(message_id)
        if message is None or message.status == MessageStatus.SENT:
            return False

        self._abandon(message_id)
        message.status = MessageStatus.CANCELLED
        message.error = None
        logger.info("Cancelled %s", message_id)
        self._notify(message)
        return True

    def clear_completed(self) -> int:
        """Remove sent messages.

        Returns:
            Number of messages removed
        """
        sent = [m.id for m in self._messages.values() if m.status == MessageStatus.SENT]
        for message_id in sent:
            self._forget(message_id)
        self._notify_stats()
        return len(sent)

    def clear_all(self) -> None:
        """Remove every message and stop any work still in progress."""
        for message_id in list(self._messages):
            self._abandon(message_id)
            self._forget(message_id)
        self._notify_stats()

    # Queries

    def get_message(self, message_id: str) -> QueuedMessage | None:
        """Get a snapshot of one message."""
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message is not None else None

    def get_all_messages(self) -> list[QueuedMessage]:
        """Get snapshots of all messages, newest first."""
        ordered = sorted(
            reversed(list(self._messages.values())),
            key=lambda m: m.timestamp,
            reverse=True,
        )
        return [m.model_copy(deep=True) for m in ordered]

    def get_messages_by_session(self, session_id: str) -> list[QueuedMessage]:
        """Get snapshots of one session's messages, newest first."""
        return [m for m in self.get_all_messages() if m.session_id == session_id]

    def get_stats(self) -> QueueStats:
        """Count messages by status."""
        return QueueStats.from_messages(list(self._messages.values()))

    async def wait_for(self, message_id: str, timeout: float | None = None) -> QueuedMessage:
        """Wait until a message is sent, failed or cancelled.

        Args:
            message_id: Message to wait for
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            Snapshot of the message in its terminal state

        Raises:
            KeyError: If the message does not exist or is removed meanwhile
            asyncio.TimeoutError: If the timeout expires
        """
        message = self._messages.get(message_id)
        if message is None:
            raise KeyError(message_id)
        if message.is_terminal:
            return message.model_copy(deep=True)

        future: asyncio.Future[QueuedMessage] = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(message_id, []).append(future)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            waiters = self._waiters.get(message_id)
            if waiters and future in waiters:
                waiters.remove(future)
                if not waiters:
                    del self._waiters[message_id]

    # Subscriptions

    def on_message_update(self, listener: MessageListener) -> Callable[[], None]:
        """Subscribe to message snapshots on every transition.

        Returns:
            A callable that removes the listener
        """
        self._message_listeners.append(listener)
        return lambda: self._remove(self._message_listeners, listener)

    def on_stats_update(self, listener: StatsListener) -> Callable[[], None]:
        """Subscribe to fresh stats on every transition.

        Returns:
            A callable that removes the listener
        """
        self._stats_listeners.append(listener)
        return lambda: self._remove(self._stats_listeners, listener)

    async def destroy(self) -> None:
        """Stop all work, close the pacer and drop every message."""
        if self._destroyed:
            return
        self._destroyed = True
        self._message_listeners.clear()
        self._stats_listeners.clear()

        tasks = list(self._tasks.values())
        for message_id in list(self._messages):
            self._abandon(message_id)
            self._forget(message_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pacer.close()
        logger.debug("Message queue destroyed")

    # Internals

    @staticmethod
    def _remove(listeners: list[Any], listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def _ensure_bound(self) -> None:
        if self._destroyed:
            raise RuntimeError("Message queue has been destroyed")
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
            self._pacer.bind(self._loop, self._on_signal)

    def _dispatch(self, message_id: str) -> None:
        generation = self._generations.get(message_id, 0) + 1
        self._generations[message_id] = generation
        payload = self._messages[message_id].model_dump(mode="json")
        payload["generation"] = generation
        self._pacer.submit(payload)

    def _abandon(self, message_id: str) -> None:
        """Invalidate outstanding signals, backoff and delivery for a message."""
        self._generations[message_id] = self._generations.get(message_id, 0) + 1
        self._pacer.cancel(message_id)
        task = self._tasks.pop(message_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _forget(self, message_id: str) -> None:
        self._messages.pop(message_id, None)
        self._generations.pop(message_id, None)
        for future in self._waiters.pop(message_id, []):
            if not future.done():
                future.set_exception(KeyError(message_id))

    def _is_current(self, message_id: str, generation: int) -> bool:
        return message_id in self._messages and self._generations.get(message_id) == generation

    def _track(self, message_id: str, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks[message_id] = task

        def _done(finished: asyncio.Task[None]) -> None:
            if self._tasks.get(message_id) is finished:
                del self._tasks[message_id]
            if not finished.cancelled() and finished.exception() is not None:
                logger.error("Queue task for %s failed", message_id, exc_info=finished.exception())

        task.add_done_callback(_done)

    def _on_signal(self, signal: PacerSignal) -> None:
        if not self._is_current(signal.message_id, signal.generation):
            logger.debug("Ignoring stale %s signal for %s", signal.kind, signal.message_id)
            return

        message = self._messages[signal.message_id]
        if signal.kind == "sending" and message.status == MessageStatus.PENDING:
            message.status = MessageStatus.SENDING
            self._notify(message)
        elif signal.kind == "ready" and message.status == MessageStatus.SENDING:
            self._track(message.id, self._deliver(message.id, signal.generation))

    async def _deliver(self, message_id: str, generation: int) -> None:
        message = self._messages[message_id]
        request = SendSessionMessageRequest(content=message.content, type="user")
        try:
            await self._transport.send_session_message(message.session_id, request)
        except ProxyError as e:
            self._on_failure(message_id, generation, e.message)
        except Exception as e:
            logger.exception("Unexpected error delivering %s", message_id)
            self._on_failure(message_id, generation, str(e) or type(e).__name__)
        else:
            self._on_success(message_id, generation)

    def _on_success(self, message_id: str, generation: int) -> None:
        if not self._is_current(message_id, generation):
            logger.debug("Ignoring late success for %s", message_id)
            return
        message = self._messages[message_id]
        message.status = MessageStatus.SENT
        message.error = None
        logger.debug("Delivered %s", message_id)
        self._notify(message)

    def _on_failure(self, message_id: str, generation: int, error: str) -> None:
        if not self._is_current(message_id, generation):
            logger.debug("Ignoring late failure for %s", message_id)
            return

        message = self._messages[message_id]
        if message.retry_count < message.max_retries:
            message.retry_count += 1
            message.status = MessageStatus.PENDING
            delay = backoff_delay(message.retry_count, self._backoff_base, self._backoff_cap)
            logger.info(
                "Delivery of %s failed (%s); retry %d/%d in %.1fs",
                message_id, error, message.retry_count, message.max_retries, delay
            )
            self._notify(message)
            # Replaces the finishing delivery task as the message's tracked task
            self._track(message_id, self._retry_after(message_id, generation, delay))
        else:
            message.status = MessageStatus.FAILED
            message.error = error
            logger.warning("Delivery of %s failed permanently: %s", message_id, error)
            self._notify(message)

    async def _retry_after(self, message_id: str, generation: int, delay: float) -> None:
        await self._sleep(delay)
        if self._is_current(message_id, generation):
            self._dispatch(message_id)

    def _notify(self, message: QueuedMessage) -> None:
        snapshot = message.model_copy(deep=True)
        for listener in list(self._message_listeners):
            try:
                listener(snapshot.model_copy(deep=True))
            except Exception:
                logger.exception("Message listener failed")
        self._notify_stats()

        if message.is_terminal:
            for future in self._waiters.pop(message.id, []):
                if not future.done():
                    future.set_result(snapshot.model_copy(deep=True))

    def _notify_stats(self) -> None:
        if not self._stats_listeners:
            return
        stats = self.get_stats()
        for listener in list(self._stats_listeners):
            try:
                listener(stats.model_copy())
            except Exception:
                logger.exception("Stats listener failed")
