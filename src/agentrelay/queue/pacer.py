"""Pacing of queued messages.

This module hides the design decision of where and how delivery is paced.
A pacer only sequences messages and says when each one may be sent; it
never touches the network. It receives copied payloads and answers with
PacerSignal values posted back to the event loop.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from queue import Queue
from typing import Any, Literal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PacerSignal:
    """Notification from a pacer about one dispatch of a message."""

    kind: Literal["sending", "ready"]
    message_id: str
    generation: int


SignalHandler = Callable[[PacerSignal], None]


class MessagePacer(ABC):
    """Abstract pacer.

    Each submitted payload must produce a "sending" signal followed by a
    "ready" signal unless it is cancelled first. Signals are always delivered
    on the bound event loop.
    """

    def __init__(self) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_signal: SignalHandler | None = None

    def bind(self, loop: asyncio.AbstractEventLoop, on_signal: SignalHandler) -> None:
        """Attach the pacer to the loop that owns the queue.

        Args:
            loop: Event loop that receives signals
            on_signal: Called on the loop for every signal
        """
        self._loop = loop
        self._on_signal = on_signal

    @property
    def is_bound(self) -> bool:
        return self._loop is not None

    @abstractmethod
    def submit(self, payload: dict[str, Any]) -> None:
        """Queue a payload carrying at least ``id`` and ``generation``."""

    @abstractmethod
    def cancel(self, message_id: str) -> None:
        """Drop pacing work already submitted for a message."""

    @abstractmethod
    def close(self) -> None:
        """Stop pacing and release resources."""

    @property
    @abstractmethod
    def pacer_type(self) -> str:
        """Get the pacer type identifier."""

    def _require_bound(self) -> tuple[asyncio.AbstractEventLoop, SignalHandler]:
        if self._loop is None or self._on_signal is None:
            raise RuntimeError("Pacer is not bound to an event loop")
        return self._loop, self._on_signal


class InlinePacer(MessagePacer):
    """Same-loop pacer used when no background thread is wanted.

    Work is deferred with ``loop.call_soon`` so submitting never runs
    delivery inside the caller's frame. There is no delay between the
    two signals.
    """

    def __init__(self) -> None:
        super().__init__()
        self._handles: dict[str, list[asyncio.Handle]] = {}

    def submit(self, payload: dict[str, Any]) -> None:
        loop, _ = self._require_bound()
        message_id = payload["id"]
        generation = payload["generation"]
        handle = loop.call_soon(self._run, message_id, generation)
        self._handles.setdefault(message_id, []).append(handle)

    def _run(self, message_id: str, generation: int) -> None:
        handles = self._handles.get(message_id)
        if handles:
            handles.pop(0)
            if not handles:
                del self._handles[message_id]
        _, on_signal = self._require_bound()
        on_signal(PacerSignal("sending", message_id, generation))
        on_signal(PacerSignal("ready", message_id, generation))

    def cancel(self, message_id: str) -> None:
        for handle in self._handles.pop(message_id, []):
            handle.cancel()

    def close(self) -> None:
        for message_id in list(self._handles):
            self.cancel(message_id)

    @property
    def pacer_type(self) -> str:
        return "inline"


class ThreadPacer(MessagePacer):
    """Background-thread pacer.

    A worker thread takes payloads in submission order, signals "sending",
    waits `pace` seconds and signals "ready". The thread shares nothing with
    the loop except the payload queue and ``call_soon_threadsafe``.

    Example:
        pacer = ThreadPacer(pace=1.0)
        queue = MessageQueue(transport, pacer=pacer)
    """

    def __init__(self, pace: float = 1.0, name: str = "agentrelay-pacer") -> None:
        """Initialize the pacer; the thread starts on first submit.

        Args:
            pace: Seconds between the "sending" and "ready" signals
            name: Worker thread name
        """
        super().__init__()
        if pace < 0:
            raise ValueError("pace must be >= 0")
        self._pace = pace
        self._name = name
        self._inbox: Queue[tuple[int, dict[str, Any]] | None] = Queue()
        self._lock = threading.Lock()
        self._sequence = 0
        self._cancelled_at: dict[str, int] = {}
        # Payloads per message id that the worker has not finished with yet
        self._outstanding: dict[str, int] = {}
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def pace(self) -> float:
        return self._pace

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancellation_count(self) -> int:
        """Number of cancellation markers still waiting on queued payloads."""
        with self._lock:
            return len(self._cancelled_at)

    def submit(self, payload: dict[str, Any]) -> None:
        self._require_bound()
        if self._stopping.is_set():
            raise RuntimeError("Pacer is closed")
        with self._lock:
            self._sequence += 1
            sequence = self._sequence
            self._outstanding[payload["id"]] = self._outstanding.get(payload["id"], 0) + 1
        self._inbox.put((sequence, dict(payload)))
        self._ensure_thread()

    def cancel(self, message_id: str) -> None:
        with self._lock:
            self._sequence += 1
            if message_id in self._outstanding:
                self._cancelled_at[message_id] = self._sequence

    def close(self) -> None:
        self._stopping.set()
        self._inbox.put(None)
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(self._pace, 1.0) + 1.0)
        self._thread = None

    @property
    def pacer_type(self) -> str:
        return "thread"

    def _ensure_thread(self) -> None:
        if self._thread is None:
            self._thread = threading.Thread(target=self._work, name=self._name, daemon=True)
            self._thread.start()

    def _is_cancelled(self, message_id: str, sequence: int) -> bool:
        with self._lock:
            return self._cancelled_at.get(message_id, -1) > sequence

    def _finish(self, message_id: str) -> None:
        with self._lock:
            remaining = self._outstanding.get(message_id, 0) - 1
            if remaining > 0:
                self._outstanding[message_id] = remaining
                return
            self._outstanding.pop(message_id, None)
            self._cancelled_at.pop(message_id, None)

    def _post(self, signal: PacerSignal) -> bool:
        loop, on_signal = self._require_bound()
        try:
            loop.call_soon_threadsafe(on_signal, signal)
        except RuntimeError:
            logger.debug("Event loop closed; dropping %s signal for %s", signal.kind, signal.message_id)
            return False
        return True

    def _pace_one(self, sequence: int, payload: dict[str, Any]) -> bool:
        """Signal one payload; False means the worker must stop."""
        message_id = payload["id"]
        generation = payload["generation"]

        if self._is_cancelled(message_id, sequence):
            return True
        if not self._post(PacerSignal("sending", message_id, generation)):
            return False

        # Interrupted early by close()
        if self._stopping.wait(self._pace):
            return False

        if self._is_cancelled(message_id, sequence):
            return True
        return self._post(PacerSignal("ready", message_id, generation))

    def _work(self) -> None:
        logger.debug("Pacer thread started")
        while not self._stopping.is_set():
            item = self._inbox.get()
            if item is None:
                break
            sequence, payload = item
            try:
                if not self._pace_one(sequence, payload):
                    break
            finally:
                self._finish(payload["id"])
        logger.debug("Pacer thread stopped")
