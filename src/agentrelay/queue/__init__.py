"""Outbound message queue with retry, backoff and background pacing."""

from .message_queue import MessageQueue, backoff_delay
from .models import MessageStatus, QueuedMessage, QueueStats, generate_message_id
from .pacer import InlinePacer, MessagePacer, PacerSignal, ThreadPacer

__all__ = [
    "MessageQueue",
    "backoff_delay",
    "MessageStatus",
    "QueuedMessage",
    "QueueStats",
    "generate_message_id",
    "MessagePacer",
    "InlinePacer",
    "ThreadPacer",
    "PacerSignal",
]
