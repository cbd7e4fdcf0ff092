"""Data models for the outbound message queue.

These models describe queued messages and derived statistics, independent
of how delivery is paced.
"""

import random
import string
import time
from enum import Enum

from pydantic import BaseModel, Field

_ID_ALPHABET = string.digits + string.ascii_lowercase


class MessageStatus(str, Enum):
    """Delivery state of a queued message."""

    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({MessageStatus.SENT, MessageStatus.FAILED, MessageStatus.CANCELLED})


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_message_id(timestamp: int | None = None) -> str:
    """Build an id of the form ``msg_<epoch-ms>_<9 base36 chars>``."""
    if timestamp is None:
        timestamp = now_ms()
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"msg_{timestamp}_{suffix}"


class QueuedMessage(BaseModel):
    """An outbound message and its delivery state.

    Instances handed out by the queue are snapshots; mutating them has no
    effect on delivery.
    """

    id: str = Field(description="Queue-assigned identifier")
    session_id: str = Field(description="Target session")
    content: str = Field(description="Message text")
    timestamp: int = Field(default_factory=now_ms, description="Creation time in epoch milliseconds")
    status: MessageStatus = Field(default=MessageStatus.PENDING)
    retry_count: int = Field(default=0, ge=0, description="Failures that led to a scheduled retry")
    max_retries: int = Field(default=3, ge=0, description="Automatic retries allowed")
    error: str | None = Field(default=None, description="Last failure message, set only when failed")

    @property
    def is_terminal(self) -> bool:
        """Whether the message has reached sent, failed or cancelled."""
        return self.status.is_terminal


class QueueStats(BaseModel):
    """Counts of queued messages by status.

    Cancelled messages count toward `total` only.
    """

    pending: int = 0
    sending: int = 0
    sent: int = 0
    failed: int = 0
    total: int = 0

    @classmethod
    def from_messages(cls, messages: list[QueuedMessage]) -> "QueueStats":
        """Derive stats from a list of messages."""
        stats = cls(total=len(messages))
        for message in messages:
            if message.status == MessageStatus.PENDING:
                stats.pending += 1
            elif message.status == MessageStatus.SENDING:
                stats.sending += 1
            elif message.status == MessageStatus.SENT:
                stats.sent += 1
            elif message.status == MessageStatus.FAILED:
                stats.failed += 1
        return stats
