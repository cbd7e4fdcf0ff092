"""Abstract base class for recent-message stores.

This module defines the interface for remembering recently sent text.
The abstraction hides:
- Persistence mechanism (in-memory, SQLite)
- Connection management
- Deduplication and trimming

Stores are a convenience cache and are not part of message delivery.
"""

from abc import ABC, abstractmethod
from typing import Any

from .models import RecentMessage

DEFAULT_MAX_ENTRIES = 10
INITIAL_MESSAGE_MAX_ENTRIES = 2


class RecentMessageStore(ABC):
    """Abstract recent-message store.

    Saving a text that is already stored moves it to the front. Each profile
    keeps at most `max_entries` texts, newest first. Blank texts are ignored.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store gracefully."""

    @abstractmethod
    async def save_message(self, profile_id: str, content: str) -> RecentMessage | None:
        """Remember a text for a profile.

        Returns:
            The stored entry, or None if the text was blank
        """

    @abstractmethod
    async def get_recent_messages(self, profile_id: str) -> list[RecentMessage]:
        """Get a profile's texts, newest first."""

    @abstractmethod
    async def clear(self, profile_id: str) -> None:
        """Forget every text of a profile."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Forget every text of every profile."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "RecentMessageStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
