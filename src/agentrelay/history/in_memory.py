"""In-memory recent-message store.

Simple dict-based storage. Data is lost when the application exits.
"""

from .base import DEFAULT_MAX_ENTRIES, RecentMessageStore
from .models import RecentMessage


class InMemoryRecentMessageStore(RecentMessageStore):
    """In-memory recent-message store (process lifetime only).

    Suitable for single-session use or testing.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        super().__init__(max_entries)
        self._entries: dict[str, list[RecentMessage]] = {}

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    async def save_message(self, profile_id: str, content: str) -> RecentMessage | None:
        if not content.strip():
            return None
        entry = RecentMessage(profile_id=profile_id, content=content)
        kept = [m for m in self._entries.get(profile_id, []) if m.content != content]
        self._entries[profile_id] = [entry, *kept][: self._max_entries]
        return entry

    async def get_recent_messages(self, profile_id: str) -> list[RecentMessage]:
        return [m.model_copy() for m in self._entries.get(profile_id, [])]

    async def clear(self, profile_id: str) -> None:
        self._entries.pop(profile_id, None)

    async def clear_all(self) -> None:
        self._entries.clear()

    @property
    def backend_type(self) -> str:
        return "memory"
