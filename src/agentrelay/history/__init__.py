"""Recent-message cache for agentrelay.

Remembers recently sent text per profile for quick reuse.
"""

from .base import DEFAULT_MAX_ENTRIES, INITIAL_MESSAGE_MAX_ENTRIES, RecentMessageStore
from .factory import create_initial_message_cache, create_recent_message_store
from .models import RecentMessage

__all__ = [
    "RecentMessageStore",
    "RecentMessage",
    "DEFAULT_MAX_ENTRIES",
    "INITIAL_MESSAGE_MAX_ENTRIES",
    "create_recent_message_store",
    "create_initial_message_cache",
]
