"""Factory for creating recent-message stores."""

from typing import Any

from .base import INITIAL_MESSAGE_MAX_ENTRIES, RecentMessageStore


def create_recent_message_store(
    backend: str = "memory",
    **kwargs: Any
) -> RecentMessageStore:
    """Create a recent-message store.

    Args:
        backend: Backend type ("memory" or "sqlite")
        **kwargs: Backend-specific configuration

    Returns:
        RecentMessageStore instance

    Raises:
        ValueError: If backend type is not supported
    """
    if backend == "memory":
        from .in_memory import InMemoryRecentMessageStore
        return InMemoryRecentMessageStore(**kwargs)

    elif backend == "sqlite":
        from .sqlite import SQLiteRecentMessageStore
        return SQLiteRecentMessageStore(**kwargs)

    raise ValueError(
        f"Unsupported history backend: {backend}. "
        f"Supported backends: memory, sqlite"
    )


def create_initial_message_cache(backend: str = "memory", **kwargs: Any) -> RecentMessageStore:
    """Create the small cache of texts used to open new sessions."""
    kwargs.setdefault("max_entries", INITIAL_MESSAGE_MAX_ENTRIES)
    if backend == "sqlite":
        kwargs.setdefault("namespace", "initial")
    return create_recent_message_store(backend, **kwargs)
