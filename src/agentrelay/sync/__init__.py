"""Keeping a local view of a session in sync with the server."""

from .poller import SessionPoller
from .stream import follow_session_events

__all__ = ["SessionPoller", "follow_session_events"]
