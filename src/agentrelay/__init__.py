"""
Agentrelay: resilient message delivery and sync for agent session services.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .config import ClientConfig, load_config
from .context import RelayContext
from .queue import MessageQueue, MessageStatus, QueuedMessage, QueueStats
from .scheduler import BackgroundAwareInterval, VisibilityMonitor
from .transport import ErrorCode, ProxyError, SessionTransport, create_transport

__all__ = [
    "ClientConfig",
    "load_config",
    "RelayContext",
    "MessageQueue",
    "MessageStatus",
    "QueuedMessage",
    "QueueStats",
    "BackgroundAwareInterval",
    "VisibilityMonitor",
    "ErrorCode",
    "ProxyError",
    "SessionTransport",
    "create_transport",
]
