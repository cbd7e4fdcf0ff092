"""Visibility-aware scheduling for agentrelay.

Provides periodic callbacks that suspend while the host application is in
the background.
"""

from .interval import BackgroundAwareInterval, Clock, TimerHandle
from .visibility import VisibilityMonitor

__all__ = [
    "BackgroundAwareInterval",
    "Clock",
    "TimerHandle",
    "VisibilityMonitor",
]
