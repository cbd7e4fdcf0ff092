"""Terminal UI module for agentrelay.

Provides a Textual-based chat client for one session.

Module structure (Parnas principle - each module hides a design decision):
- widgets.py: Custom widgets (input recall, queue stats, outbox, conversation)
- styles.py: CSS styling (layout decisions)
- app.py: Application orchestration (user interaction flow)
"""

from .app import RelayChatApp, run_chat
from .widgets import ChatHistoryWidget, ChatInputBar, InputRecall, OutboxPanel, QueueStatsBar

__all__ = [
    "ChatHistoryWidget",
    "ChatInputBar",
    "InputRecall",
    "OutboxPanel",
    "QueueStatsBar",
    "RelayChatApp",
    "run_chat",
]
