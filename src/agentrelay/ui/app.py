"""Main Textual TUI application.

Orchestrates the chat widgets around a RelayContext: outgoing text goes
through the message queue, the conversation is refreshed by a session
poller, and terminal focus drives the poller's visibility.
"""

import asyncio
from pathlib import Path

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header

from ..config import ClientConfig, load_config
from ..context import DEFAULT_PROFILE, RelayContext
from ..queue.models import MessageStatus, QueuedMessage
from ..queue.pacer import MessagePacer, ThreadPacer
from ..sync.poller import SessionPoller
from ..transport.errors import ProxyError
from ..transport.models import AgentStatus
from .styles import APP_CSS
from .widgets import ChatHistoryWidget, ChatInputBar, OutboxPanel, QueueStatsBar


class RelayChatApp(App):
    """Textual chat client for one session."""

    CSS = APP_CSS
    TITLE = "Agentrelay"

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit"),
        Binding("ctrl+r", "retry_failed", "Retry Failed"),
        Binding("ctrl+x", "clear_completed", "Clear Sent"),
        Binding("escape", "cancel_last", "Cancel"),
        Binding("f5", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        session_id: str,
        config: ClientConfig | None = None,
        interval: float = 2.0,
        profile_id: str = DEFAULT_PROFILE,
        history_backend: str = "memory",
        history_path: str | Path | None = None,
        pacer: MessagePacer | None = None,
    ) -> None:
        super().__init__()
        self._session_id = session_id
        self._config = config
        self._interval = interval
        self._profile_id = profile_id
        self._history_backend = history_backend
        self._history_path = history_path
        self._pacer = pacer
        self._context: RelayContext | None = None
        self._poller: SessionPoller | None = None

    @property
    def context(self) -> RelayContext | None:
        return self._context

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield ChatHistoryWidget(id="chat-history")
        with Vertical(id="bottom-bar"):
            yield OutboxPanel(id="outbox")
            yield QueueStatsBar(id="queue-stats")
            yield ChatInputBar(id="chat-input-bar")
        yield Footer()

    async def on_mount(self) -> None:
        """Wire the context, queue and poller to the widgets."""
        self._context = await RelayContext.create(
            self._config or load_config(),
            pacer=self._pacer or ThreadPacer(),
            history_backend=self._history_backend,
            history_path=self._history_path,
        )
        self.sub_title = f"{self._session_id} | {self._context.config.base_url}"

        chat = self.query_one("#chat-history", ChatHistoryWidget)
        stats_bar = self.query_one("#queue-stats", QueueStatsBar)

        queue = self._context.queue
        queue.on_message_update(self._on_queue_update)
        queue.on_stats_update(stats_bar.update_stats)
        self._context.visibility.subscribe(stats_bar.update_visibility)

        self._poller = self._context.create_poller(self._session_id, self._interval)
        self._poller.on_messages(chat.set_messages)
        self._poller.on_status(self._on_agent_status)
        self._poller.on_error(self._on_poll_error)
        self._poller.start()

        recent = await self._context.recent_messages.get_recent_messages(self._profile_id)
        input_bar = self.query_one("#chat-input-bar", ChatInputBar)
        input_bar.load_history([entry.content for entry in reversed(recent)])
        input_bar.focus_input()

    async def on_unmount(self) -> None:
        """Release the context when the app exits."""
        if self._context is not None:
            await self._context.destroy()
            self._context = None

    def on_app_focus(self, event: events.AppFocus) -> None:
        if self._context is not None:
            self._context.visibility.show()

    def on_app_blur(self, event: events.AppBlur) -> None:
        if self._context is not None:
            self._context.visibility.hide()

    async def on_chat_input_bar_submitted(self, event: ChatInputBar.Submitted) -> None:
        """Queue the submitted text for delivery."""
        if self._context is None:
            return
        await self._context.send(self._session_id, event.value, profile_id=self._profile_id)

    def _on_queue_update(self, message: QueuedMessage) -> None:
        self.query_one("#outbox", OutboxPanel).track(message)
        if message.status == MessageStatus.SENT:
            self.action_refresh()
        elif message.status == MessageStatus.FAILED:
            self.notify(f"Message failed: {message.error}", severity="error")

    def _on_agent_status(self, status: AgentStatus) -> None:
        self.query_one("#queue-stats", QueueStatsBar).update_agent(status)

    def _on_poll_error(self, error: ProxyError) -> None:
        self.notify(f"Refresh failed: {error.message}", severity="warning")

    def action_refresh(self) -> None:
        """Poll the session now."""
        if self._poller is not None:
            self.run_worker(self._poller.poll_once(), group="poll")

    def action_retry_failed(self) -> None:
        if self._context is None:
            return
        count = self._context.queue.retry_all_failed()
        self.notify(f"Retrying {count} message(s)" if count else "Nothing to retry")

    def action_clear_completed(self) -> None:
        if self._context is None:
            return
        sent = [m.id for m in self._context.queue.get_all_messages() if m.status == MessageStatus.SENT]
        self._context.queue.clear_completed()
        outbox = self.query_one("#outbox", OutboxPanel)
        for message_id in sent:
            outbox.forget(message_id)

    def action_cancel_last(self) -> None:
        """Cancel the newest message that has not been delivered."""
        if self._context is None:
            return
        message = self.query_one("#outbox", OutboxPanel).latest_undelivered()
        if message is not None and self._context.queue.cancel_message(message.id):
            self.notify("Message cancelled")


def run_chat(
    session_id: str,
    interval: float = 2.0,
    profile_id: str = DEFAULT_PROFILE,
    config: ClientConfig | None = None,
    history_backend: str = "sqlite",
    history_path: str | Path | None = None,
    pacer: MessagePacer | None = None,
) -> None:
    """Run the chat TUI until the user quits.

    Args:
        session_id: Session to chat with
        interval: Seconds between refreshes while the terminal is focused
        profile_id: Profile used for the recent-message history
        config: Client configuration (default: read from environment)
        history_backend: Recent-message cache backend ("memory" or "sqlite")
        history_path: Database file for the sqlite backend
        pacer: Pacer for the message queue (default: ThreadPacer)
    """
    if history_backend == "sqlite" and history_path is None:
        history_path = Path.home() / ".agentrelay" / "history.db"
    app = RelayChatApp(
        session_id,
        config=config,
        interval=interval,
        profile_id=profile_id,
        history_backend=history_backend,
        history_path=history_path,
        pacer=pacer,
    )
    try:
        app.run()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
