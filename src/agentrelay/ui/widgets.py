"""Custom Textual widgets for the chat TUI.

This module hides how the chat screen is drawn:
- Recall of recently sent text in the input bar
- Formatting of queue statistics and undelivered messages
- Incremental rendering of the conversation
"""

from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.message import Message
from textual.widgets import Button, Markdown, Static, TextArea

from ..queue.models import MessageStatus, QueuedMessage, QueueStats
from ..transport.models import AgentStatus, SessionMessage

STATUS_COLORS = {
    MessageStatus.PENDING: "yellow",
    MessageStatus.SENDING: "cyan",
    MessageStatus.SENT: "green",
    MessageStatus.FAILED: "red",
    MessageStatus.CANCELLED: "dim",
}


class InputRecall:
    """Walks back and forth through previously sent texts.

    Entries are kept oldest first. The position is None while the user is
    editing fresh text.
    """

    def __init__(self, entries: list[str] | None = None) -> None:
        self._entries: list[str] = []
        self._position: int | None = None
        for entry in entries or []:
            self.remember(entry)

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def remember(self, text: str) -> None:
        """Record a sent text as the newest entry."""
        if text in self._entries:
            self._entries.remove(text)
        self._entries.append(text)
        self._position = None

    def older(self) -> str | None:
        """Step to the previous entry; None when there is nothing to recall."""
        if not self._entries:
            return None
        if self._position is None:
            self._position = len(self._entries) - 1
        else:
            self._position = max(self._position - 1, 0)
        return self._entries[self._position]

    def newer(self) -> str | None:
        """Step to the next entry; "" after the newest, None if not recalling."""
        if self._position is None:
            return None
        self._position += 1
        if self._position >= len(self._entries):
            self._position = None
            return ""
        return self._entries[self._position]


class ChatInputBar(Horizontal):
    """Text input with a Send button and recall of recent messages.

    Up on the first line and Down on the last line walk through the recall
    list. Ctrl+J submits, since terminals do not report modifiers on Enter.
    """

    class Submitted(Message):
        """Posted with the text the user wants to send."""

        def __init__(self, value: str) -> None:
            super().__init__()
            self.value = value

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.recall = InputRecall()

    def compose(self):
        editor = TextArea(id="chat-input", show_line_numbers=False)
        editor.cursor_blink = False
        yield editor
        yield Button("Send", id="send-btn", variant="success").with_tooltip("Send (Ctrl+J)")

    @property
    def _editor(self) -> TextArea:
        return self.query_one("#chat-input", TextArea)

    def load_history(self, entries: list[str]) -> None:
        """Seed the recall list, oldest first."""
        self.recall = InputRecall(entries)

    def focus_input(self) -> None:
        self._editor.focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-btn":
            self._submit()

    def on_key(self, event) -> None:
        editor = self._editor
        row, column = editor.cursor_location
        lines = editor.text.split("\n")

        if event.key == "ctrl+j":
            self._submit()
        elif event.key == "up" and row == 0:
            self._show(self.recall.older())
        elif event.key == "down" and row == len(lines) - 1 and column == len(lines[-1]):
            self._show(self.recall.newer())
        else:
            return
        event.prevent_default()
        event.stop()

    def _show(self, text: str | None) -> None:
        if text is not None:
            self._editor.text = text

    def _submit(self) -> None:
        editor = self._editor
        value = editor.text.strip()
        if not value:
            return
        self.recall.remember(value)
        editor.text = ""
        self.post_message(self.Submitted(value))


class QueueStatsBar(Static):
    """One-line summary of the outbound queue and the agent."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._stats = QueueStats()
        self._agent: AgentStatus | None = None
        self._visible = True

    def on_mount(self) -> None:
        self._update_display()

    def update_stats(self, stats: QueueStats) -> None:
        self._stats = stats
        self._update_display()

    def update_agent(self, status: AgentStatus) -> None:
        self._agent = status
        self._update_display()

    def update_visibility(self, visible: bool) -> None:
        self._visible = visible
        self._update_display()

    def _update_display(self) -> None:
        stats = self._stats
        agent = self._agent.status if self._agent else "unknown"
        parts = [
            f"[bold yellow]Pending:[/] {stats.pending}",
            f"[bold cyan]Sending:[/] {stats.sending}",
            f"[bold green]Sent:[/] {stats.sent}",
            f"[bold red]Failed:[/] {stats.failed}",
            f"[bold magenta]Agent:[/] {agent}",
        ]
        if not self._visible:
            parts.append("[dim](paused)[/]")
        self.update("  ".join(parts))


class OutboxPanel(Static):
    """Messages that have not been delivered yet."""

    BORDER_TITLE = "Outbox"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._messages: dict[str, QueuedMessage] = {}

    def on_mount(self) -> None:
        self._update_display()

    def track(self, message: QueuedMessage) -> None:
        """Show the latest snapshot of a message; sent ones drop out."""
        if message.status == MessageStatus.SENT:
            self._messages.pop(message.id, None)
        else:
            self._messages[message.id] = message
        self._update_display()

    def forget(self, message_id: str) -> None:
        self._messages.pop(message_id, None)
        self._update_display()

    def latest_undelivered(self) -> QueuedMessage | None:
        """Newest message that is still pending or sending."""
        for message in reversed(list(self._messages.values())):
            if message.status in (MessageStatus.PENDING, MessageStatus.SENDING):
                return message
        return None

    def _update_display(self) -> None:
        self.set_class(not self._messages, "-empty")
        lines = []
        for message in self._messages.values():
            color = STATUS_COLORS[message.status]
            line = f"[{color}]{message.status.value:<9}[/] {message.content[:60]}"
            if message.retry_count:
                line += f" [dim](retry {message.retry_count}/{message.max_retries})[/]"
            if message.error:
                line += f" [red]{message.error}[/]"
            lines.append(line)
        self.update("\n".join(lines))


class ChatHistoryWidget(VerticalScroll):
    """Scrollable session conversation."""

    BORDER_TITLE = "Chat"
    BORDER_SUBTITLE = "Conversation history"
    ALLOW_MAXIMIZE = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._rendered: list[str] = []

    def set_messages(self, messages: list[SessionMessage]) -> None:
        """Render the session's messages, appending only new ones."""
        keys = [f"{m.id}:{len(m.content)}" for m in messages]
        if keys[: len(self._rendered)] != self._rendered:
            self.remove_children()
            self._rendered = []

        for message, key in zip(messages[len(self._rendered):], keys[len(self._rendered):]):
            self._render_message(message)
            self._rendered.append(key)

        self.border_subtitle = f"{len(messages)} messages"
        self.scroll_end(animate=False)

    def add_notice(self, text: str) -> None:
        self.mount(Static(f"[dim]{text}[/]", classes="chat-message"))

    def _render_message(self, message: SessionMessage) -> None:
        is_user = message.role == "user"
        header = f"{'>' if is_user else '<'} {message.role}"
        if message.timestamp:
            header += f" [{message.timestamp}]"

        border_class = "user-message" if is_user else "assistant-message"
        container = Vertical(classes=f"chat-message {border_class}")
        container.compose_add_child(Static(header, classes="message-header", markup=False))
        if is_user:
            container.compose_add_child(Static(message.content, classes="message-content", markup=False))
        else:
            container.compose_add_child(Markdown(message.content, classes="message-content"))
        self.mount(container)
