"""CSS styles for the chat TUI.

Hides layout and styling decisions from the application logic.
"""

APP_CSS = """
$panel-border: tall $border;

Screen {
    layout: vertical;
    background: $background;
}

#chat-history {
    height: 1fr;
    background: $panel;
    border: round $primary 60%;
    border-title-color: $primary;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    scrollbar-gutter: stable;

    &:focus-within {
        border: round $primary-lighten-1;
    }
}

.chat-message {
    height: auto;
    margin: 1 0 0 0;
    padding: 0 1;
}

.user-message {
    border-left: thick $success;
}

.assistant-message {
    border-left: thick $accent;
}

.message-header {
    color: $text-muted;
    text-style: bold;
}

.message-content {
    height: auto;
}

#outbox {
    height: auto;
    max-height: 8;
    border: round $warning 60%;
    border-title-color: $warning;
    padding: 0 1;

    &.-empty {
        display: none;
    }
}

#bottom-bar {
    height: auto;
    dock: bottom;
}

#queue-stats {
    height: 1;
    padding: 0 1;
    background: $boost;
}

ChatInputBar {
    height: auto;
    max-height: 10;
}

#chat-input {
    width: 1fr;
    height: auto;
    min-height: 3;
    max-height: 8;
    border: $panel-border;

    &:focus {
        border: tall $primary;
    }
}

#send-btn {
    width: 10;
    margin: 0 0 0 1;
}
"""
