"""
Textual Application - Terminal chat client
=========================================

This module implements a Textual TUI that talks to the chatbot the
same way a website visitor does: rules are fetched once when the chat
opens, then every message is answered from that snapshot.
"""

from typing import List, Optional

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.widgets import Footer, Header, Input, Static

from core.config import Config, load_config
from core.database import Database, init_database
from core.exceptions import FetchError
from core.logging import get_logger, setup_logging
from rules.engine import Rule
from rules.store import RuleStore
from services.chat_session import ChatMessage, ChatSession, Sender, SessionState

logger = get_logger("tui.app")


class MessageBubble(Static):
    """A single chat message."""

    def __init__(self, message: ChatMessage, **kwargs):
        classes = "bubble user" if message.sender is Sender.USER else "bubble bot"
        prefix = "You" if message.sender is Sender.USER else "Bot"
        super().__init__(f"{prefix}: {message.text}", markup=False, classes=classes, **kwargs)


class ChatApp(App):
    """
    Site Chatbot terminal client.

    Opens a chat session against the local rule store and renders the
    conversation as message bubbles.
    """

    CSS = """
    Screen {
        background: $surface;
    }

    #chat-log {
        padding: 1 2;
    }

    .bubble {
        width: auto;
        max-width: 80%;
        padding: 0 1;
        margin: 0 0 1 0;
    }

    .bot {
        background: $panel;
        color: $text;
    }

    .user {
        background: $primary;
        color: $text;
        margin-left: 20%;
    }

    #status {
        height: 1;
        padding: 0 2;
        color: $text-muted;
    }

    #message-input {
        dock: bottom;
        margin: 0 1 1 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+n", "new_chat", "New chat"),
    ]

    def __init__(
        self,
        store: RuleStore,
        assistant_name: str = "Site Assistant",
        reply_delay: float = 0.5,
        dark: bool = True,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.store = store
        self.assistant_name = assistant_name
        self.reply_delay = reply_delay
        self.dark_theme = dark
        self.session = ChatSession()

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield VerticalScroll(id="chat-log")
        yield Static("", id="status")
        yield Input(placeholder="Type your message...", id="message-input", disabled=True)
        yield Footer()

    def on_mount(self) -> None:
        self.title = self.assistant_name
        self.theme = "textual-dark" if self.dark_theme else "textual-light"
        self.start_session()

    def start_session(self) -> None:
        """Begin a fresh session and fetch its rules in the background."""
        self.session = ChatSession()
        self.query_one("#chat-log", VerticalScroll).remove_children()
        self.query_one("#message-input", Input).disabled = True
        self.set_status("Loading knowledge base...")
        self.load_rules(self.session)

    @work(thread=True, exclusive=True)
    def load_rules(self, session: ChatSession) -> None:
        try:
            rules: Optional[List[Rule]] = self.store.fetch_rules()
        except FetchError as e:
            logger.error(f"Terminal chat could not load rules: {e}")
            rules = None
        self.call_from_thread(self.rules_loaded, session, rules)

    def rules_loaded(self, session: ChatSession, rules: Optional[List[Rule]]) -> None:
        # Results for a chat that was replaced or already loaded are dropped
        if session is not self.session or session.state is not SessionState.LOADING:
            return

        session.apply_rules(rules)
        for message in self.session.messages:
            self.show_message(message)

        input_widget = self.query_one("#message-input", Input)
        if self.session.state is SessionState.FETCH_FAILED:
            self.set_status("Knowledge base unavailable. Press Ctrl+N to retry.")
            return

        self.set_status(f"{len(self.session.rules)} rules loaded")
        input_widget.disabled = False
        input_widget.focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value.strip()
        if not text:
            return

        event.input.value = ""
        self.show_message(ChatMessage(sender=Sender.USER, text=text))
        session = self.session
        self.set_timer(self.reply_delay, lambda: self.reply(session, text))

    def reply(self, session: ChatSession, text: str) -> None:
        message = session.send(text)
        # Replies for a chat that was replaced meanwhile are dropped
        if session is self.session:
            self.show_message(message)

    def show_message(self, message: ChatMessage) -> None:
        log = self.query_one("#chat-log", VerticalScroll)
        log.mount(MessageBubble(message))
        log.scroll_end(animate=False)

    def set_status(self, text: str) -> None:
        self.query_one("#status", Static).update(text)

    def action_new_chat(self) -> None:
        self.start_session()


def run_tui(config: Optional[Config] = None, database: Optional[Database] = None) -> None:
    """
    Run the terminal chat.

    Args:
        config: Application configuration
        database: Database instance
    """
    if config is None:
        config = load_config()

    # The TUI owns the terminal, so log to files only
    setup_logging(
        log_dir=config.log_dir or None,
        log_level=config.log_level,
        console_output=False
    )

    if database is None:
        database = init_database(config.database_path, timeout=config.database.timeout)

    store = RuleStore(database, default_priority=config.chatbot.default_priority)

    app = ChatApp(
        store,
        assistant_name=config.chatbot.assistant_name,
        reply_delay=config.chatbot.reply_delay_ms / 1000,
        dark=config.ui.tui_theme != "light",
    )
    app.run()
