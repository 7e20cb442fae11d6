"""
Chat Sessions - Per-visitor conversation state
==============================================

A chat session fetches the rule set once when it starts, keeps that
snapshot for its whole lifetime and records the exchanged messages.
Replies are dispatched on an explicit :class:`SessionState`; the rule
engine is only consulted once rules have loaded.

:class:`SessionManager` keeps live sessions in memory for the web API,
expiring idle ones.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.exceptions import FetchError, SessionNotFoundError
from core.logging import get_logger
from rules.engine import Rule, match, EMPTY_INPUT_RESPONSE
from rules.store import RuleStore

logger = get_logger("services.chat_session")

GREETING = "Hello! How can I help you today?"
LOADING_RESPONSE = "I'm currently loading my responses, please wait a moment..."
FETCH_FAILED_RESPONSE = "Sorry, I couldn't load my knowledge base. Please try again later."


class SessionState(Enum):
    """Rule loading state of a chat session."""
    LOADING = "loading"
    LOADED_EMPTY = "loaded_empty"
    LOADED_NONEMPTY = "loaded_nonempty"
    FETCH_FAILED = "fetch_failed"


class Sender(Enum):
    """Author of a chat message."""
    USER = "user"
    BOT = "bot"


@dataclass
class ChatMessage:
    """
    One message in a chat session.

    Attributes:
        sender (Sender): Who wrote the message
        text (str): Message text
        id (str): Unique message id
        timestamp (datetime): When the message was added
    """
    sender: Sender
    text: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert message to dictionary."""
        return {
            "id": self.id,
            "sender": self.sender.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


class ChatSession:
    """
    A single visitor conversation.

    Example:
        session = ChatSession.start(store)
        reply = session.send("What's your pricing?")
        print(reply.text)
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.id = session_id or uuid.uuid4().hex
        self.state = SessionState.LOADING
        self.messages: List[ChatMessage] = []
        self._rules: Tuple[Rule, ...] = ()
        self._clock = clock
        self.last_activity = clock()

    @classmethod
    def start(cls, store: RuleStore, **kwargs) -> "ChatSession":
        """Create a session and load its rule snapshot from the store."""
        session = cls(**kwargs)
        session.load(store)
        return session

    @property
    def rules(self) -> Tuple[Rule, ...]:
        """The rule snapshot taken when the session loaded."""
        return self._rules

    def load(self, store: RuleStore) -> None:
        """
        Fetch the rule snapshot and post the opening message.

        A failed fetch leaves the session degraded for good; the visitor
        has to start a new session to try again.
        """
        try:
            rules = store.fetch_rules()
        except FetchError as e:
            logger.error(f"Session {self.id}: could not load chatbot rules: {e}")
            self.apply_rules(None)
            return
        self.apply_rules(rules)

    def apply_rules(self, rules: Optional[Sequence[Rule]]) -> None:
        """
        Finish loading with a fetched snapshot, or ``None`` if the fetch failed.

        Used directly by callers that fetch rules off the main thread.
        A session loads once; later calls are ignored.
        """
        if self.state is not SessionState.LOADING:
            logger.warning(f"Session {self.id}: rules already applied ({self.state.value}), ignoring")
            return

        if rules is None:
            self.state = SessionState.FETCH_FAILED
            self._add(Sender.BOT, FETCH_FAILED_RESPONSE)
            return

        self._rules = tuple(rules)
        self.state = (
            SessionState.LOADED_NONEMPTY if self._rules else SessionState.LOADED_EMPTY
        )
        self._add(Sender.BOT, GREETING)
        logger.debug(f"Session {self.id}: loaded {len(self._rules)} rules")

    def reply_to(self, text: str) -> str:
        """
        Compute the bot reply for a message without recording anything.
        """
        if self.state is SessionState.LOADING:
            return LOADING_RESPONSE
        if self.state is SessionState.FETCH_FAILED:
            return FETCH_FAILED_RESPONSE
        return match(text, self._rules)

    def send(self, text: str) -> ChatMessage:
        """
        Record a visitor message and the bot's reply.

        Blank submissions are not recorded; the reply to them is the
        "please type a question" prompt.

        Returns:
            The bot's reply message
        """
        self.touch()

        cleaned = (text or "").strip()
        if cleaned:
            self._add(Sender.USER, cleaned)
            reply = self.reply_to(cleaned)
        elif self.state in (SessionState.LOADED_EMPTY, SessionState.LOADED_NONEMPTY):
            reply = EMPTY_INPUT_RESPONSE
        else:
            reply = self.reply_to(cleaned)

        return self._add(Sender.BOT, reply)

    def touch(self) -> None:
        """Mark the session as active now."""
        self.last_activity = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self.last_activity

    def _add(self, sender: Sender, text: str) -> ChatMessage:
        message = ChatMessage(sender=sender, text=text)
        self.messages.append(message)
        return message

    def to_dict(self) -> dict:
        """Convert session to dictionary."""
        return {
            "id": self.id,
            "state": self.state.value,
            "rule_count": len(self._rules),
            "messages": [message.to_dict() for message in self.messages],
        }


class SessionManager:
    """
    Thread-safe in-memory registry of live chat sessions.

    Sessions idle longer than ``idle_timeout`` seconds are dropped; when
    ``max_sessions`` is reached the least recently active one is evicted.

    Attributes:
        store (RuleStore): Rule store new sessions load from
        max_sessions (int): Maximum number of live sessions
        idle_timeout (float): Seconds of inactivity before expiry
    """

    def __init__(
        self,
        store: RuleStore,
        max_sessions: int = 1000,
        idle_timeout: float = 1800,
        clock: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.max_sessions = max_sessions
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: Dict[str, ChatSession] = {}
        self.lock = threading.Lock()

    def create(self) -> ChatSession:
        """Start a new session; its rule fetch happens outside the lock."""
        session = ChatSession.start(self.store, clock=self._clock)

        with self.lock:
            self._evict_expired()
            while len(self._sessions) >= self.max_sessions:
                oldest = min(self._sessions.values(), key=lambda s: s.last_activity)
                del self._sessions[oldest.id]
                logger.info(f"Evicted chat session {oldest.id} (session limit reached)")
            self._sessions[session.id] = session

        logger.info(f"Started chat session {session.id} ({session.state.value})")
        return session

    def get(self, session_id: str) -> ChatSession:
        """
        Look up a live session.

        Raises:
            SessionNotFoundError: If the id is unknown or expired
        """
        with self.lock:
            session = self._sessions.get(session_id)
            if session is not None and session.idle_seconds() > self.idle_timeout:
                del self._sessions[session_id]
                logger.info(f"Chat session {session_id} expired")
                session = None

        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def discard(self, session_id: str) -> None:
        """
        End a session.

        Raises:
            SessionNotFoundError: If the id is unknown
        """
        with self.lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
        logger.info(f"Discarded chat session {session_id}")

    def evict_expired(self) -> int:
        """Drop idle sessions. Returns how many were removed."""
        with self.lock:
            return self._evict_expired()

    def _evict_expired(self) -> int:
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.idle_seconds() > self.idle_timeout
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.debug(f"Expired {len(expired)} idle chat sessions")
        return len(expired)

    def __len__(self) -> int:
        with self.lock:
            return len(self._sessions)
