"""
Services Module - Chat services for Site Chatbot
================================================

This module provides the conversation layer:
- Chat sessions with explicit rule-loading states
- An in-memory session manager for the web API
"""

from .chat_session import (
    ChatSession,
    ChatMessage,
    SessionManager,
    SessionState,
    Sender,
)

__all__ = [
    "ChatSession",
    "ChatMessage",
    "SessionManager",
    "SessionState",
    "Sender",
]
