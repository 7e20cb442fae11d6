"""
Exception Definitions - Custom exceptions for Site Chatbot
==========================================================

This module defines all custom exceptions used throughout the application,
providing clear error handling and meaningful error messages.
"""


class ChatbotError(Exception):
    """
    Base exception for all Site Chatbot errors.

    All custom exceptions in this application inherit from this base class,
    allowing for easy catching of all application-specific errors.

    Attributes:
        message (str): Human-readable error description
        details (dict): Additional error details for debugging
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            details: Optional dictionary with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(ChatbotError):
    """
    Configuration-related errors.

    Raised when there are issues with:
    - Invalid configuration values
    - Environment variable issues
    - Configuration parsing errors
    """
    pass


class DatabaseError(ChatbotError):
    """
    Database operation errors.

    Raised when there are issues with:
    - Database connection failures
    - Query execution errors
    - Schema creation failures
    """
    pass


class FetchError(DatabaseError):
    """
    The rule set could not be retrieved from the store.

    Chat sessions that hit this error switch to the degraded
    "knowledge base unavailable" state instead of retrying.
    """
    pass


class RuleValidationError(ChatbotError):
    """
    A rule was rejected at the store boundary.

    Raised when keywords normalize to an empty list, the response
    is blank, or the priority is not an integer.
    """
    pass


class RuleNotFoundError(ChatbotError):
    """Raised when a rule id does not exist in the store."""

    def __init__(self, rule_id: int, details: dict = None):
        self.rule_id = rule_id
        super().__init__(f"Chatbot rule {rule_id} not found", details)


class SessionNotFoundError(ChatbotError):
    """Raised when a chat session id is unknown or has expired."""

    def __init__(self, session_id: str, details: dict = None):
        self.session_id = session_id
        super().__init__(f"Chat session {session_id} not found", details)

