"""
Core Module - Foundation components for Site Chatbot
====================================================

This module provides the foundational components including:
- Configuration management
- Database operations
- Logging setup
- Exception handling
"""

from .config import Config, load_config, save_config
from .database import Database, init_database
from .exceptions import (
    ChatbotError,
    ConfigError,
    DatabaseError,
    FetchError,
    RuleValidationError,
    RuleNotFoundError,
    SessionNotFoundError,
)
from .logging import setup_logging, get_logger

__all__ = [
    "Config",
    "load_config",
    "save_config",
    "Database",
    "init_database",
    "ChatbotError",
    "ConfigError",
    "DatabaseError",
    "FetchError",
    "RuleValidationError",
    "RuleNotFoundError",
    "SessionNotFoundError",
    "setup_logging",
    "get_logger",
]
