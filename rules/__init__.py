"""
Rules Module - Keyword-based chatbot responses
==============================================

This module provides the rule-based chatbot core:
- Rule records and keyword normalization
- Priority-ordered substring matching with fixed fallbacks
- The SQLite-backed rule store used by chat sessions and the admin API
"""

from .engine import (
    Rule,
    match,
    find_match,
    normalize_keywords,
    DEFAULT_PRIORITY,
    EMPTY_INPUT_RESPONSE,
    NO_RULES_RESPONSE,
    NO_MATCH_RESPONSE,
)
from .store import RuleStore, DEFAULT_RULES

__all__ = [
    "Rule",
    "match",
    "find_match",
    "normalize_keywords",
    "DEFAULT_PRIORITY",
    "EMPTY_INPUT_RESPONSE",
    "NO_RULES_RESPONSE",
    "NO_MATCH_RESPONSE",
    "RuleStore",
    "DEFAULT_RULES",
]
