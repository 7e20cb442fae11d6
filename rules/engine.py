"""
Rules Engine - Keyword matching with priority ordering
======================================================

This module implements the core rules engine that matches visitor
messages against stored keyword rules and picks the response.

Matching is a pure function of the message and a rule snapshot:
- the message is trimmed and lower-cased
- rules are evaluated in ascending priority, ties keeping snapshot order
- a rule matches when any of its keywords is a substring of the message
- the first matching rule wins; otherwise a fixed fallback is returned
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union


DEFAULT_PRIORITY = 10

EMPTY_INPUT_RESPONSE = "Please type a question."
NO_RULES_RESPONSE = (
    "I don't have any specific rules loaded right now. "
    "You can ask general questions or contact support."
)
NO_MATCH_RESPONSE = (
    "I'm not sure how to answer that. Can you try rephrasing, "
    "or ask about our services, projects, or contact information?"
)


def normalize_keywords(keywords: Union[str, Iterable[str], None]) -> List[str]:
    """
    Normalize keywords the way the store persists them.

    Accepts a list of strings or a single comma-separated string.
    Each keyword is trimmed and lower-cased; empty entries are dropped.
    Duplicates are kept, they are harmless to matching.

    Args:
        keywords: Raw keywords

    Returns:
        List of normalized keywords (possibly empty)
    """
    if keywords is None:
        return []
    if isinstance(keywords, str):
        keywords = keywords.split(",")

    normalized = []
    for keyword in keywords:
        if not isinstance(keyword, str):
            continue
        keyword = keyword.strip().lower()
        if keyword:
            normalized.append(keyword)
    return normalized


@dataclass(frozen=True)
class Rule:
    """
    A single keyword-to-response rule.

    Rules are immutable snapshots of what the store holds; the engine
    never modifies them.

    Attributes:
        keywords (tuple): Lower-cased, trimmed, non-empty keywords
        response (str): Text returned verbatim when the rule matches
        priority (int): Evaluation order, lower values first
        id (int): Store identifier (None for unsaved rules)
        created_at (str): ISO timestamp of creation
        updated_at (str): ISO timestamp of last update
    """
    keywords: Tuple[str, ...]
    response: str
    priority: int = DEFAULT_PRIORITY
    id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def matches(self, normalized_input: str) -> bool:
        """
        Check whether any keyword occurs in an already normalized message.

        This is plain substring containment, so "art" matches "smart".
        """
        return any(keyword in normalized_input for keyword in self.keywords)

    def to_dict(self) -> dict:
        """Convert rule to dictionary."""
        return {
            "id": self.id,
            "keywords": list(self.keywords),
            "response": self.response,
            "priority": self.priority,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Rule":
        """
        Create rule from dictionary.

        Keywords are normalized; the caller is responsible for rejecting
        rules whose keywords or response end up empty.
        """
        priority = data.get("priority")
        return cls(
            keywords=tuple(normalize_keywords(data.get("keywords"))),
            response=str(data.get("response") or "").strip(),
            priority=DEFAULT_PRIORITY if priority is None else int(priority),
            id=data.get("id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


def normalize_input(message: Optional[str]) -> str:
    """Trim and lower-case a visitor message."""
    if not message:
        return ""
    return message.strip().lower()


def sort_rules(rules: Iterable[Rule]) -> List[Rule]:
    """Order rules for evaluation; ``sorted`` is stable, so ties keep input order."""
    return sorted(rules, key=lambda rule: rule.priority)


def find_match(message: Optional[str], rules: Sequence[Rule]) -> Optional[Rule]:
    """
    Find the rule that answers a message.

    Args:
        message: Raw visitor message
        rules: Rule snapshot in store order

    Returns:
        The first matching rule in priority order, or None
    """
    normalized = normalize_input(message)
    if not normalized:
        return None

    for rule in sort_rules(rules):
        if rule.matches(normalized):
            return rule
    return None


def match(message: Optional[str], rules: Sequence[Rule]) -> str:
    """
    Pick the chatbot reply for a message.

    Never raises: blank input, an empty rule set and unmatched input
    each produce their own fixed fallback.

    Args:
        message: Raw visitor message
        rules: Rule snapshot in store order

    Returns:
        Response text (never empty)

    Example:
        rules = [Rule(keywords=("pricing",), response="From $99/mo", priority=1)]
        match("What's the pricing?", rules)  # "From $99/mo"
    """
    if not normalize_input(message):
        return EMPTY_INPUT_RESPONSE

    if not rules:
        return NO_RULES_RESPONSE

    rule = find_match(message, rules)
    if rule is None:
        return NO_MATCH_RESPONSE
    return rule.response
