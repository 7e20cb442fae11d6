"""
Rule Store - Persistent chatbot rules
=====================================

This module owns the chatbot rules held in the database:
- CRUD for administrators
- Write-time keyword normalization and validation
- The read contract chat sessions depend on (:meth:`RuleStore.fetch_rules`)
- YAML import/export for seeding and backups
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from core.database import Database
from core.exceptions import (
    ChatbotError,
    DatabaseError,
    FetchError,
    RuleNotFoundError,
    RuleValidationError,
)
from core.logging import get_logger
from .engine import DEFAULT_PRIORITY, Rule, normalize_keywords

logger = get_logger("rules.store")

Keywords = Union[str, Iterable[str]]

MIN_PRIORITY = 1
MAX_PRIORITY = 100


DEFAULT_RULES = [
    {
        "keywords": ["hello", "hi there", "hey", "good morning", "good afternoon"],
        "response": "Hello! Ask me about our services, projects, team or how to get in touch.",
        "priority": 50,
    },
    {
        "keywords": ["price", "pricing", "cost", "quote", "budget"],
        "response": (
            "Every project is quoted individually. Share a few details through the "
            "contact page and we'll send you an estimate within two business days."
        ),
        "priority": 5,
    },
    {
        "keywords": ["contact", "email", "phone", "reach", "get in touch"],
        "response": "You can reach us through the contact page, or email info@example.com.",
        "priority": 10,
    },
    {
        "keywords": ["service", "offer", "web development", "mobile app", "design"],
        "response": (
            "We build websites, web applications and mobile apps, and offer UI/UX "
            "design and cloud consulting. See the Services page for details."
        ),
        "priority": 10,
    },
    {
        "keywords": ["project", "portfolio", "case study", "previous work"],
        "response": "Take a look at the Projects page for a selection of our recent work.",
        "priority": 15,
    },
    {
        "keywords": ["team", "who are you", "about"],
        "response": "Meet the people behind our work on the Team and About pages.",
        "priority": 20,
    },
    {
        "keywords": ["thank", "thanks", "appreciate"],
        "response": "You're welcome! Is there anything else I can help with?",
        "priority": 90,
    },
]


def _row_to_rule(row: Dict[str, Any]) -> Rule:
    """
    Convert a database row into a Rule.

    Rows written by hand or by older releases may carry malformed
    values. Those are normalized instead of failing the whole fetch:
    bad keyword JSON or a blank response leaves the rule with no
    keywords (it simply never matches), and a non-numeric priority
    falls back to the default.
    """
    rule_id = row.get("id")

    try:
        keywords = json.loads(row.get("keywords") or "[]")
    except (TypeError, ValueError):
        keywords = None

    if not isinstance(keywords, list):
        logger.warning(f"Rule {rule_id} has malformed keywords, ignoring them")
        keywords = []

    response = row.get("response")
    if not isinstance(response, str) or not response.strip():
        logger.warning(f"Rule {rule_id} has no response text, it will never match")
        response = ""
        keywords = []

    priority = row.get("priority")
    if priority is None:
        priority = DEFAULT_PRIORITY
    else:
        try:
            priority = int(priority)
        except (TypeError, ValueError):
            logger.warning(f"Rule {rule_id} has invalid priority {priority!r}, using {DEFAULT_PRIORITY}")
            priority = DEFAULT_PRIORITY

    return Rule(
        keywords=tuple(normalize_keywords(keywords)),
        response=response,
        priority=priority,
        id=rule_id,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at") or row.get("created_at"),
    )


def _validate_keywords(keywords: Keywords) -> List[str]:
    if not isinstance(keywords, (str, list, tuple, set, frozenset)):
        raise RuleValidationError("Keywords must be a list or a comma-separated string")
    normalized = normalize_keywords(keywords)
    if not normalized:
        raise RuleValidationError("At least one non-empty keyword is required")
    return normalized


def _validate_response(response: Any) -> str:
    if not isinstance(response, str) or not response.strip():
        raise RuleValidationError("Response text is required")
    return response.strip()


def _validate_priority(priority: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise RuleValidationError(f"Priority must be an integer, got {priority!r}")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise RuleValidationError(
            f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {priority}"
        )
    return priority


class RuleStore:
    """
    Chatbot rule persistence backed by :class:`core.database.Database`.

    Example:
        store = RuleStore(init_database("rules.db"))
        store.add_rule("pricing, cost", "Our pricing starts at $99/mo", priority=1)
        rules = store.fetch_rules()
    """

    def __init__(self, database: Database, default_priority: int = DEFAULT_PRIORITY):
        """
        Initialize the rule store.

        Args:
            database: Database holding the chatbot_rules table
            default_priority: Priority for rules created without one
        """
        self.database = database
        self.default_priority = default_priority

    # === Read side ===

    def fetch_rules(self) -> List[Rule]:
        """
        Load the full rule set for a chat session.

        Rules come back in creation order, oldest first; the matching
        engine applies the priority ordering.

        Raises:
            FetchError: If the backing store cannot be read
        """
        try:
            rows = self.database.list_rule_rows()
        except DatabaseError as e:
            logger.error(f"Failed to fetch chatbot rules: {e}")
            raise FetchError("Failed to fetch chatbot rules", {"cause": e.message})
        return [_row_to_rule(row) for row in rows]

    def list_rules(self) -> List[Rule]:
        """All rules sorted for display: priority, then creation order."""
        return [_row_to_rule(row) for row in self.database.list_rule_rows(by_priority=True)]

    def get_rule(self, rule_id: int) -> Optional[Rule]:
        """Get a rule by id, or None."""
        row = self.database.get_rule_row(rule_id)
        return _row_to_rule(row) if row else None

    def count_rules(self) -> int:
        """Number of stored rules."""
        return self.database.count_rules()

    # === Write side ===

    def add_rule(
        self,
        keywords: Keywords,
        response: str,
        priority: Optional[int] = None
    ) -> Rule:
        """
        Create a rule.

        Args:
            keywords: Keyword list or comma-separated string
            response: Response text
            priority: Evaluation priority, lower first

        Returns:
            The stored rule

        Raises:
            RuleValidationError: If keywords or response are empty
        """
        normalized = _validate_keywords(keywords)
        text = _validate_response(response)
        priority = self.default_priority if priority is None else _validate_priority(priority)

        rule = _row_to_rule(self.database.insert_rule(normalized, text, priority))
        logger.info(f"Added chatbot rule {rule.id} for keywords: {', '.join(rule.keywords)}")
        return rule

    def update_rule(
        self,
        rule_id: int,
        keywords: Optional[Keywords] = None,
        response: Optional[str] = None,
        priority: Optional[int] = None
    ) -> Rule:
        """
        Update fields of an existing rule. Fields left as None keep their value.

        Raises:
            RuleNotFoundError: If the rule does not exist
            RuleValidationError: If a supplied field is invalid
        """
        fields: Dict[str, Any] = {}
        if keywords is not None:
            fields["keywords"] = _validate_keywords(keywords)
        if response is not None:
            fields["response"] = _validate_response(response)
        if priority is not None:
            fields["priority"] = _validate_priority(priority)

        if not fields:
            rule = self.get_rule(rule_id)
            if rule is None:
                raise RuleNotFoundError(rule_id)
            return rule

        row = self.database.update_rule_row(rule_id, **fields)
        if row is None:
            raise RuleNotFoundError(rule_id)

        logger.info(f"Updated chatbot rule {rule_id}: {', '.join(sorted(fields))}")
        return _row_to_rule(row)

    def delete_rule(self, rule_id: int) -> None:
        """
        Delete a rule.

        Raises:
            RuleNotFoundError: If the rule does not exist
        """
        if not self.database.delete_rule_row(rule_id):
            raise RuleNotFoundError(rule_id)
        logger.info(f"Deleted chatbot rule {rule_id}")

    # === Import / export ===

    def import_rules(self, path: Union[str, Path]) -> int:
        """
        Add rules from a YAML file of the form ``{"rules": [...]}``.

        Entries that fail validation are skipped with a warning.

        Returns:
            Number of rules added

        Raises:
            ChatbotError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ChatbotError(f"Failed to load rules file: {e}", {"path": str(path)})

        entries = data.get("rules", []) if isinstance(data, dict) else []
        if not isinstance(entries, list):
            raise ChatbotError("'rules' must be a list", {"path": str(path)})

        return self._add_entries(entries, source=str(path))

    def export_rules(self, path: Union[str, Path]) -> int:
        """
        Write all rules to a YAML file that :meth:`import_rules` can read.

        Returns:
            Number of rules written
        """
        path = Path(path)
        rules = self.list_rules()
        data = {
            "rules": [
                {
                    "keywords": list(rule.keywords),
                    "response": rule.response,
                    "priority": rule.priority,
                }
                for rule in rules
            ]
        }

        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        except OSError as e:
            raise ChatbotError(f"Failed to write rules file: {e}", {"path": str(path)})

        logger.info(f"Exported {len(rules)} chatbot rules to {path}")
        return len(rules)

    def seed_defaults(self, path: Optional[Union[str, Path]] = None) -> int:
        """
        Populate an empty store.

        Uses the given YAML file when it exists, otherwise the built-in
        starter rules. Does nothing if the store already has rules.

        Returns:
            Number of rules added
        """
        if self.count_rules() > 0:
            return 0

        if path and Path(path).exists():
            return self.import_rules(path)
        return self._add_entries(DEFAULT_RULES, source="defaults")

    def _add_entries(self, entries: List[Any], source: str) -> int:
        added = 0
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping rule #{index} from {source}: not a mapping")
                continue
            try:
                self.add_rule(
                    keywords=entry.get("keywords"),
                    response=entry.get("response"),
                    priority=entry.get("priority"),
                )
                added += 1
            except RuleValidationError as e:
                logger.warning(f"Skipping rule #{index} from {source}: {e}")

        logger.info(f"Imported {added} chatbot rules from {source}")
        return added
