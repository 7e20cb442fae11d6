"""
Test Rule Store Module
=====================

Tests for rule persistence, validation and YAML import/export.
"""

import pytest
import yaml
from pathlib import Path
from unittest.mock import patch
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.database import init_database
from core.exceptions import (
    ChatbotError,
    DatabaseError,
    FetchError,
    RuleNotFoundError,
    RuleValidationError,
)
from rules.engine import match, NO_MATCH_RESPONSE
from rules.store import RuleStore, DEFAULT_RULES


@pytest.fixture
def database(tmp_path):
    db = init_database(str(tmp_path / "rules.db"))
    yield db
    db.close()


@pytest.fixture
def store(database):
    return RuleStore(database)


class TestAddRule:
    """Tests for rule creation."""

    def test_add_and_fetch(self, store):
        rule = store.add_rule(["Pricing", " COST "], "From $99/mo", priority=1)

        assert rule.id is not None
        assert rule.keywords == ("pricing", "cost")
        assert rule.priority == 1
        assert rule.created_at is not None
        assert store.fetch_rules() == [rule]

    def test_comma_separated_keywords(self, store):
        rule = store.add_rule("hello, Hi There ,", "Hello!")
        assert rule.keywords == ("hello", "hi there")

    def test_default_priority(self, store):
        assert store.add_rule(["hi"], "Hello").priority == 10

    def test_configured_default_priority(self, database):
        store = RuleStore(database, default_priority=40)
        assert store.add_rule(["hi"], "Hello").priority == 40

    def test_response_is_trimmed(self, store):
        assert store.add_rule(["hi"], "  Hello!  ").response == "Hello!"

    @pytest.mark.parametrize("keywords", [[], "", " , ,", ["", "  "], None, 42])
    def test_rejects_empty_keywords(self, store, keywords):
        with pytest.raises(RuleValidationError):
            store.add_rule(keywords, "Hello")
        assert store.count_rules() == 0

    def test_rejects_blank_response(self, store):
        with pytest.raises(RuleValidationError):
            store.add_rule(["hi"], "   ")

    def test_rejects_non_integer_priority(self, store):
        with pytest.raises(RuleValidationError):
            store.add_rule(["hi"], "Hello", priority="high")
        with pytest.raises(RuleValidationError):
            store.add_rule(["hi"], "Hello", priority=True)

    @pytest.mark.parametrize("priority", [0, -5, 101, 10 ** 6])
    def test_rejects_out_of_range_priority(self, store, priority):
        with pytest.raises(RuleValidationError):
            store.add_rule(["hi"], "Hello", priority=priority)

    def test_priority_bounds_accepted(self, store):
        assert store.add_rule(["a"], "A", priority=1).priority == 1
        assert store.add_rule(["b"], "B", priority=100).priority == 100

    def test_import_skips_out_of_range_priority(self, store, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump({
            "rules": [
                {"keywords": ["a"], "response": "A", "priority": 0},
                {"keywords": ["b"], "response": "B", "priority": 1000000},
                {"keywords": ["c"], "response": "C", "priority": 7},
            ]
        }), encoding="utf-8")

        assert store.import_rules(path) == 1
        assert store.fetch_rules()[0].priority == 7


class TestReadRules:
    """Tests for the read side of the store."""

    def test_fetch_returns_creation_order(self, store):
        first = store.add_rule(["a"], "A", priority=20)
        second = store.add_rule(["b"], "B", priority=5)
        assert [r.id for r in store.fetch_rules()] == [first.id, second.id]

    def test_list_rules_by_priority(self, store):
        low = store.add_rule(["a"], "A", priority=20)
        high = store.add_rule(["b"], "B", priority=5)
        tie = store.add_rule(["c"], "C", priority=20)
        assert [r.id for r in store.list_rules()] == [high.id, low.id, tie.id]

    def test_ties_answered_by_oldest_rule(self, store):
        store.add_rule(["help"], "Older", priority=5)
        store.add_rule(["help"], "Newer", priority=5)
        assert match("help!", store.fetch_rules()) == "Older"

    def test_empty_store(self, store):
        assert store.fetch_rules() == []
        assert store.count_rules() == 0

    def test_get_rule(self, store):
        rule = store.add_rule(["hi"], "Hello")
        assert store.get_rule(rule.id) == rule
        assert store.get_rule(9999) is None

    def test_fetch_failure_raises_fetch_error(self, store):
        with patch.object(
            store.database, "list_rule_rows", side_effect=DatabaseError("disk I/O error")
        ):
            with pytest.raises(FetchError) as exc_info:
                store.fetch_rules()
        assert exc_info.value.details["cause"] == "disk I/O error"

    def test_malformed_keywords_row_never_matches(self, store, database):
        rule = store.add_rule(["hi"], "Hello")
        with database.transaction() as conn:
            conn.execute("UPDATE chatbot_rules SET keywords = ? WHERE id = ?", ("{not json", rule.id))

        fetched = store.fetch_rules()
        assert fetched[0].keywords == ()
        assert match("hi", fetched) != "Hello"

    def test_non_numeric_priority_row_uses_default(self, store, database):
        rule = store.add_rule(["hi"], "Hello", priority=3)
        with database.transaction() as conn:
            conn.execute("UPDATE chatbot_rules SET priority = ? WHERE id = ?", ("high", rule.id))

        fetched = store.fetch_rules()
        assert fetched[0].priority == 10
        assert match("hi", fetched) == "Hello"

    def test_blank_response_row_never_matches(self, store, database):
        rule = store.add_rule(["hi"], "Hello")
        with database.transaction() as conn:
            conn.execute("UPDATE chatbot_rules SET response = ? WHERE id = ?", ("   ", rule.id))

        fetched = store.fetch_rules()
        assert fetched[0].keywords == ()
        assert match("hi", fetched) == NO_MATCH_RESPONSE


class TestUpdateDelete:
    """Tests for updating and deleting rules."""

    def test_update_fields(self, store):
        rule = store.add_rule(["hi"], "Hello", priority=10)
        updated = store.update_rule(rule.id, keywords="Hey, YO", priority=3)

        assert updated.keywords == ("hey", "yo")
        assert updated.priority == 3
        assert updated.response == "Hello"

    def test_update_without_fields(self, store):
        rule = store.add_rule(["hi"], "Hello")
        assert store.update_rule(rule.id) == rule

    def test_update_missing_rule(self, store):
        with pytest.raises(RuleNotFoundError):
            store.update_rule(404, response="Nope")
        with pytest.raises(RuleNotFoundError):
            store.update_rule(404)

    def test_update_validates(self, store):
        rule = store.add_rule(["hi"], "Hello")
        with pytest.raises(RuleValidationError):
            store.update_rule(rule.id, keywords=[" "])

    def test_delete(self, store):
        rule = store.add_rule(["hi"], "Hello")
        store.delete_rule(rule.id)
        assert store.count_rules() == 0

        with pytest.raises(RuleNotFoundError):
            store.delete_rule(rule.id)


class TestImportExport:
    """Tests for YAML import, export and seeding."""

    def test_export_then_import(self, store, database, tmp_path):
        store.add_rule(["pricing"], "From $99", priority=1)
        store.add_rule(["contact"], "Email us")
        path = tmp_path / "export" / "rules.yaml"

        assert store.export_rules(path) == 2

        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["rules"][0] == {"keywords": ["pricing"], "response": "From $99", "priority": 1}

        other = RuleStore(init_database(str(tmp_path / "other.db")))
        assert other.import_rules(path) == 2
        assert [r.response for r in other.list_rules()] == ["From $99", "Email us"]

    def test_import_skips_invalid_entries(self, store, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump({
            "rules": [
                {"keywords": "hours, open", "response": "9 to 5"},
                {"keywords": [], "response": "No keywords"},
                {"keywords": ["x"], "response": ""},
                "not a mapping",
            ]
        }), encoding="utf-8")

        assert store.import_rules(path) == 1
        assert store.fetch_rules()[0].keywords == ("hours", "open")

    def test_import_missing_file(self, store, tmp_path):
        with pytest.raises(ChatbotError):
            store.import_rules(tmp_path / "missing.yaml")

    def test_import_rules_not_a_list(self, store, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("rules: nope\n", encoding="utf-8")
        with pytest.raises(ChatbotError):
            store.import_rules(path)

    def test_seed_defaults(self, store):
        assert store.seed_defaults() == len(DEFAULT_RULES)
        assert store.seed_defaults() == 0
        assert match("What's your pricing?", store.fetch_rules()).startswith("Every project")

    def test_seed_from_file(self, store, tmp_path):
        path = tmp_path / "seed.yaml"
        path.write_text(yaml.safe_dump({"rules": [{"keywords": ["hi"], "response": "Hey"}]}))
        assert store.seed_defaults(path) == 1

    def test_seed_missing_file_uses_defaults(self, store, tmp_path):
        assert store.seed_defaults(tmp_path / "absent.yaml") == len(DEFAULT_RULES)

    def test_statistics(self, store, database):
        store.add_rule(["a"], "A", priority=3)
        store.add_rule(["b"], "B", priority=70)
        stats = database.get_statistics()
        assert stats["rules"] == 2
        assert stats["min_priority"] == 3
        assert stats["max_priority"] == 70
