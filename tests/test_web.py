"""
Test Web API
===========

Tests for the chat and rule administration endpoints.
"""

import asyncio
import httpx
import pytest
from pathlib import Path
from unittest.mock import patch
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient

from core.config import Config
from core.database import init_database
from core.exceptions import DatabaseError
from core.logging import get_log_context
from rules.engine import EMPTY_INPUT_RESPONSE, NO_MATCH_RESPONSE
from services.chat_session import ChatSession, GREETING, FETCH_FAILED_RESPONSE
from ui.web.app import create_app


@pytest.fixture
def config(tmp_path):
    config = Config(data_dir=str(tmp_path), log_dir="")
    config.chatbot.reply_delay_ms = 0
    return config


@pytest.fixture
def database(tmp_path):
    db = init_database(str(tmp_path / "web.db"))
    yield db
    db.close()


@pytest.fixture
def app(config, database):
    return create_app(config=config, database=database)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def pricing_rule(app):
    return app.state.rule_store.add_rule(["pricing", "cost"], "From $99/mo", priority=1)


class TestChatEndpoints:
    """Tests for visitor chat sessions."""

    def test_start_session(self, client, pricing_rule):
        response = client.post("/api/chat/sessions")
        assert response.status_code == 201

        data = response.json()
        assert data["state"] == "loaded_nonempty"
        assert data["rule_count"] == 1
        assert data["messages"][0]["text"] == GREETING

    def test_send_message(self, client, pricing_rule):
        session_id = client.post("/api/chat/sessions").json()["id"]

        response = client.post(
            f"/api/chat/sessions/{session_id}/messages",
            json={"message": "What does it cost?"}
        )
        assert response.status_code == 200

        data = response.json()
        assert data["reply"]["text"] == "From $99/mo"
        assert data["reply"]["sender"] == "bot"
        assert len(data["session"]["messages"]) == 3

    def test_unmatched_and_blank_messages(self, client, pricing_rule):
        session_id = client.post("/api/chat/sessions").json()["id"]
        url = f"/api/chat/sessions/{session_id}/messages"

        assert client.post(url, json={"message": "weather"}).json()["reply"]["text"] == NO_MATCH_RESPONSE
        assert client.post(url, json={"message": "  "}).json()["reply"]["text"] == EMPTY_INPUT_RESPONSE

    def test_message_too_long(self, client, config):
        session_id = client.post("/api/chat/sessions").json()["id"]
        response = client.post(
            f"/api/chat/sessions/{session_id}/messages",
            json={"message": "x" * (config.chatbot.max_message_length + 1)}
        )
        assert response.status_code == 422

    def test_unknown_session(self, client):
        response = client.post("/api/chat/sessions/missing/messages", json={"message": "hi"})
        assert response.status_code == 404
        assert client.get("/api/chat/sessions/missing").status_code == 404

    def test_get_and_end_session(self, client):
        session_id = client.post("/api/chat/sessions").json()["id"]

        assert client.get(f"/api/chat/sessions/{session_id}").json()["state"] == "loaded_empty"
        assert client.delete(f"/api/chat/sessions/{session_id}").status_code == 204
        assert client.delete(f"/api/chat/sessions/{session_id}").status_code == 404

    def test_fetch_failure(self, client, app):
        with patch.object(
            app.state.database, "list_rule_rows", side_effect=DatabaseError("locked")
        ):
            data = client.post("/api/chat/sessions").json()

        assert data["state"] == "fetch_failed"
        assert data["messages"][0]["text"] == FETCH_FAILED_RESPONSE

        reply = client.post(
            f"/api/chat/sessions/{data['id']}/messages", json={"message": "pricing"}
        ).json()["reply"]
        assert reply["text"] == FETCH_FAILED_RESPONSE

    def test_session_keeps_its_snapshot(self, client):
        session_id = client.post("/api/chat/sessions").json()["id"]
        client.post("/api/rules", json={"keywords": "hours", "response": "9 to 5"})

        url = f"/api/chat/sessions/{session_id}/messages"
        assert client.post(url, json={"message": "hours?"}).json()["reply"]["text"] != "9 to 5"


class TestRuleEndpoints:
    """Tests for rule administration."""

    def test_create_and_list(self, client):
        response = client.post(
            "/api/rules",
            json={"keywords": "Pricing, COST", "response": "From $99/mo", "priority": 2}
        )
        assert response.status_code == 201
        assert response.json()["keywords"] == ["pricing", "cost"]

        client.post("/api/rules", json={"keywords": ["hello"], "response": "Hi!"})

        rules = client.get("/api/rules").json()["rules"]
        assert [r["priority"] for r in rules] == [2, 10]

    def test_create_rejects_empty_keywords(self, client):
        response = client.post("/api/rules", json={"keywords": " , ", "response": "Hi"})
        assert response.status_code == 400

    def test_create_rejects_out_of_range_priority(self, client):
        response = client.post("/api/rules", json={"keywords": ["a"], "response": "A", "priority": 0})
        assert response.status_code == 422

    def test_get_update_delete(self, client, pricing_rule):
        url = f"/api/rules/{pricing_rule.id}"

        assert client.get(url).json()["response"] == "From $99/mo"

        updated = client.put(url, json={"response": "From $79/mo"}).json()
        assert updated["response"] == "From $79/mo"
        assert updated["keywords"] == ["pricing", "cost"]

        assert client.delete(url).status_code == 204
        assert client.get(url).status_code == 404

    def test_missing_rule(self, client):
        assert client.get("/api/rules/999").status_code == 404
        assert client.put("/api/rules/999", json={"response": "x"}).status_code == 404
        assert client.delete("/api/rules/999").status_code == 404

    def test_preview_match(self, client, pricing_rule):
        data = client.post("/api/rules/test", json={"message": "PRICING please"}).json()
        assert data["response"] == "From $99/mo"
        assert data["matched_rule"]["id"] == pricing_rule.id

        data = client.post("/api/rules/test", json={"message": "weather"}).json()
        assert data["matched_rule"] is None
        assert data["response"] == NO_MATCH_RESPONSE


class TestStatus:
    """Tests for the status endpoint."""

    def test_status(self, client, pricing_rule):
        client.post("/api/chat/sessions")
        data = client.get("/api/status").json()

        assert data["app"] == "Site Chatbot"
        assert data["rule_store"]["available"] is True
        assert data["rule_store"]["rules"] == 1
        assert data["sessions"] == 1


class TestRobustness:
    """Tests for degraded stores and concurrent requests."""

    def test_malformed_priority_row_still_starts_session(self, client, app, pricing_rule):
        with app.state.database.transaction() as conn:
            conn.execute(
                "UPDATE chatbot_rules SET priority = 'high' WHERE id = ?", (pricing_rule.id,)
            )

        response = client.post("/api/chat/sessions")
        assert response.status_code == 201
        assert response.json()["state"] == "loaded_nonempty"

        session_id = response.json()["id"]
        reply = client.post(
            f"/api/chat/sessions/{session_id}/messages", json={"message": "pricing"}
        ).json()["reply"]
        assert reply["text"] == "From $99/mo"

    def test_get_rule_store_unavailable(self, client, app):
        with patch.object(
            app.state.database, "get_rule_row", side_effect=DatabaseError("database is locked")
        ):
            response = client.get("/api/rules/1")
        assert response.status_code == 503

    def test_log_context_per_request(self, app, config, monkeypatch):
        """Concurrent messages each log with their own session id."""
        config.chatbot.reply_delay_ms = 50
        seen = []
        original_send = ChatSession.send

        def recording_send(session, text):
            seen.append((session.id, get_log_context().get("session_id")))
            return original_send(session, text)

        monkeypatch.setattr(ChatSession, "send", recording_send)

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                first = (await client.post("/api/chat/sessions")).json()["id"]
                second = (await client.post("/api/chat/sessions")).json()["id"]
                await asyncio.gather(
                    client.post(f"/api/chat/sessions/{first}/messages", json={"message": "hi"}),
                    client.post(f"/api/chat/sessions/{second}/messages", json={"message": "hi"}),
                )
            return first, second

        first, second = asyncio.run(scenario())

        assert sorted(seen) == sorted([(first, first), (second, second)])
        assert get_log_context() == {}
