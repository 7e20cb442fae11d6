"""
Web Routes - API endpoints
=========================

This module defines the JSON API:
- ``/api/chat/...``  visitor chat sessions
- ``/api/rules/...`` administration of chatbot rules
- ``/api/status``    health and statistics
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Union

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from core.exceptions import (
    DatabaseError,
    RuleNotFoundError,
    RuleValidationError,
    SessionNotFoundError,
)
from core.logging import get_logger, set_log_context, clear_log_context
from rules.engine import find_match, match
from rules.store import MIN_PRIORITY, MAX_PRIORITY

logger = get_logger("web.routes")

router = APIRouter()


# === Request Models ===

class ChatRequest(BaseModel):
    """Visitor chat message."""
    message: str


class RuleCreate(BaseModel):
    """Rule creation model. Keywords may be a list or a comma-separated string."""
    keywords: Union[List[str], str]
    response: str = Field(min_length=1, max_length=2000)
    priority: Optional[int] = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)


class RuleUpdate(BaseModel):
    """Rule update model; omitted fields are left unchanged."""
    keywords: Optional[Union[List[str], str]] = None
    response: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    priority: Optional[int] = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)


class TestMessage(BaseModel):
    """Rule preview request."""
    message: str


# === Chat Routes ===

@router.post("/api/chat/sessions", status_code=201)
def start_session(request: Request):
    """Start a chat session and load its rule snapshot."""
    session = request.app.state.sessions.create()
    return session.to_dict()


@router.get("/api/chat/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    """Get a session's state and message history."""
    try:
        session = request.app.state.sessions.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return session.to_dict()


@router.post("/api/chat/sessions/{session_id}/messages")
async def send_message(request: Request, session_id: str, chat: ChatRequest):
    """Submit a visitor message and return the bot reply."""
    config = request.app.state.config

    try:
        session = request.app.state.sessions.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    if len(chat.message) > config.chatbot.max_message_length:
        raise HTTPException(
            status_code=422,
            detail=f"Message exceeds {config.chatbot.max_message_length} characters"
        )

    delay = config.chatbot.reply_delay_ms / 1000
    if delay > 0:
        await asyncio.sleep(delay)

    set_log_context(session_id=session_id)
    try:
        reply = session.send(chat.message)
        logger.debug(f"Replied in session {session_id}: {reply.text[:40]}")
    finally:
        clear_log_context()

    return {"reply": reply.to_dict(), "session": session.to_dict()}


@router.delete("/api/chat/sessions/{session_id}", status_code=204)
async def end_session(request: Request, session_id: str):
    """Discard a chat session."""
    try:
        request.app.state.sessions.discard(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return Response(status_code=204)


# === Rule Administration Routes ===

@router.get("/api/rules")
def list_rules(request: Request):
    """List rules sorted by priority, then creation order."""
    store = request.app.state.rule_store
    try:
        rules = store.list_rules()
    except DatabaseError as e:
        logger.error(f"Failed to list rules: {e}")
        raise HTTPException(status_code=503, detail=e.message)
    return {"rules": [rule.to_dict() for rule in rules]}


@router.post("/api/rules", status_code=201)
def create_rule(request: Request, rule_data: RuleCreate):
    """Create a new rule."""
    store = request.app.state.rule_store
    try:
        rule = store.add_rule(
            keywords=rule_data.keywords,
            response=rule_data.response,
            priority=rule_data.priority,
        )
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except DatabaseError as e:
        logger.error(f"Failed to create rule: {e}")
        raise HTTPException(status_code=503, detail=e.message)
    return rule.to_dict()


@router.post("/api/rules/test")
def test_rules(request: Request, test_data: TestMessage):
    """Preview which rule would answer a message, using the current rules."""
    store = request.app.state.rule_store
    try:
        rules = store.fetch_rules()
    except DatabaseError as e:
        raise HTTPException(status_code=503, detail=e.message)

    rule = find_match(test_data.message, rules)
    return {
        "message": test_data.message,
        "response": match(test_data.message, rules),
        "matched_rule": rule.to_dict() if rule else None,
    }


@router.get("/api/rules/{rule_id}")
def get_rule(request: Request, rule_id: int):
    """Get a single rule."""
    try:
        rule = request.app.state.rule_store.get_rule(rule_id)
    except DatabaseError as e:
        logger.error(f"Failed to read rule {rule_id}: {e}")
        raise HTTPException(status_code=503, detail=e.message)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Chatbot rule {rule_id} not found")
    return rule.to_dict()


@router.put("/api/rules/{rule_id}")
def update_rule(request: Request, rule_id: int, rule_data: RuleUpdate):
    """Update an existing rule."""
    store = request.app.state.rule_store
    try:
        rule = store.update_rule(
            rule_id,
            keywords=rule_data.keywords,
            response=rule_data.response,
            priority=rule_data.priority,
        )
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except DatabaseError as e:
        logger.error(f"Failed to update rule {rule_id}: {e}")
        raise HTTPException(status_code=503, detail=e.message)
    return rule.to_dict()


@router.delete("/api/rules/{rule_id}", status_code=204)
def delete_rule(request: Request, rule_id: int):
    """Delete a rule."""
    try:
        request.app.state.rule_store.delete_rule(rule_id)
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except DatabaseError as e:
        logger.error(f"Failed to delete rule {rule_id}: {e}")
        raise HTTPException(status_code=503, detail=e.message)
    return Response(status_code=204)


# === Status ===

@router.get("/api/status")
def get_status(request: Request):
    """Get system status."""
    database = request.app.state.database
    sessions = request.app.state.sessions

    sessions.evict_expired()
    try:
        stats = database.get_statistics()
        store_status = {"available": True, **stats}
    except DatabaseError as e:
        logger.warning(f"Status check could not read the rule store: {e}")
        store_status = {"available": False, "error": e.message}

    return {
        "app": request.app.state.config.app_name,
        "rule_store": store_status,
        "sessions": len(sessions),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
