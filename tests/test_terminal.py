"""
Test Terminal Chat
=================

Tests for the Textual chat client, driven headless with ``run_test``.
"""

import asyncio
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.database import init_database
from rules.store import RuleStore
from services.chat_session import GREETING, SessionState
from ui.terminal.app import ChatApp, MessageBubble


@pytest.fixture
def store(tmp_path):
    db = init_database(str(tmp_path / "rules.db"))
    store = RuleStore(db)
    store.add_rule(["pricing"], "From $99/mo", priority=1)
    yield store
    db.close()


def test_loads_and_greets(store):
    async def scenario():
        app = ChatApp(store, reply_delay=0)
        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()
            return app.session, len(app.query(MessageBubble))

    session, bubbles = asyncio.run(scenario())
    assert session.state is SessionState.LOADED_NONEMPTY
    assert [m.text for m in session.messages] == [GREETING]
    assert bubbles == 1


def test_late_load_results_are_dropped(store):
    """A fetch finishing after Ctrl+N must not touch the new chat."""
    async def scenario():
        app = ChatApp(store, reply_delay=0)
        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()
            replaced = app.session

            app.action_new_chat()
            await app.workers.wait_for_complete()
            await pilot.pause()

            # Result for the replaced chat, then a duplicate for the current one
            app.rules_loaded(replaced, [])
            app.rules_loaded(app.session, [])
            await pilot.pause()
            return replaced, app.session, len(app.query(MessageBubble))

    replaced, current, bubbles = asyncio.run(scenario())
    assert current is not replaced
    assert current.state is SessionState.LOADED_NONEMPTY
    assert len(current.rules) == 1
    assert [m.text for m in current.messages] == [GREETING]
    assert bubbles == 1
