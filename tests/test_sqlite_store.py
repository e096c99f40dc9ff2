"""Tests for SQLiteContextStore."""

import pytest
import sqlite3
from datetime import datetime, timedelta

from memory.sqlite_store import SQLiteContextStore
from memory.store import PersistenceError
from schemas.context import ConversationContext, IntentEntry, MessageEntry, MessageRole


class TestSQLiteContextStore:
    """Test SQLite persistence of conversation contexts."""

    @pytest.fixture(autouse=True)
    def setup_store(self, tmp_path):
        """Set up a store in a temporary database."""
        self.db_path = tmp_path / "conversations.db"
        self.store = SQLiteContextStore(db_path=str(self.db_path))

    def _context(self, user_id="u1", phone="555", content="Hello"):
        return ConversationContext(
            user_id=user_id,
            phone=phone,
            message_history=[MessageEntry(role=MessageRole.USER, content=content, intent="greeting")],
            intent_history=[IntentEntry(intent="greeting", confidence=0.9)],
            emotional_state="happy",
            user_preferences={"language": "en"},
            last_interaction=datetime.now(),
        )

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self):
        """Test loading an unknown key."""
        assert await self.store.load("nobody", "000") is None

    @pytest.mark.asyncio
    async def test_upsert_and_load(self):
        """Test a saved context reads back with its logs parsed."""
        await self.store.upsert(self._context())

        loaded = await self.store.load("u1", "555")
        assert loaded.message_history[0].content == "Hello"
        assert loaded.message_history[0].role == MessageRole.USER
        assert loaded.intent_history[0].intent == "greeting"
        assert loaded.emotional_state == "happy"
        assert loaded.user_preferences == {"language": "en"}

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_row(self):
        """Test a second upsert for the same key updates in place."""
        await self.store.upsert(self._context(content="first"))
        await self.store.upsert(self._context(content="second"))

        loaded = await self.store.load("u1", "555")
        assert [m.content for m in loaded.message_history] == ["second"]

        conn = sqlite3.connect(self.db_path)
        count = conn.execute("SELECT COUNT(*) FROM conversation_memory").fetchone()[0]
        conn.close()
        assert count == 1

    @pytest.mark.asyncio
    async def test_list_active(self):
        """Test only recently active contexts are listed."""
        recent = self._context(user_id="recent")
        old = self._context(user_id="old")
        old.last_interaction = datetime.now() - timedelta(days=3)
        await self.store.upsert(recent)
        await self.store.upsert(old)

        active = await self.store.list_active(datetime.now() - timedelta(hours=24))
        assert [c.user_id for c in active] == ["recent"]

    @pytest.mark.asyncio
    async def test_corrupt_row_raises_persistence_error(self):
        """Test unreadable stored data is reported as PersistenceError."""
        await self.store.upsert(self._context())
        conn = sqlite3.connect(self.db_path)
        conn.execute("UPDATE conversation_memory SET message_history = 'not json'")
        conn.commit()
        conn.close()

        with pytest.raises(PersistenceError):
            await self.store.load("u1", "555")
