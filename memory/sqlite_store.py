"""SQLite-based context store for conversation persistence."""

import asyncio
import sqlite3
import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, List

from pydantic import ValidationError

from schemas.context import ConversationContext
from .store import ContextStore, PersistenceError

logger = logging.getLogger(__name__)


class SQLiteContextStore(ContextStore):
    """SQLite-based persistent context store."""

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize SQLite context store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversation_memory (
                user_id TEXT NOT NULL,
                phone TEXT NOT NULL,
                conversation_id TEXT NOT NULL,
                message_history TEXT,
                context_data TEXT,
                intent_history TEXT,
                emotional_state TEXT,
                emotional_history TEXT,
                user_preferences TEXT,
                business_context TEXT,
                conversation_start TIMESTAMP,
                last_interaction TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, phone)
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_memory_last_interaction "
            "ON conversation_memory(last_interaction)"
        )

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    @staticmethod
    def _row_to_context(row: sqlite3.Row) -> ConversationContext:
        """Parse the serialized log fields of a stored row."""
        return ConversationContext.model_validate({
            "user_id": row["user_id"],
            "phone": row["phone"],
            "message_history": json.loads(row["message_history"] or "[]"),
            "context_data": json.loads(row["context_data"] or "{}"),
            "intent_history": json.loads(row["intent_history"] or "[]"),
            "emotional_state": row["emotional_state"] or "neutral",
            "emotional_history": json.loads(row["emotional_history"] or "[]"),
            "user_preferences": json.loads(row["user_preferences"] or "{}"),
            "business_context": json.loads(row["business_context"] or "{}"),
            "conversation_start": row["conversation_start"] or datetime.now(),
            "last_interaction": row["last_interaction"],
        })

    def _load_sync(self, user_id: str, phone: str) -> Optional[ConversationContext]:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM conversation_memory WHERE user_id = ? AND phone = ?",
                (user_id, phone)
            )
            row = cursor.fetchone()
        finally:
            conn.close()

        if not row:
            return None
        return self._row_to_context(row)

    def _upsert_sync(self, context: ConversationContext):
        dumped = context.model_dump(mode="json")
        last_interaction = context.last_interaction or datetime.now()

        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO conversation_memory (
                    user_id, phone, conversation_id, message_history, context_data,
                    intent_history, emotional_state, emotional_history, user_preferences,
                    business_context, conversation_start, last_interaction, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, phone) DO UPDATE SET
                    message_history = excluded.message_history,
                    context_data = excluded.context_data,
                    intent_history = excluded.intent_history,
                    emotional_state = excluded.emotional_state,
                    emotional_history = excluded.emotional_history,
                    user_preferences = excluded.user_preferences,
                    business_context = excluded.business_context,
                    last_interaction = excluded.last_interaction,
                    updated_at = excluded.updated_at
                """,
                (
                    context.user_id,
                    context.phone,
                    context.conversation_id,
                    json.dumps(dumped["message_history"]),
                    json.dumps(dumped["context_data"]),
                    json.dumps(dumped["intent_history"]),
                    context.emotional_state,
                    json.dumps(dumped["emotional_history"]),
                    json.dumps(dumped["user_preferences"]),
                    json.dumps(dumped["business_context"]),
                    context.conversation_start.isoformat(),
                    last_interaction.isoformat(),
                    datetime.now().isoformat(),
                )
            )
            conn.commit()
        finally:
            conn.close()

    def _list_active_sync(self, since: datetime) -> List[ConversationContext]:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM conversation_memory
                WHERE last_interaction >= ?
                ORDER BY last_interaction DESC
                """,
                (since.isoformat(),)
            )
            rows = cursor.fetchall()
        finally:
            conn.close()
        return [self._row_to_context(row) for row in rows]

    async def load(self, user_id: str, phone: str) -> Optional[ConversationContext]:
        """Load the stored context for (user_id, phone)."""
        try:
            return await asyncio.to_thread(self._load_sync, user_id, phone)
        except (sqlite3.Error, json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Failed to load context {user_id}-{phone}: {e}") from e

    async def upsert(self, context: ConversationContext):
        """Insert or update the stored context."""
        try:
            await asyncio.to_thread(self._upsert_sync, context)
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to save context {context.conversation_id}: {e}"
            ) from e

    async def list_active(self, since: datetime) -> List[ConversationContext]:
        """Contexts with an interaction since the given time."""
        try:
            return await asyncio.to_thread(self._list_active_sync, since)
        except (sqlite3.Error, json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Failed to list active contexts: {e}") from e
