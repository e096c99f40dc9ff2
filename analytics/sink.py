"""Fire-and-forget analytics sinks."""

import asyncio
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from schemas.knowledge import AnalyticsEvent

logger = logging.getLogger(__name__)


class AnalyticsSink(ABC):
    """Destination for analytics events."""

    @abstractmethod
    async def log_event(self, event: AnalyticsEvent):
        """Record one event. May raise; callers go through `emit`."""
        pass


class LoggingAnalyticsSink(AnalyticsSink):
    """Writes events to the application log."""

    async def log_event(self, event: AnalyticsEvent):
        logger.info(
            f"analytics {event.event_type} provider={event.provider_id} "
            f"latency={event.latency_ms:.0f}ms success={event.success}"
        )


class SQLiteAnalyticsSink(AnalyticsSink):
    """Appends events to the ai_analytics table."""

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize SQLite analytics sink.

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
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ai_analytics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT NOT NULL,
                provider_id TEXT,
                latency_ms REAL,
                success INTEGER,
                metadata TEXT,
                created_at TIMESTAMP
            )
        """)
        conn.commit()
        conn.close()

    def _insert_sync(self, event: AnalyticsEvent):
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO ai_analytics
                (event_type, provider_id, latency_ms, success, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_type,
                    event.provider_id,
                    event.latency_ms,
                    int(event.success),
                    json.dumps(event.metadata, default=str),
                    event.created_at.isoformat(),
                )
            )
            conn.commit()
        finally:
            conn.close()

    async def log_event(self, event: AnalyticsEvent):
        await asyncio.to_thread(self._insert_sync, event)

    def get_events(self, event_type: str = None, limit: int = 100) -> List[AnalyticsEvent]:
        """
        Read back recorded events, newest first.

        Args:
            event_type: Only events of this type if given
            limit: Maximum number of events

        Returns:
            List of AnalyticsEvent
        """
        conn = self._get_connection()
        try:
            if event_type:
                rows = conn.execute(
                    "SELECT * FROM ai_analytics WHERE event_type = ? ORDER BY id DESC LIMIT ?",
                    (event_type, limit)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM ai_analytics ORDER BY id DESC LIMIT ?", (limit,)
                ).fetchall()
        finally:
            conn.close()

        return [
            AnalyticsEvent(
                event_type=row["event_type"],
                provider_id=row["provider_id"],
                latency_ms=row["latency_ms"] or 0.0,
                success=bool(row["success"]),
                metadata=json.loads(row["metadata"] or "{}"),
                created_at=row["created_at"],
            )
            for row in rows
        ]


async def emit(sink: AnalyticsSink, event: AnalyticsEvent):
    """Send an event, swallowing any sink failure."""
    try:
        await sink.log_event(event)
    except Exception as e:
        logger.debug(f"Analytics logging failed: {e}")
