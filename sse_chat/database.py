"""
Optional durable message storage backed by SQLite
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiosqlite

from .constants import DB_KEEP_MESSAGES, MAX_HISTORY_MESSAGES
from .logger import get_logger
from .models import ChatMessage, format_timestamp, utc_now

logger = get_logger()

_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    seq         INTEGER PRIMARY KEY AUTOINCREMENT,
    id          TEXT NOT NULL UNIQUE,
    username    TEXT NOT NULL,
    message     TEXT NOT NULL,
    timestamp   TEXT NOT NULL
);
"""

_MESSAGES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp DESC);",
    "CREATE INDEX IF NOT EXISTS idx_messages_username ON messages(username);",
]


class MessageDatabase:
    """Durable copy of accepted messages; stored text is already escaped"""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    async def initialize(self):
        """Open the connection and create the schema if needed"""
        if self._conn is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(str(self.db_path))
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute(_MESSAGES_DDL)
        for ddl in _MESSAGES_INDEXES:
            await conn.execute(ddl)
        await conn.commit()
        self._conn = conn
        logger.info(f"Database initialized: {self.db_path}")

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("MessageDatabase.initialize() has not been called")
        return self._conn

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            username=row["username"],
            message=row["message"],
            timestamp=datetime.fromisoformat(row["timestamp"].replace("Z", "+00:00")),
        )

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        """
        Add a new message

        Args:
            message: Accepted message

        Returns:
            The inserted message
        """
        await self.conn.execute(
            "INSERT INTO messages (id, username, message, timestamp) VALUES (?, ?, ?, ?)",
            (message.id, message.username, message.message, format_timestamp(message.timestamp)),
        )
        await self.conn.commit()
        logger.debug(f"Message persisted: {message.id}")
        return message

    async def get_recent_messages(self, limit: int = MAX_HISTORY_MESSAGES) -> List[ChatMessage]:
        """
        Get the most recent messages

        Args:
            limit: Maximum number of messages to return

        Returns:
            Messages oldest first
        """
        cursor = await self.conn.execute(
            "SELECT id, username, message, timestamp FROM messages ORDER BY seq DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    async def get_message_count(self) -> int:
        cursor = await self.conn.execute("SELECT COUNT(*) AS count FROM messages")
        row = await cursor.fetchone()
        return int(row["count"])

    async def cleanup_old_messages(self, keep_count: int = DB_KEEP_MESSAGES) -> int:
        """
        Delete everything but the newest keep_count messages

        Returns:
            Number of deleted rows
        """
        cursor = await self.conn.execute(
            """
            DELETE FROM messages
            WHERE seq NOT IN (
                SELECT seq FROM messages ORDER BY seq DESC LIMIT ?
            )
            """,
            (keep_count,),
        )
        await self.conn.commit()
        deleted = cursor.rowcount or 0
        if deleted > 0:
            logger.info(f"Cleaned up {deleted} old messages")
        return deleted

    async def is_connected(self) -> bool:
        if self._conn is None:
            return False
        try:
            cursor = await self._conn.execute("SELECT 1")
            await cursor.fetchone()
            return True
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def get_stats(self) -> Dict[str, Any]:
        """Totals, distinct authors and per-day counts for the last 7 days"""
        total = await self.get_message_count()

        cursor = await self.conn.execute("SELECT COUNT(DISTINCT username) AS users FROM messages")
        unique_users = int((await cursor.fetchone())["users"])

        since = format_timestamp(utc_now() - timedelta(days=7))
        cursor = await self.conn.execute(
            """
            SELECT substr(timestamp, 1, 10) AS date, COUNT(*) AS count
            FROM messages
            WHERE timestamp >= ?
            GROUP BY date
            ORDER BY date DESC
            """,
            (since,),
        )
        daily = [{"date": row["date"], "count": int(row["count"])} for row in await cursor.fetchall()]

        return {
            "total_messages": total,
            "unique_users": unique_users,
            "daily_activity": daily,
        }

    async def close(self):
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Database connection closed")
