"""SQLite recent-message store.

Provides persistent recent-message storage using a SQLite database.
Uses aiosqlite for async access.
"""

from pathlib import Path

import aiosqlite

from .base import DEFAULT_MAX_ENTRIES, RecentMessageStore
from .models import RecentMessage


class SQLiteRecentMessageStore(RecentMessageStore):
    """SQLite-backed recent-message store.

    Several stores can share one database file by using different
    namespaces, e.g. "recent" and "initial".
    """

    def __init__(
        self,
        path: str | Path = "./agentrelay_history.db",
        max_entries: int = DEFAULT_MAX_ENTRIES,
        namespace: str = "recent"
    ):
        super().__init__(max_entries)
        self._db_path = Path(path)
        self._namespace = namespace
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._connection is not None:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS recent_messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                namespace TEXT NOT NULL,
                profile_id TEXT NOT NULL,
                content TEXT NOT NULL,
                timestamp INTEGER NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_recent_messages_profile
            ON recent_messages(namespace, profile_id, timestamp)
        """)

        await self._db.commit()

    @property
    def _db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Store is not connected; call connect() first")
        return self._connection

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def save_message(self, profile_id: str, content: str) -> RecentMessage | None:
        if not content.strip():
            return None
        entry = RecentMessage(profile_id=profile_id, content=content)

        await self._db.execute(
            "DELETE FROM recent_messages WHERE namespace = ? AND profile_id = ? AND content = ?",
            (self._namespace, profile_id, content)
        )
        await self._db.execute("""
            INSERT INTO recent_messages (id, namespace, profile_id, content, timestamp)
            VALUES (?, ?, ?, ?, ?)
        """, (entry.id, self._namespace, profile_id, entry.content, entry.timestamp))

        # Keep only the newest max_entries rows of this profile
        await self._db.execute("""
            DELETE FROM recent_messages
            WHERE namespace = ? AND profile_id = ? AND seq NOT IN (
                SELECT seq FROM recent_messages
                WHERE namespace = ? AND profile_id = ?
                ORDER BY timestamp DESC, seq DESC
                LIMIT ?
            )
        """, (self._namespace, profile_id, self._namespace, profile_id, self._max_entries))

        await self._db.commit()
        return entry

    async def get_recent_messages(self, profile_id: str) -> list[RecentMessage]:
        async with self._db.execute(
            """
            SELECT id, profile_id, content, timestamp
            FROM recent_messages
            WHERE namespace = ? AND profile_id = ?
            ORDER BY timestamp DESC, seq DESC
            """,
            (self._namespace, profile_id)
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            RecentMessage(id=row[0], profile_id=row[1], content=row[2], timestamp=row[3])
            for row in rows
        ]

    async def clear(self, profile_id: str) -> None:
        await self._db.execute(
            "DELETE FROM recent_messages WHERE namespace = ? AND profile_id = ?",
            (self._namespace, profile_id)
        )
        await self._db.commit()

    async def clear_all(self) -> None:
        await self._db.execute(
            "DELETE FROM recent_messages WHERE namespace = ?",
            (self._namespace,)
        )
        await self._db.commit()

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def db_path(self) -> Path:
        return self._db_path
