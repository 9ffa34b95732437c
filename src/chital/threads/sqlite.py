"""SQLite thread persistence backend.

Provides persistent thread storage using a SQLite database file.
Uses aiosqlite for async access.
"""

from datetime import datetime
from pathlib import Path

import aiosqlite

from .base import ThreadPersistence
from .models import ChatMessage, ChatThread, Persisted


class SQLiteThreadPersistence(ThreadPersistence):
    """SQLite-backed thread persistence.

    Stores threads and messages in two tables; deleting a thread cascades
    to its messages through a foreign key.
    """

    def __init__(self, path: str | Path = "./chital.db"):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS threads (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                selected_model TEXT,
                has_received_first_message INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                thread_id TEXT NOT NULL,
                text TEXT NOT NULL,
                is_user INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                sequence INTEGER NOT NULL,
                FOREIGN KEY (thread_id) REFERENCES threads(id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_thread
            ON messages(thread_id, created_at, sequence)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def insert_thread(self, thread: ChatThread) -> str:
        await self._connection.execute("""
            INSERT INTO threads (id, title, selected_model, has_received_first_message, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            thread.id,
            thread.title,
            thread.selected_model,
            int(thread.has_received_first_message),
            thread.created_at.isoformat()
        ))
        await self._connection.commit()
        return thread.id

    async def update_thread(self, thread: ChatThread) -> None:
        if not isinstance(thread.identity, Persisted):
            return
        await self._connection.execute("""
            UPDATE threads
            SET title = ?, selected_model = ?, has_received_first_message = ?, created_at = ?
            WHERE id = ?
        """, (
            thread.title,
            thread.selected_model,
            int(thread.has_received_first_message),
            thread.created_at.isoformat(),
            thread.identity.store_id
        ))
        await self._connection.commit()

    async def delete_thread(self, store_id: str) -> None:
        await self._connection.execute("DELETE FROM threads WHERE id = ?", (store_id,))
        await self._connection.commit()

    async def insert_message(self, store_id: str, message: ChatMessage) -> None:
        await self._connection.execute("""
            INSERT INTO messages (id, thread_id, text, is_user, created_at, sequence)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            message.id,
            store_id,
            message.text,
            int(message.is_user),
            message.created_at.isoformat(),
            message.sequence
        ))
        await self._connection.commit()

    async def update_message(self, store_id: str, message: ChatMessage) -> None:
        await self._connection.execute(
            "UPDATE messages SET text = ? WHERE id = ? AND thread_id = ?",
            (message.text, message.id, store_id)
        )
        await self._connection.commit()

    async def delete_messages(self, store_id: str, message_ids: list[str]) -> None:
        if not message_ids:
            return
        await self._connection.executemany(
            "DELETE FROM messages WHERE id = ? AND thread_id = ?",
            [(message_id, store_id) for message_id in message_ids]
        )
        await self._connection.commit()

    async def list_threads(self) -> list[ChatThread]:
        async with self._connection.execute(
            """
            SELECT id, title, selected_model, has_received_first_message, created_at
            FROM threads
            ORDER BY created_at DESC
            """
        ) as cursor:
            thread_rows = await cursor.fetchall()

        async with self._connection.execute(
            """
            SELECT id, thread_id, text, is_user, created_at, sequence
            FROM messages
            ORDER BY created_at ASC, sequence ASC
            """
        ) as cursor:
            message_rows = await cursor.fetchall()

        messages_by_thread: dict[str, list[ChatMessage]] = {}
        for row in message_rows:
            message_id, thread_id, text, is_user, created_at, sequence = row
            messages_by_thread.setdefault(thread_id, []).append(ChatMessage(
                id=message_id,
                text=text,
                is_user=bool(is_user),
                created_at=datetime.fromisoformat(created_at),
                sequence=sequence
            ))

        threads = []
        for row in thread_rows:
            thread_id, title, selected_model, has_received_first_message, created_at = row
            threads.append(ChatThread(
                id=thread_id,
                title=title,
                messages=messages_by_thread.get(thread_id, []),
                selected_model=selected_model,
                has_received_first_message=bool(has_received_first_message),
                created_at=datetime.fromisoformat(created_at),
                identity=Persisted(store_id=thread_id)
            ))

        return threads

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
