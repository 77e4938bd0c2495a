from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from src.reactor.models import (
    DEFAULT_THREAD_TITLE,
    ChatRole,
    ContentPart,
    MessageRequestType,
    MessageStatus,
    Thread,
    ThreadMessage,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)


_THREADS_DDL = """
CREATE TABLE IF NOT EXISTS threads (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    metadata TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    thread_id TEXT NOT NULL,
    role TEXT NOT NULL,
    status TEXT NOT NULL,
    type TEXT NOT NULL,
    content TEXT NOT NULL,
    seq INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(thread_id) REFERENCES threads(id) ON DELETE CASCADE
);
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_threads_updated ON threads(updated_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_messages_thread_seq ON messages(thread_id, seq);",
]

_THREAD_COLUMNS = "id, title, metadata, created_at, updated_at"
_MESSAGE_COLUMNS = "id, thread_id, role, status, type, content, seq, created_at"


def _ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA foreign_keys = ON;")
    connection.execute("PRAGMA journal_mode = WAL;")


class SQLiteThreadStore:
    """SQLite-backed repository for conversation threads and their messages."""

    def __init__(self, db_path: str) -> None:
        path = Path(db_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        if path.suffix != ".db":
            path = path.with_suffix(".db")
        self._db_path = str(path)
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    async def init(self) -> None:
        """Initialise database schema."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        def _init() -> None:
            with sqlite3.connect(self._db_path) as connection:
                _ensure_pragmas(connection)
                connection.execute(_THREADS_DDL)
                connection.execute(_MESSAGES_DDL)
                for statement in _CREATE_INDEXES:
                    connection.execute(statement)
                connection.commit()

        await asyncio.to_thread(_init)
        logger.info("Thread database initialised at %s", self._db_path)

    async def close(self) -> None:  # pragma: no cover - compatibility placeholder
        return None

    async def create_thread(self, *, title: str = DEFAULT_THREAD_TITLE) -> Thread:
        thread = Thread(id=new_id(), title=title)
        await self.save_thread(thread)
        return thread

    async def save_thread(self, thread: Thread) -> None:
        now = _format_ts(utc_now())
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO threads (id, title, metadata, created_at, updated_at) VALUES (?, ?, ?, ?, ?)"
                " ON CONFLICT(id) DO UPDATE SET title = excluded.title, metadata = excluded.metadata,"
                " updated_at = excluded.updated_at",
                (
                    thread.id,
                    thread.title,
                    json.dumps(thread.metadata, ensure_ascii=False) if thread.metadata else None,
                    _format_ts(thread.created_at),
                    now,
                ),
            )

    async def get_thread(self, thread_id: str) -> Optional[Thread]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_THREAD_COLUMNS} FROM threads WHERE id = ?",
            (thread_id,),
        )
        return self._row_to_thread(row)

    async def list_threads(self) -> list[Thread]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_THREAD_COLUMNS} FROM threads ORDER BY updated_at DESC",
        )
        return [self._row_to_thread(row) for row in rows]

    async def delete_thread(self, thread_id: str) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._execute, "DELETE FROM threads WHERE id = ?", (thread_id,))

    async def append_message(self, message: ThreadMessage) -> None:
        """Insert the message, or overwrite its content/status when already stored."""
        content_json = json.dumps([{"type": part.type, "text": part.text} for part in message.content], ensure_ascii=False)
        created_at = _format_ts(message.created_at)

        async with self._write_lock:
            def _upsert() -> None:
                with sqlite3.connect(self._db_path) as connection:
                    connection.row_factory = sqlite3.Row
                    _ensure_pragmas(connection)

                    cursor = connection.execute(
                        "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE thread_id = ?",
                        (message.thread_id,),
                    )
                    row = cursor.fetchone()
                    next_seq = int(row["max_seq"] or 0) + 1

                    connection.execute(
                        f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
                        " ON CONFLICT(id) DO UPDATE SET status = excluded.status, content = excluded.content",
                        (
                            message.id,
                            message.thread_id,
                            message.role.value,
                            message.status.value,
                            message.type.value,
                            content_json,
                            next_seq,
                            created_at,
                        ),
                    )
                    connection.execute(
                        "UPDATE threads SET updated_at = ? WHERE id = ?",
                        (_format_ts(utc_now()), message.thread_id),
                    )
                    connection.commit()

            await asyncio.to_thread(_upsert)

    async def get_messages(self, thread_id: str) -> list[ThreadMessage]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE thread_id = ? ORDER BY seq ASC",
            (thread_id,),
        )
        return [self._row_to_message(row) for row in rows]

    def _execute(self, query: str, params: tuple = ()) -> None:
        with sqlite3.connect(self._db_path) as connection:
            _ensure_pragmas(connection)
            connection.execute(query, params)
            connection.commit()

    def _fetchall(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            _ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchall()

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            _ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchone()

    @staticmethod
    def _row_to_thread(row: sqlite3.Row | None) -> Optional[Thread]:
        if row is None:
            return None
        return Thread(
            id=row["id"],
            title=row["title"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> ThreadMessage:
        return ThreadMessage(
            id=row["id"],
            thread_id=row["thread_id"],
            role=ChatRole(row["role"]),
            status=MessageStatus(row["status"]),
            type=MessageRequestType(row["type"]),
            content=[ContentPart(text=part.get("text", ""), type=part.get("type", "text")) for part in json.loads(row["content"])],
            created_at=_parse_ts(row["created_at"]),
        )


def _format_ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=0, tzinfo=None).isoformat() + "Z"


def _parse_ts(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1]
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
