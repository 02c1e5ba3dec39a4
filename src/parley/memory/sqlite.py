"""SQLite conversation store.

Provides persistent conversation storage using a SQLite database.
Uses aiosqlite for async access.
"""

import json
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..errors import ConversationNotFoundError
from .base import ConversationStore
from .models import Conversation, EntryType, HistoryEntry, Role, ToolCallRequest, utcnow

_CONVERSATION_COLUMNS = (
    "id", "user_id", "title", "model_name", "temperature", "master_prompt",
    "role_name", "role_prompt", "lang", "retention_days", "context_limit", "stream",
    "enabled_tools", "total_tokens", "total_input_tokens", "total_output_tokens",
    "in_flight_message_id", "created_at", "updated_at",
)

_ENTRY_COLUMNS = (
    "id", "conversation_id", "role", "content", "tool_call_id", "tool_calls",
    "attachment_path", "attachment_name", "live", "entry_type", "created_at",
    "input_tokens", "output_tokens", "model_used", "response_time_ms", "finish_reason",
)


class SQLiteConversationStore(ConversationStore):
    """SQLite-backed conversation store.

    Stores conversations and history entries in a SQLite database file.
    Entry ids come from AUTOINCREMENT and double as the insertion-order
    tiebreak for entries sharing a timestamp.
    """

    def __init__(self, path: str | Path = "./parley.db"):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT,
                model_name TEXT NOT NULL,
                temperature REAL NOT NULL,
                master_prompt TEXT NOT NULL,
                role_name TEXT,
                role_prompt TEXT,
                lang TEXT NOT NULL,
                retention_days INTEGER NOT NULL,
                context_limit INTEGER NOT NULL,
                stream INTEGER NOT NULL,
                enabled_tools TEXT,
                total_tokens INTEGER NOT NULL DEFAULT 0,
                total_input_tokens INTEGER NOT NULL DEFAULT 0,
                total_output_tokens INTEGER NOT NULL DEFAULT 0,
                in_flight_message_id TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS history_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT,
                tool_call_id TEXT,
                tool_calls TEXT NOT NULL DEFAULT '[]',
                attachment_path TEXT,
                attachment_name TEXT,
                live INTEGER NOT NULL DEFAULT 1,
                entry_type TEXT NOT NULL DEFAULT 'normal',
                created_at TEXT NOT NULL,
                input_tokens INTEGER,
                output_tokens INTEGER,
                model_used TEXT,
                response_time_ms INTEGER,
                finish_reason TEXT,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_history_entries_conversation
            ON history_entries(conversation_id, live, created_at, id)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _ensure_connected(self) -> aiosqlite.Connection:
        """Return the open connection, connecting on first use."""
        if self._connection is None:
            await self.connect()
        return self._connection

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conn = await self._ensure_connected()
        async with conn.execute(
            f"SELECT {', '.join(_CONVERSATION_COLUMNS)} FROM conversations WHERE id = ?",
            (conversation_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        data = dict(zip(_CONVERSATION_COLUMNS, row, strict=True))
        data["stream"] = bool(data["stream"])
        data["enabled_tools"] = (
            json.loads(data["enabled_tools"]) if data["enabled_tools"] is not None else None
        )
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return Conversation(**data)

    async def save_conversation(self, conversation: Conversation) -> None:
        conn = await self._ensure_connected()
        values = self._conversation_row(conversation.model_dump())
        placeholders = ", ".join("?" for _ in _CONVERSATION_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _CONVERSATION_COLUMNS if c != "id")

        await conn.execute(
            f"""
            INSERT INTO conversations ({', '.join(_CONVERSATION_COLUMNS)})
            VALUES ({placeholders})
            ON CONFLICT(id) DO UPDATE SET {updates}
            """,
            tuple(values[c] for c in _CONVERSATION_COLUMNS)
        )
        await conn.commit()

    async def update_conversation(self, conversation_id: str, fields: dict[str, Any]) -> None:
        conn = await self._ensure_connected()
        unknown = set(fields) - set(_CONVERSATION_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown conversation fields: {sorted(unknown)}")

        values = self._conversation_row({**fields, "updated_at": utcnow()})
        assignments = ", ".join(f"{column} = ?" for column in values)

        cursor = await conn.execute(
            f"UPDATE conversations SET {assignments} WHERE id = ?",
            (*values.values(), conversation_id)
        )
        if cursor.rowcount == 0:
            raise ConversationNotFoundError(conversation_id)
        await conn.commit()

    async def delete_conversation(self, conversation_id: str) -> None:
        conn = await self._ensure_connected()
        await conn.execute(
            "DELETE FROM history_entries WHERE conversation_id = ?",
            (conversation_id,)
        )
        await conn.execute(
            "DELETE FROM conversations WHERE id = ?",
            (conversation_id,)
        )
        await conn.commit()

    async def load_history(self, conversation_id: str) -> list[HistoryEntry]:
        conn = await self._ensure_connected()
        async with conn.execute(
            f"""
            SELECT {', '.join(_ENTRY_COLUMNS)}
            FROM history_entries
            WHERE conversation_id = ?
            ORDER BY created_at ASC, id ASC
            """,
            (conversation_id,)
        ) as cursor:
            rows = await cursor.fetchall()

        return [self._row_to_entry(row) for row in rows]

    async def append_entry(self, conversation_id: str, entry: HistoryEntry) -> int:
        conn = await self._ensure_connected()
        entry.conversation_id = conversation_id
        cursor = await conn.execute(
            f"""
            INSERT INTO history_entries ({', '.join(_ENTRY_COLUMNS[1:])})
            VALUES ({', '.join('?' for _ in _ENTRY_COLUMNS[1:])})
            """,
            (
                conversation_id,
                entry.role.value,
                entry.content,
                entry.tool_call_id,
                json.dumps([tc.model_dump() for tc in entry.tool_calls]),
                entry.attachment_path,
                entry.attachment_name,
                int(entry.live),
                entry.entry_type.value,
                entry.created_at.isoformat(timespec="microseconds"),
                entry.input_tokens,
                entry.output_tokens,
                entry.model_used,
                entry.response_time_ms,
                entry.finish_reason,
            )
        )
        await conn.commit()
        entry.id = cursor.lastrowid
        return entry.id

    async def mark_not_live(self, entry_ids: Iterable[int]) -> None:
        ids = list(entry_ids)
        if not ids:
            return
        conn = await self._ensure_connected()
        await conn.execute(
            f"UPDATE history_entries SET live = 0 WHERE id IN ({', '.join('?' for _ in ids)})",
            ids
        )
        await conn.commit()

    async def delete_entries(self, entry_ids: Iterable[int]) -> None:
        ids = list(entry_ids)
        if not ids:
            return
        conn = await self._ensure_connected()
        await conn.execute(
            f"DELETE FROM history_entries WHERE id IN ({', '.join('?' for _ in ids)})",
            ids
        )
        await conn.commit()

    @staticmethod
    def _conversation_row(data: dict[str, Any]) -> dict[str, Any]:
        """Convert model values into SQLite column values."""
        row = dict(data)
        if "stream" in row:
            row["stream"] = int(row["stream"])
        if "enabled_tools" in row and row["enabled_tools"] is not None:
            row["enabled_tools"] = json.dumps(row["enabled_tools"])
        for key in ("created_at", "updated_at"):
            if isinstance(row.get(key), datetime):
                row[key] = row[key].isoformat(timespec="microseconds")
        return row

    @staticmethod
    def _row_to_entry(row: tuple[Any, ...]) -> HistoryEntry:
        data = dict(zip(_ENTRY_COLUMNS, row, strict=True))
        return HistoryEntry(
            id=data["id"],
            conversation_id=data["conversation_id"],
            role=Role(data["role"]),
            content=data["content"],
            tool_call_id=data["tool_call_id"],
            tool_calls=[ToolCallRequest(**tc) for tc in json.loads(data["tool_calls"])],
            attachment_path=data["attachment_path"],
            attachment_name=data["attachment_name"],
            live=bool(data["live"]),
            entry_type=EntryType(data["entry_type"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            input_tokens=data["input_tokens"],
            output_tokens=data["output_tokens"],
            model_used=data["model_used"],
            response_time_ms=data["response_time_ms"],
            finish_reason=data["finish_reason"],
        )

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
