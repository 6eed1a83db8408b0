#!/usr/bin/env python3
"""
SQLite Repository Implementation

Persistent storage for conversations, messages and user preferences.

CONFIG: chat.storage.type = "sqlite", chat.storage.database_path
FEATURES: WAL mode, one connection per operation, explicit transactions for
every multi-statement write
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from .models import (
    DEFAULT_MAX_ITEMS,
    Conversation,
    PreferenceCategory,
    PreferenceSet,
    Sender,
    StoredMessage,
    add_preference,
    parse_category,
    remove_preference,
)

logger = logging.getLogger(__name__)


class SQLiteStore:
    """Schema setup and connection helpers shared by the SQLite repositories."""

    def __init__(self, db_path: str = "garimpo.db"):
        self.db_path = db_path
        self._lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Initialize database schema if not already done."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                # Enable WAL mode for better concurrency
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS conversations (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS messages (
                        id TEXT PRIMARY KEY,
                        conversation_id TEXT NOT NULL,
                        seq INTEGER NOT NULL,
                        sender TEXT NOT NULL CHECK (sender IN ('user', 'ai')),
                        text TEXT NOT NULL,
                        metadata TEXT,
                        created_at TEXT NOT NULL
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS user_preferences (
                        user_id TEXT PRIMARY KEY,
                        data TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)

                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_conversations_user
                    ON conversations(user_id, updated_at)
                """)
                await db.execute("""
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_conversation_seq
                    ON messages(conversation_id, seq)
                """)

                await db.commit()

            self._initialized = True

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection in autocommit mode; transactions are explicit."""
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            yield db

    @staticmethod
    @asynccontextmanager
    async def _transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
        """Run the enclosed statements as one all-or-nothing write."""
        await db.execute("BEGIN IMMEDIATE")
        try:
            yield db
        except BaseException:
            await db.execute("ROLLBACK")
            raise
        await db.execute("COMMIT")


def _now() -> str:
    return datetime.now(UTC).isoformat()


class SQLiteConversationRepo(SQLiteStore):
    """Conversation and message storage."""

    def _deserialize_conversation(self, row: dict[str, Any]) -> Conversation:
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _deserialize_message(self, row: dict[str, Any]) -> StoredMessage:
        return StoredMessage(
            id=row["id"],
            conversation_id=row["conversation_id"],
            seq=row["seq"],
            sender=row["sender"],
            text=row["text"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    async def create_conversation(self, user_id: str, title: str) -> Conversation:
        conversation = Conversation(user_id=user_id, title=title)
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO conversations (id, user_id, title, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.user_id,
                    conversation.title,
                    conversation.created_at.isoformat(),
                    conversation.updated_at.isoformat(),
                ),
            )
        logger.info("Conversation created with id %s", conversation.id)
        return conversation

    async def get_conversation_owner(self, conversation_id: str) -> str | None:
        async with (
            self._connect() as db,
            db.execute(
                "SELECT user_id FROM conversations WHERE id = ?", (conversation_id,)
            ) as cursor,
        ):
            row = await cursor.fetchone()
            return row["user_id"] if row else None

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        async with (
            self._connect() as db,
            db.execute(
                "SELECT * FROM conversations WHERE user_id = ? ORDER BY updated_at DESC",
                (user_id,),
            ) as cursor,
        ):
            rows = await cursor.fetchall()
            return [self._deserialize_conversation(dict(row)) for row in rows]

    async def get_history(self, conversation_id: str) -> list[StoredMessage]:
        async with (
            self._connect() as db,
            db.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY seq",
                (conversation_id,),
            ) as cursor,
        ):
            rows = await cursor.fetchall()
            return [self._deserialize_message(dict(row)) for row in rows]

    async def get_messages(self, conversation_id: str) -> list[StoredMessage]:
        return await self.get_history(conversation_id)

    async def append_message(
        self,
        conversation_id: str,
        sender: Sender,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredMessage:
        created_at = _now()
        message_id = str(uuid.uuid4())

        async with self._connect() as db, self._transaction(db):
            async with db.execute(
                "SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            ) as cursor:
                row = await cursor.fetchone()
                seq = row[0] if row else 1

            await db.execute(
                "INSERT INTO messages (id, conversation_id, seq, sender, text, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    message_id,
                    conversation_id,
                    seq,
                    sender,
                    text,
                    json.dumps(metadata) if metadata else None,
                    created_at,
                ),
            )
            cursor = await db.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (created_at, conversation_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Unknown conversation: {conversation_id}")

        logger.debug("Message from '%s' appended to conversation %s", sender, conversation_id)
        return StoredMessage(
            id=message_id,
            conversation_id=conversation_id,
            seq=seq,
            sender=sender,
            text=text,
            metadata=metadata or {},
            created_at=datetime.fromisoformat(created_at),
        )

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self._connect() as db, self._transaction(db):
            await db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            cursor = await db.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
            deleted = cursor.rowcount > 0
        return deleted


class SQLitePreferenceRepo(SQLiteStore):
    """User preference storage; one JSON document per user."""

    def __init__(self, db_path: str = "garimpo.db", max_items: int = DEFAULT_MAX_ITEMS):
        super().__init__(db_path)
        self.max_items = max_items

    @staticmethod
    async def _load(db: aiosqlite.Connection, user_id: str) -> PreferenceSet | None:
        async with db.execute(
            "SELECT data FROM user_preferences WHERE user_id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            data = json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable preferences for user %s", user_id)
            return PreferenceSet()
        # Unknown keys in stored data never reach the caller
        return PreferenceSet.from_storage(data if isinstance(data, dict) else None)

    @staticmethod
    async def _store(db: aiosqlite.Connection, user_id: str, prefs: PreferenceSet) -> None:
        await db.execute(
            "INSERT INTO user_preferences (user_id, data, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET data = excluded.data, "
            "updated_at = excluded.updated_at",
            (user_id, json.dumps(prefs.to_storage()), _now()),
        )

    async def get_preferences(self, user_id: str) -> PreferenceSet | None:
        async with self._connect() as db:
            return await self._load(db, user_id)

    async def upsert_preferences(self, user_id: str, prefs: PreferenceSet) -> None:
        async with self._connect() as db:
            await self._store(db, user_id, prefs)

    async def add_preference(
        self, user_id: str, category: PreferenceCategory | str, value: str
    ) -> PreferenceSet:
        key = parse_category(category)
        async with self._connect() as db, self._transaction(db):
            current = await self._load(db, user_id) or PreferenceSet()
            updated = add_preference(current, key, value, self.max_items)
            await self._store(db, user_id, updated)
        logger.info("Preference '%s' saved under '%s' for user %s", value, key.value, user_id)
        return updated

    async def remove_preference(
        self, user_id: str, category: PreferenceCategory | str, value: str
    ) -> PreferenceSet:
        key = parse_category(category)
        async with self._connect() as db, self._transaction(db):
            current = await self._load(db, user_id) or PreferenceSet()
            updated = remove_preference(current, key, value)
            await self._store(db, user_id, updated)
        logger.info("Preference '%s' removed from '%s' for user %s", value, key.value, user_id)
        return updated
