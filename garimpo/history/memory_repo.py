#!/usr/bin/env python3
"""
In-Memory Repository Implementation

Session-only storage for conversations and preferences.

CONFIG: chat.storage.type = "memory"
PURPOSE: Development/testing - all data lost on restart
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

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


class InMemoryConversationRepo:
    """Conversation storage kept in process memory."""

    def __init__(self):
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[StoredMessage]] = {}

    async def create_conversation(self, user_id: str, title: str) -> Conversation:
        conversation = Conversation(user_id=user_id, title=title)
        self._conversations[conversation.id] = conversation
        self._messages[conversation.id] = []
        return conversation

    async def get_conversation_owner(self, conversation_id: str) -> str | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.user_id if conversation else None

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        owned = [c for c in self._conversations.values() if c.user_id == user_id]
        return sorted(owned, key=lambda c: c.updated_at, reverse=True)

    async def get_history(self, conversation_id: str) -> list[StoredMessage]:
        return list(self._messages.get(conversation_id, []))

    async def get_messages(self, conversation_id: str) -> list[StoredMessage]:
        return await self.get_history(conversation_id)

    async def append_message(
        self,
        conversation_id: str,
        sender: Sender,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredMessage:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise KeyError(f"Unknown conversation: {conversation_id}")

        messages = self._messages[conversation_id]
        message = StoredMessage(
            conversation_id=conversation_id,
            seq=len(messages) + 1,
            sender=sender,
            text=text,
            metadata=metadata or {},
        )
        # No await between the two writes, so readers never see one without the other
        messages.append(message)
        conversation.updated_at = datetime.now(UTC)
        return message

    async def delete_conversation(self, conversation_id: str) -> bool:
        self._messages.pop(conversation_id, None)
        return self._conversations.pop(conversation_id, None) is not None


class InMemoryPreferenceRepo:
    """Preference storage kept in process memory."""

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS):
        self.max_items = max_items
        self._prefs: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get_preferences(self, user_id: str) -> PreferenceSet | None:
        data = self._prefs.get(user_id)
        return PreferenceSet.from_storage(data) if data is not None else None

    async def upsert_preferences(self, user_id: str, prefs: PreferenceSet) -> None:
        self._prefs[user_id] = prefs.to_storage()

    async def add_preference(
        self, user_id: str, category: PreferenceCategory | str, value: str
    ) -> PreferenceSet:
        key = parse_category(category)
        async with self._lock:
            current = await self.get_preferences(user_id) or PreferenceSet()
            updated = add_preference(current, key, value, self.max_items)
            await self.upsert_preferences(user_id, updated)
        logger.info("Preference '%s' saved under '%s' for user %s", value, key.value, user_id)
        return updated

    async def remove_preference(
        self, user_id: str, category: PreferenceCategory | str, value: str
    ) -> PreferenceSet:
        key = parse_category(category)
        async with self._lock:
            current = await self.get_preferences(user_id) or PreferenceSet()
            updated = remove_preference(current, key, value)
            await self.upsert_preferences(user_id, updated)
        logger.info("Preference '%s' removed from '%s' for user %s", value, key.value, user_id)
        return updated
