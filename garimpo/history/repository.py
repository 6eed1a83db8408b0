#!/usr/bin/env python3
"""
Repository Interfaces

Storage protocols for conversations and user preferences.
"""

from __future__ import annotations

from typing import Any, Protocol

from .models import Conversation, PreferenceCategory, PreferenceSet, Sender, StoredMessage


class ConversationNotFoundError(LookupError):
    """Raised when a conversation does not exist or belongs to another user."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ConversationRepository(Protocol):
    """Protocol defining the interface for conversation storage backends."""

    async def create_conversation(self, user_id: str, title: str) -> Conversation: ...

    async def get_conversation_owner(self, conversation_id: str) -> str | None: ...

    async def list_conversations(self, user_id: str) -> list[Conversation]: ...

    async def get_history(self, conversation_id: str) -> list[StoredMessage]:
        """Messages in chronological order, as handed to the model."""
        ...

    async def get_messages(self, conversation_id: str) -> list[StoredMessage]: ...

    async def append_message(
        self,
        conversation_id: str,
        sender: Sender,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredMessage:
        """Insert a message and bump the conversation's ``updated_at`` atomically."""
        ...

    async def delete_conversation(self, conversation_id: str) -> bool: ...


class PreferenceRepository(Protocol):
    """Protocol defining the interface for user preference storage."""

    async def get_preferences(self, user_id: str) -> PreferenceSet | None: ...

    async def upsert_preferences(self, user_id: str, prefs: PreferenceSet) -> None: ...

    async def add_preference(
        self, user_id: str, category: PreferenceCategory | str, value: str
    ) -> PreferenceSet: ...

    async def remove_preference(
        self, user_id: str, category: PreferenceCategory | str, value: str
    ) -> PreferenceSet: ...
