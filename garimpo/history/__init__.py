#!/usr/bin/env python3
"""
History Module

Conversation and preference storage with SQLite and in-memory backends.
"""

from __future__ import annotations

from .factory import create_repositories
from .models import (
    Conversation,
    EmptyPreferenceValueError,
    InvalidPreferenceCategoryError,
    PreferenceCategory,
    PreferenceSet,
    StoredMessage,
)
from .repository import (
    ConversationNotFoundError,
    ConversationRepository,
    PreferenceRepository,
)

__all__ = [
    "Conversation",
    "ConversationNotFoundError",
    "ConversationRepository",
    "EmptyPreferenceValueError",
    "InvalidPreferenceCategoryError",
    "PreferenceCategory",
    "PreferenceRepository",
    "PreferenceSet",
    "StoredMessage",
    "create_repositories",
]
