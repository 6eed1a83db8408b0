#!/usr/bin/env python3
"""
Repository Factory

Creates the conversation and preference repositories from configuration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .memory_repo import InMemoryConversationRepo, InMemoryPreferenceRepo
from .repository import ConversationRepository, PreferenceRepository
from .sqlite_repo import SQLiteConversationRepo, SQLitePreferenceRepo

if TYPE_CHECKING:
    from garimpo.config import Configuration

logger = logging.getLogger(__name__)


def create_repositories(
    config: Configuration,
) -> tuple[ConversationRepository, PreferenceRepository]:
    """Create the conversation and preference repositories.

    ``chat.storage.type`` selects ``sqlite`` (default) or ``memory``.
    """
    storage_config = config.get_chat_storage_config()
    max_items = config.get_max_preference_items()
    storage_type = storage_config.get("type", "sqlite")

    if storage_type == "memory":
        logger.info("Using in-memory storage - data is lost on restart")
        return InMemoryConversationRepo(), InMemoryPreferenceRepo(max_items=max_items)

    if storage_type != "sqlite":
        raise ValueError(f"Unknown chat.storage.type '{storage_type}'")

    db_path = storage_config.get("database_path", "garimpo.db")
    logger.info("Using SQLite storage at %s", db_path)
    return (
        SQLiteConversationRepo(db_path),
        SQLitePreferenceRepo(db_path, max_items=max_items),
    )
