#!/usr/bin/env python3
"""
History Data Models

Pydantic models for stored conversations, messages and user preferences,
plus the pure list operations that keep a preference set well-formed.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

# ---------- Type definitions ----------

Sender = Literal["user", "ai"]


class PreferenceCategory(str, Enum):
    """Closed set of preference list keys a user profile may hold."""

    FAVORITE_GENRES = "favorite_genres"
    FAVORITE_ACTORS = "favorite_actors"
    FAVORITE_DIRECTORS = "favorite_directors"
    FAVORITE_MOVIES = "favorite_movies"
    FAVORITE_DECADES = "favorite_decades"
    DISLIKED_GENRES = "disliked_genres"
    DISLIKED_ACTORS = "disliked_actors"
    MOVIE_MOODS = "movie_moods"


# Liking and disliking the same thing is contradictory, so adding to one side
# removes the value from the other.
OPPOSITE_CATEGORIES: dict[PreferenceCategory, PreferenceCategory] = {
    PreferenceCategory.FAVORITE_GENRES: PreferenceCategory.DISLIKED_GENRES,
    PreferenceCategory.DISLIKED_GENRES: PreferenceCategory.FAVORITE_GENRES,
    PreferenceCategory.FAVORITE_ACTORS: PreferenceCategory.DISLIKED_ACTORS,
    PreferenceCategory.DISLIKED_ACTORS: PreferenceCategory.FAVORITE_ACTORS,
}

DEFAULT_MAX_ITEMS = 10


class InvalidPreferenceCategoryError(ValueError):
    """Raised when a preference key is outside ``PreferenceCategory``."""

    def __init__(self, category: str):
        super().__init__(f"Invalid preference category: {category}")
        self.category = category


class EmptyPreferenceValueError(ValueError):
    """Raised when a preference value is blank once surrounding whitespace is removed."""

    def __init__(self, category: PreferenceCategory):
        super().__init__(f"Preference value for '{category.value}' must not be empty")
        self.category = category


def _clean_value(category: PreferenceCategory, value: str) -> str:
    value = value.strip()
    if not value:
        raise EmptyPreferenceValueError(category)
    return value


def parse_category(category: str | PreferenceCategory) -> PreferenceCategory:
    """Validate a raw category key against the closed enumeration."""
    try:
        return PreferenceCategory(category)
    except ValueError as e:
        raise InvalidPreferenceCategoryError(str(category)) from e


# ---------- Conversation models ----------


class Conversation(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    title: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class StoredMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    conversation_id: str
    seq: int | None = None
    sender: Sender
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ---------- Preference models ----------


class PreferenceSet(BaseModel):
    """One ordered list per category, oldest first, plus a free-text note."""

    favorite_genres: list[str] = Field(default_factory=list)
    favorite_actors: list[str] = Field(default_factory=list)
    favorite_directors: list[str] = Field(default_factory=list)
    favorite_movies: list[str] = Field(default_factory=list)
    favorite_decades: list[str] = Field(default_factory=list)
    disliked_genres: list[str] = Field(default_factory=list)
    disliked_actors: list[str] = Field(default_factory=list)
    movie_moods: list[str] = Field(default_factory=list)
    other_notes: str | None = None

    def get_list(self, category: PreferenceCategory) -> list[str]:
        return list(getattr(self, category.value))

    def is_empty(self) -> bool:
        if self.other_notes:
            return False
        return not any(self.get_list(category) for category in PreferenceCategory)

    @classmethod
    def from_storage(cls, data: dict[str, Any] | None) -> PreferenceSet:
        """Build a set from persisted JSON, dropping unknown or malformed keys."""
        if not data:
            return cls()
        known = {category.value for category in PreferenceCategory}
        fields: dict[str, Any] = {}
        for key, value in data.items():
            if key in known and isinstance(value, list):
                fields[key] = [str(item) for item in value]
        notes = data.get("other_notes")
        if isinstance(notes, str) and notes:
            fields["other_notes"] = notes
        return cls(**fields)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def add_preference(
    prefs: PreferenceSet,
    category: str | PreferenceCategory,
    value: str,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> PreferenceSet:
    """Return a copy with ``value`` appended to ``category``.

    An existing occurrence moves to the end instead of duplicating, the value is
    dropped from the opposite category, and the oldest entries are evicted once
    the list exceeds ``max_items``.
    """
    key = parse_category(category)
    value = _clean_value(key, value)
    updates: dict[str, Any] = {}

    items = [item for item in prefs.get_list(key) if item != value]
    items.append(value)
    updates[key.value] = items[-max_items:]

    opposite = OPPOSITE_CATEGORIES.get(key)
    if opposite is not None:
        updates[opposite.value] = [
            item for item in prefs.get_list(opposite) if item != value
        ]

    return prefs.model_copy(update=updates)


def remove_preference(
    prefs: PreferenceSet, category: str | PreferenceCategory, value: str
) -> PreferenceSet:
    """Return a copy with every occurrence of ``value`` dropped from ``category``."""
    key = parse_category(category)
    value = _clean_value(key, value)
    items = [item for item in prefs.get_list(key) if item != value]
    return prefs.model_copy(update={key.value: items})
