"""
Preference tools.

Let the model read and update the caller's saved taste profile. The category
key is checked against ``PreferenceCategory`` before anything is written;
storage repeats the check.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from garimpo.history.models import (
    EmptyPreferenceValueError,
    InvalidPreferenceCategoryError,
    PreferenceCategory,
    PreferenceSet,
    parse_category,
)
from garimpo.history.repository import PreferenceRepository

logger = logging.getLogger(__name__)

CATEGORY_LABELS: dict[PreferenceCategory, str] = {
    PreferenceCategory.FAVORITE_GENRES: "Favorite genres",
    PreferenceCategory.FAVORITE_ACTORS: "Favorite actors",
    PreferenceCategory.FAVORITE_DIRECTORS: "Favorite directors",
    PreferenceCategory.FAVORITE_MOVIES: "Favorite movies",
    PreferenceCategory.FAVORITE_DECADES: "Favorite decades",
    PreferenceCategory.DISLIKED_GENRES: "Disliked genres",
    PreferenceCategory.DISLIKED_ACTORS: "Disliked actors",
    PreferenceCategory.MOVIE_MOODS: "Movie moods",
}

_CATEGORY_VALUES = [category.value for category in PreferenceCategory]


class PreferenceArgs(BaseModel):
    # Plain str so an invalid key reaches the tool and gets a readable answer
    category: str = Field(
        description="Preference list to update.",
        json_schema_extra={"enum": _CATEGORY_VALUES},
    )
    value: str = Field(min_length=1, description="The item to save or remove, e.g. 'Horror'.")


def format_preferences(prefs: PreferenceSet | None) -> str:
    if prefs is None:
        return (
            "The user has not set any preferences yet. "
            "Ask about their taste before making a recommendation."
        )

    lines = [
        f"- {CATEGORY_LABELS[category]}: {', '.join(prefs.get_list(category))}"
        for category in PreferenceCategory
        if prefs.get_list(category)
    ]
    if prefs.other_notes:
        lines.append(f"- Notes: {prefs.other_notes}")
    if not lines:
        return (
            "The user has a preference profile, but it is empty. "
            "Ask about their taste before making a recommendation."
        )
    return "The user's preferences are:\n" + "\n".join(lines)


def _invalid_category_message(category: str) -> str:
    return (
        f"'{category}' is not a valid preference category. "
        f"Valid categories are: {', '.join(_CATEGORY_VALUES)}."
    )


def _empty_value_message(category: PreferenceCategory) -> str:
    return f"Nothing was changed: the value for {category.value} was empty."


class PreferenceTools:
    def __init__(self, repo: PreferenceRepository):
        self.repo = repo

    async def get_user_preferences(self, user_id: str) -> str:
        return format_preferences(await self.repo.get_preferences(user_id))

    async def save_user_preference(self, user_id: str, category: str, value: str) -> str:
        try:
            key = parse_category(category)
        except InvalidPreferenceCategoryError:
            logger.warning("Rejected preference write with category '%s'", category)
            return _invalid_category_message(category)

        try:
            await self.repo.add_preference(user_id, key, value)
        except EmptyPreferenceValueError:
            logger.warning("Rejected blank preference value under '%s'", key.value)
            return _empty_value_message(key)
        return f"Preference '{value.strip()}' saved under {key.value}."

    async def remove_user_preference(self, user_id: str, category: str, value: str) -> str:
        try:
            key = parse_category(category)
        except InvalidPreferenceCategoryError:
            logger.warning("Rejected preference removal with category '%s'", category)
            return _invalid_category_message(category)

        try:
            await self.repo.remove_preference(user_id, key, value)
        except EmptyPreferenceValueError:
            logger.warning("Rejected blank preference removal under '%s'", key.value)
            return _empty_value_message(key)
        return f"Preference '{value.strip()}' removed from {key.value}."
