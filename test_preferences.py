"""Preference list rules, the category boundary and the preference tools."""

from __future__ import annotations

import pytest

from garimpo.history.memory_repo import InMemoryPreferenceRepo
from garimpo.history.models import (
    EmptyPreferenceValueError,
    InvalidPreferenceCategoryError,
    PreferenceCategory,
    PreferenceSet,
    add_preference,
    remove_preference,
)
from garimpo.tools.preference_tools import PreferenceTools, format_preferences


def test_add_appends_at_end():
    prefs = add_preference(PreferenceSet(), "favorite_genres", "Horror")
    prefs = add_preference(prefs, "favorite_genres", "Comedy")

    assert prefs.favorite_genres == ["Horror", "Comedy"]


def test_re_adding_moves_value_to_end_without_duplicates():
    prefs = PreferenceSet(favorite_actors=["Tom Hanks", "Meryl Streep", "Viola Davis"])

    prefs = add_preference(prefs, PreferenceCategory.FAVORITE_ACTORS, "Tom Hanks")

    assert prefs.favorite_actors == ["Meryl Streep", "Viola Davis", "Tom Hanks"]


def test_list_is_capped_by_evicting_oldest():
    prefs = PreferenceSet()
    for decade in range(1900, 2020, 10):
        prefs = add_preference(prefs, "favorite_decades", f"{decade}s", max_items=10)

    assert len(prefs.favorite_decades) == 10
    assert prefs.favorite_decades[0] == "1920s"
    assert prefs.favorite_decades[-1] == "2010s"


def test_adding_to_one_side_removes_from_the_opposite():
    prefs = PreferenceSet(disliked_genres=["Horror", "Musical"])

    prefs = add_preference(prefs, "favorite_genres", "Horror")

    assert prefs.favorite_genres == ["Horror"]
    assert prefs.disliked_genres == ["Musical"]

    prefs = add_preference(prefs, "disliked_genres", "Horror")
    assert prefs.favorite_genres == []
    assert prefs.disliked_genres == ["Musical", "Horror"]


def test_remove_drops_value():
    prefs = PreferenceSet(movie_moods=["cozy", "tense"])

    prefs = remove_preference(prefs, "movie_moods", "cozy")

    assert prefs.movie_moods == ["tense"]


def test_original_set_is_left_untouched():
    original = PreferenceSet(favorite_genres=["Drama"])

    add_preference(original, "favorite_genres", "Action")

    assert original.favorite_genres == ["Drama"]


@pytest.mark.parametrize("category", ["password_hash", "other_notes", "", "FAVORITE_GENRES"])
def test_unknown_category_is_rejected(category):
    with pytest.raises(InvalidPreferenceCategoryError):
        add_preference(PreferenceSet(), category, "x")


def test_storage_filters_unknown_and_malformed_keys():
    prefs = PreferenceSet.from_storage(
        {
            "favorite_genres": ["Drama"],
            "is_admin": ["yes"],
            "favorite_actors": "not a list",
            "other_notes": "loves long movies",
        }
    )

    assert prefs.favorite_genres == ["Drama"]
    assert prefs.favorite_actors == []
    assert prefs.other_notes == "loves long movies"
    assert "is_admin" not in prefs.to_storage()


@pytest.mark.asyncio
async def test_memory_repo_applies_cap_and_opposites():
    repo = InMemoryPreferenceRepo(max_items=2)

    await repo.add_preference("u1", "favorite_actors", "A")
    await repo.add_preference("u1", "favorite_actors", "B")
    await repo.add_preference("u1", "favorite_actors", "C")
    prefs = await repo.add_preference("u1", "disliked_actors", "C")

    assert prefs.favorite_actors == ["B"]
    assert prefs.disliked_actors == ["C"]
    assert await repo.get_preferences("someone-else") is None


@pytest.mark.asyncio
async def test_memory_repo_rejects_invalid_category():
    repo = InMemoryPreferenceRepo()

    with pytest.raises(InvalidPreferenceCategoryError):
        await repo.add_preference("u1", "role", "admin")
    assert await repo.get_preferences("u1") is None


@pytest.mark.asyncio
async def test_save_tool_reports_invalid_category_without_writing():
    repo = InMemoryPreferenceRepo()
    tools = PreferenceTools(repo)

    reply = await tools.save_user_preference("u1", "is_admin", "true")

    assert "not a valid preference category" in reply
    assert await repo.get_preferences("u1") is None


@pytest.mark.asyncio
async def test_save_and_remove_tools_update_repository():
    repo = InMemoryPreferenceRepo()
    tools = PreferenceTools(repo)

    await tools.save_user_preference("u1", "favorite_directors", "Agnès Varda")
    await tools.save_user_preference("u1", "favorite_directors", "Bong Joon-ho")
    await tools.remove_user_preference("u1", "favorite_directors", "Agnès Varda")

    prefs = await repo.get_preferences("u1")
    assert prefs.favorite_directors == ["Bong Joon-ho"]
    summary = await tools.get_user_preferences("u1")
    assert "Favorite directors: Bong Joon-ho" in summary


def test_format_preferences_variants():
    assert "not set any preferences" in format_preferences(None)
    assert "empty" in format_preferences(PreferenceSet())
    text = format_preferences(PreferenceSet(favorite_genres=["Drama", "Noir"]))
    assert text == "The user's preferences are:\n- Favorite genres: Drama, Noir"


@pytest.mark.parametrize("value", ["", "   ", "\t\n"])
def test_blank_values_are_rejected(value):
    prefs = PreferenceSet(favorite_genres=["Drama"])

    with pytest.raises(EmptyPreferenceValueError):
        add_preference(prefs, "favorite_genres", value)
    with pytest.raises(EmptyPreferenceValueError):
        remove_preference(prefs, "favorite_genres", value)


def test_values_are_stored_stripped():
    prefs = add_preference(PreferenceSet(), "favorite_actors", "  Tilda Swinton ")

    assert prefs.favorite_actors == ["Tilda Swinton"]


@pytest.mark.asyncio
async def test_save_tool_reports_blank_value_without_writing():
    repo = InMemoryPreferenceRepo()
    tools = PreferenceTools(repo)

    reply = await tools.save_user_preference("u1", "favorite_genres", "   ")

    assert "saved under" not in reply
    assert "empty" in reply
    assert await repo.get_preferences("u1") is None

    await tools.save_user_preference("u1", "favorite_genres", "Horror")
    reply = await tools.remove_user_preference("u1", "favorite_genres", " ")

    assert "empty" in reply
    prefs = await repo.get_preferences("u1")
    assert prefs.favorite_genres == ["Horror"]
