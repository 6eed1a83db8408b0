"""Wires the catalog and preference tools into a ``ToolRegistry``."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel

from .movie_tools import (
    DiscoverArgs,
    MovieGateway,
    NoArgs,
    PersonArgs,
    SearchArgs,
    TitleArgs,
    UpcomingArgs,
    WatchProvidersArgs,
)
from .preference_tools import PreferenceArgs, PreferenceTools
from .registry import ToolContext, ToolName, ToolRegistry, ToolSpec, definition_from_model

ArgsT = TypeVar("ArgsT", bound=BaseModel)


def _spec(
    name: ToolName,
    description: str,
    args_model: type[ArgsT],
    run: Callable[[ArgsT, ToolContext], Awaitable[Any]],
) -> tuple[ToolName, ToolSpec]:
    async def handler(arguments: dict[str, Any], context: ToolContext) -> Any:
        # pydantic.ValidationError propagates as an ordinary tool failure
        args = args_model.model_validate(arguments)
        return await run(args, context)

    return name, ToolSpec(definition_from_model(name, description, args_model), handler)


def create_tool_registry(gateway: MovieGateway, preferences: PreferenceTools) -> ToolRegistry:
    specs = dict(
        [
            _spec(
                ToolName.SEARCH_MOVIES_BY_KEYWORD,
                "Search movies by a keyword, title fragment, genre, actor or director.",
                SearchArgs,
                lambda a, _c: gateway.search_movies_by_keyword(a.query),
            ),
            _spec(
                ToolName.GET_MOVIE_DETAILS,
                "Get detailed information (genres, director, main cast) about a specific movie by title.",
                TitleArgs,
                lambda a, _c: gateway.get_movie_details(a.title),
            ),
            _spec(
                ToolName.DISCOVER_MOVIES,
                "Discover movies using filters such as genre, release year and rating range.",
                DiscoverArgs,
                lambda a, _c: gateway.discover_movies(a),
            ),
            _spec(
                ToolName.GET_PERSON_FILMOGRAPHY,
                "List the best-known movies of an actor or director.",
                PersonArgs,
                lambda a, _c: gateway.get_person_filmography(a.person_name),
            ),
            _spec(
                ToolName.GET_NOW_PLAYING_MOVIES,
                "List movies currently playing in theaters.",
                NoArgs,
                lambda _a, _c: gateway.get_now_playing_movies(),
            ),
            _spec(
                ToolName.GET_POPULAR_MOVIES,
                "List the movies that are popular right now.",
                NoArgs,
                lambda _a, _c: gateway.get_popular_movies(),
            ),
            _spec(
                ToolName.GET_TOP_RATED_MOVIES,
                "List the best rated movies of all time.",
                NoArgs,
                lambda _a, _c: gateway.get_top_rated_movies(),
            ),
            _spec(
                ToolName.GET_UPCOMING_MOVIES,
                "List upcoming theatrical releases, optionally only those from a given year.",
                UpcomingArgs,
                lambda a, _c: gateway.get_upcoming_movies(a.year),
            ),
            _spec(
                ToolName.GET_SIMILAR_MOVIES,
                "Find movies similar to a given movie title.",
                TitleArgs,
                lambda a, _c: gateway.get_similar_movies(a.title),
            ),
            _spec(
                ToolName.GET_MOVIE_CAST,
                "Get the main cast and their characters for a movie title.",
                TitleArgs,
                lambda a, _c: gateway.get_movie_cast(a.title),
            ),
            _spec(
                ToolName.GET_WATCH_PROVIDERS,
                "Find where a movie can be streamed, rented or bought in a country.",
                WatchProvidersArgs,
                lambda a, _c: gateway.get_watch_providers(a.title, a.region),
            ),
            _spec(
                ToolName.GET_USER_PREFERENCES,
                "Read the user's saved movie preferences.",
                NoArgs,
                lambda _a, c: preferences.get_user_preferences(c.user_id),
            ),
            _spec(
                ToolName.SAVE_USER_PREFERENCE,
                "Save one item to the user's preferences, e.g. a favorite genre or a disliked actor.",
                PreferenceArgs,
                lambda a, c: preferences.save_user_preference(c.user_id, a.category, a.value),
            ),
            _spec(
                ToolName.REMOVE_USER_PREFERENCE,
                "Remove one item from the user's preferences.",
                PreferenceArgs,
                lambda a, c: preferences.remove_user_preference(c.user_id, a.category, a.value),
            ),
        ]
    )
    return ToolRegistry(specs)
