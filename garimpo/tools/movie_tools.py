"""
Movie catalog tools.

Read operations over TMDb, normalized into small records the model can use.
Failures and empty results come back as descriptive strings instead of
exceptions, so a flaky catalog never aborts a conversation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

from garimpo.clients.tmdb_client import MovieListKind, TMDbClient, TMDbError

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5
LONG_LIST_LIMIT = 10
CAST_LIMIT = 10

# Payload shape surprises are reported like network failures
CATALOG_ERRORS = (TMDbError, KeyError, TypeError, ValueError)


# ---------- Tool arguments ----------


class SearchArgs(BaseModel):
    query: str = Field(description="Keyword, title fragment, genre, actor or director to search for.")


class TitleArgs(BaseModel):
    title: str = Field(description="The movie title, exactly as the user wrote it.")


class DiscoverArgs(BaseModel):
    genre_name: str | None = Field(default=None, description="Genre name, e.g. 'comedy'.")
    min_rating: float | None = Field(default=None, ge=0, le=10, description="Minimum average rating (0-10).")
    max_rating: float | None = Field(default=None, ge=0, le=10, description="Maximum average rating (0-10).")
    year: int | None = Field(default=None, description="Primary release year.")
    sort_by: Literal["vote_average.desc", "vote_average.asc", "popularity.desc"] = Field(
        default="vote_average.desc", description="Result ordering."
    )


class PersonArgs(BaseModel):
    person_name: str = Field(description="Actor or director name, exactly as the user wrote it.")


class NoArgs(BaseModel):
    pass


class UpcomingArgs(BaseModel):
    year: int | None = Field(default=None, description="Only keep releases from this year.")


class WatchProvidersArgs(BaseModel):
    title: str = Field(description="The movie title, exactly as the user wrote it.")
    region: str | None = Field(default=None, description="Two-letter country code, e.g. 'US' or 'BR'.")


# ---------- Normalization ----------


def summarize_movie(movie: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": movie.get("id"),
        "title": movie.get("title"),
        "overview": movie.get("overview"),
        "release_date": movie.get("release_date"),
        "vote_average": movie.get("vote_average"),
    }


def most_popular(results: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the highest-popularity entry; ties keep the catalog's order."""
    if not results:
        return None
    return max(results, key=lambda item: item.get("popularity") or 0)


class GenreCache:
    """Genre name to id table, fetched once and shared by every request."""

    def __init__(self) -> None:
        self._genres: dict[str, int] | None = None
        self._lock: asyncio.Lock | None = None

    async def get(self, loader: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, int]:
        if self._genres is not None:
            return self._genres
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._genres is None:
                logger.info("Fetching and caching the genre table")
                data = await loader()
                self._genres = {
                    genre["name"].lower(): genre["id"] for genre in data.get("genres", [])
                }
        return self._genres

    def clear(self) -> None:
        self._genres = None


class MovieGateway:
    """Catalog read operations exposed to the model as tools."""

    def __init__(self, client: TMDbClient, genre_cache: GenreCache | None = None):
        self.client = client
        self.genre_cache = genre_cache or GenreCache()

    async def _resolve_movie(self, title: str) -> dict[str, Any] | None:
        data = await self.client.search_movie(title)
        return most_popular(data.get("results", []))

    async def search_movies_by_keyword(self, query: str) -> list[dict[str, Any]] | str:
        try:
            data = await self.client.search_movie(query)
            results = data.get("results", [])
            if not results:
                return f'No movies found for "{query}".'
            return [summarize_movie(movie) for movie in results[:SEARCH_LIMIT]]
        except CATALOG_ERRORS as e:
            logger.error("search_movies_by_keyword failed: %s", e)
            return f'An error occurred while searching for movies matching "{query}".'

    async def get_movie_details(self, title: str) -> dict[str, Any] | str:
        try:
            match = await self._resolve_movie(title)
            if match is None:
                return f'I could not find a movie called "{title}". Is the title spelled correctly?'

            details = await self.client.movie_details(match["id"], append_to_response="credits")
            credits = details.get("credits", {})
            director = next(
                (person["name"] for person in credits.get("crew", []) if person.get("job") == "Director"),
                "Not found",
            )
            return {
                "title": details.get("title"),
                "overview": details.get("overview"),
                "release_date": details.get("release_date"),
                "vote_average": details.get("vote_average"),
                "genres": [genre["name"] for genre in details.get("genres", [])],
                "director": director,
                "cast": [actor["name"] for actor in credits.get("cast", [])[:SEARCH_LIMIT]],
            }
        except CATALOG_ERRORS as e:
            logger.error("get_movie_details failed: %s", e)
            return f'An error occurred while fetching details for "{title}".'

    async def discover_movies(self, args: DiscoverArgs) -> list[dict[str, Any]] | str:
        try:
            genre_id = None
            if args.genre_name:
                genres = await self.genre_cache.get(self.client.genre_list)
                genre_id = genres.get(args.genre_name.lower())
                if genre_id is None:
                    logger.info("Unknown genre '%s' ignored", args.genre_name)

            data = await self.client.discover_movies(
                sort_by=args.sort_by,
                with_genres=genre_id,
                primary_release_year=args.year,
                vote_average_gte=args.min_rating,
                vote_average_lte=args.max_rating,
            )
            results = data.get("results", [])
            if not results:
                return "No hidden gems matched those filters. Try a broader search!"
            return [summarize_movie(movie) for movie in results[:SEARCH_LIMIT]]
        except CATALOG_ERRORS as e:
            logger.error("discover_movies failed: %s", e)
            return "An error occurred while discovering movies with those filters."

    async def get_person_filmography(self, person_name: str) -> list[dict[str, Any]] | str:
        try:
            data = await self.client.search_person(person_name)
            person = most_popular(data.get("results", []))
            if person is None:
                return f'I could not find anyone called "{person_name}".'

            credits = await self.client.person_movie_credits(person["id"])
            films: dict[Any, dict[str, Any]] = {}
            for film in [*credits.get("cast", []), *credits.get("crew", [])]:
                films.setdefault(film.get("id"), film)
            if not films:
                return f'I found "{person_name}" but no movies associated with them.'

            ranked = sorted(films.values(), key=lambda film: film.get("popularity") or 0, reverse=True)
            return [
                {
                    "title": film.get("title"),
                    "release_date": film.get("release_date"),
                    "role": film.get("character") or film.get("job"),
                }
                for film in ranked[:LONG_LIST_LIMIT]
            ]
        except CATALOG_ERRORS as e:
            logger.error("get_person_filmography failed: %s", e)
            return f'An error occurred while fetching the filmography of "{person_name}".'

    async def _movie_list(
        self, kind: MovieListKind, empty_message: str, error_message: str
    ) -> list[dict[str, Any]] | str:
        try:
            data = await self.client.movie_list(kind)
            results = data.get("results", [])
            if not results:
                return empty_message
            return [summarize_movie(movie) for movie in results[:SEARCH_LIMIT]]
        except CATALOG_ERRORS as e:
            logger.error("%s list failed: %s", kind, e)
            return error_message

    async def get_now_playing_movies(self) -> list[dict[str, Any]] | str:
        return await self._movie_list(
            "now_playing",
            "I could not find any movies in theaters right now.",
            "An error occurred while fetching the movies in theaters.",
        )

    async def get_popular_movies(self) -> list[dict[str, Any]] | str:
        return await self._movie_list(
            "popular",
            "I could not find any popular movies right now.",
            "An error occurred while fetching popular movies.",
        )

    async def get_top_rated_movies(self) -> list[dict[str, Any]] | str:
        return await self._movie_list(
            "top_rated",
            "I could not find the top rated movies.",
            "An error occurred while fetching the top rated movies.",
        )

    async def get_upcoming_movies(self, year: int | None = None) -> list[dict[str, Any]] | str:
        try:
            data = await self.client.movie_list("upcoming")
            results = data.get("results", [])
            if year is not None:
                results = [
                    movie
                    for movie in results
                    if (movie.get("release_date") or "")[:4] == str(year)
                ]
            if not results:
                if year is not None:
                    return f"I could not find any upcoming releases for {year}."
                return "I could not find any upcoming releases."
            return [summarize_movie(movie) for movie in results[:LONG_LIST_LIMIT]]
        except CATALOG_ERRORS as e:
            logger.error("get_upcoming_movies failed: %s", e)
            return "An error occurred while fetching upcoming releases."

    async def get_similar_movies(self, title: str) -> list[dict[str, Any]] | str:
        try:
            match = await self._resolve_movie(title)
            if match is None:
                return f'I could not find a movie called "{title}".'
            data = await self.client.movie_similar(match["id"])
            results = data.get("results", [])
            if not results:
                return f'No similar movies found for "{title}".'
            return [summarize_movie(movie) for movie in results[:SEARCH_LIMIT]]
        except CATALOG_ERRORS as e:
            logger.error("get_similar_movies failed: %s", e)
            return f'An error occurred while looking for movies similar to "{title}".'

    async def get_movie_cast(self, title: str) -> dict[str, Any] | str:
        try:
            match = await self._resolve_movie(title)
            if match is None:
                return f'I could not find a movie called "{title}".'
            credits = await self.client.movie_credits(match["id"])
            cast = credits.get("cast", [])
            if not cast:
                return f'No cast information found for "{title}".'
            return {
                "title": match.get("title"),
                "cast": [
                    {"name": actor.get("name"), "character": actor.get("character")}
                    for actor in cast[:CAST_LIMIT]
                ],
            }
        except CATALOG_ERRORS as e:
            logger.error("get_movie_cast failed: %s", e)
            return f'An error occurred while fetching the cast of "{title}".'

    async def get_watch_providers(self, title: str, region: str | None = None) -> dict[str, Any] | str:
        region = (region or self.client.region or "US").upper()
        try:
            match = await self._resolve_movie(title)
            if match is None:
                return f'I could not find a movie called "{title}".'
            data = await self.client.movie_watch_providers(match["id"])
            options = data.get("results", {}).get(region)
            if not options:
                return f'No watch providers listed for "{title}" in {region}.'
            return {
                "title": match.get("title"),
                "region": region,
                "link": options.get("link"),
                **{
                    kind: [provider.get("provider_name") for provider in options.get(kind, [])]
                    for kind in ("flatrate", "rent", "buy")
                    if options.get(kind)
                },
            }
        except CATALOG_ERRORS as e:
            logger.error("get_watch_providers failed: %s", e)
            return f'An error occurred while fetching where to watch "{title}".'
