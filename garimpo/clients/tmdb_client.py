"""
TMDb HTTP client.

Thin async wrapper over the TMDb v3 REST API returning raw JSON payloads.
Normalization for the model lives in ``garimpo.tools.movie_tools``.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

import httpx

from garimpo.chat.logging_utils import should_log_feature
from garimpo.config import Configuration

logger = logging.getLogger(__name__)

MovieListKind = Literal["now_playing", "popular", "top_rated", "upcoming"]


class TMDbError(Exception):
    """Raised when the catalog API fails or returns an unexpected payload."""


class TMDbClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.themoviedb.org/3",
        language: str = "en-US",
        region: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.language = language
        self.region = region
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(cls, configuration: Configuration) -> TMDbClient:
        tmdb_config = configuration.get_tmdb_config()
        return cls(
            api_key=configuration.tmdb_api_key,
            base_url=tmdb_config.get("base_url", "https://api.themoviedb.org/3"),
            language=tmdb_config.get("language", "en-US"),
            region=tmdb_config.get("region"),
            timeout=tmdb_config.get("timeout_seconds", 15.0),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> TMDbClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _get_params(self, **kwargs: Any) -> dict[str, Any]:
        """Helper to build request parameters with API key"""
        params: dict[str, Any] = {"api_key": self.api_key}
        params.update({k: v for k, v in kwargs.items() if v is not None})
        return params

    async def _get(self, path: str, **params: Any) -> dict[str, Any]:
        if should_log_feature("clients", "http_requests"):
            logger.info("→ TMDb: GET %s", path)
        try:
            response = await self._client.get(path, params=self._get_params(**params))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise TMDbError(
                f"TMDb API error {e.response.status_code} for {path}"
            ) from e
        except httpx.HTTPError as e:
            raise TMDbError(f"TMDb request failed for {path}: {e}") from e
        except ValueError as e:
            raise TMDbError(f"TMDb returned invalid JSON for {path}") from e

        if not isinstance(data, dict):
            raise TMDbError(f"TMDb returned an unexpected payload for {path}")
        return data

    async def search_movie(self, query: str, page: int = 1) -> dict[str, Any]:
        return await self._get("/search/movie", query=query, language=self.language, page=page)

    async def search_person(self, query: str, page: int = 1) -> dict[str, Any]:
        return await self._get("/search/person", query=query, language=self.language, page=page)

    async def movie_details(
        self, movie_id: int, append_to_response: str | None = None
    ) -> dict[str, Any]:
        return await self._get(
            f"/movie/{movie_id}",
            language=self.language,
            append_to_response=append_to_response,
        )

    async def movie_credits(self, movie_id: int) -> dict[str, Any]:
        return await self._get(f"/movie/{movie_id}/credits", language=self.language)

    async def movie_similar(self, movie_id: int) -> dict[str, Any]:
        return await self._get(f"/movie/{movie_id}/similar", language=self.language)

    async def movie_watch_providers(self, movie_id: int) -> dict[str, Any]:
        return await self._get(f"/movie/{movie_id}/watch/providers")

    async def person_movie_credits(self, person_id: int) -> dict[str, Any]:
        return await self._get(f"/person/{person_id}/movie_credits", language=self.language)

    async def discover_movies(
        self,
        sort_by: str = "vote_average.desc",
        with_genres: int | None = None,
        primary_release_year: int | None = None,
        vote_average_gte: float | None = None,
        vote_average_lte: float | None = None,
        vote_count_gte: int = 100,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "language": self.language,
            "sort_by": sort_by,
            "with_genres": with_genres,
            "primary_release_year": primary_release_year,
            "vote_average.gte": vote_average_gte,
            "vote_average.lte": vote_average_lte,
            "vote_count.gte": vote_count_gte,
        }
        return await self._get("/discover/movie", **params)

    async def movie_list(self, kind: MovieListKind) -> dict[str, Any]:
        """One of TMDb's curated movie lists."""
        return await self._get(f"/movie/{kind}", language=self.language, region=self.region)

    async def genre_list(self) -> dict[str, Any]:
        return await self._get("/genre/movie/list", language=self.language)
