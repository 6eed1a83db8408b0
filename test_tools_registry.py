"""Tool registry totality, schemas and execution."""

from __future__ import annotations

import httpx
import pytest
from pydantic import ValidationError

from conftest import make_registry
from garimpo.clients.tmdb_client import TMDbClient
from garimpo.history.memory_repo import InMemoryPreferenceRepo
from garimpo.tools import (
    MovieGateway,
    PreferenceTools,
    ToolContext,
    ToolName,
    ToolRegistry,
    UnknownToolError,
    create_tool_registry,
)


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


@pytest.fixture()
def registry_and_repo():
    client = TMDbClient(api_key="k", base_url="https://tmdb.test", transport=httpx.MockTransport(_unreachable))
    repo = InMemoryPreferenceRepo()
    return create_tool_registry(MovieGateway(client), PreferenceTools(repo)), repo


def test_registry_requires_every_tool():
    full = make_registry()
    partial = {name: full._specs[name] for name in list(ToolName)[:-1]}

    with pytest.raises(ValueError, match="remove_user_preference"):
        ToolRegistry(partial)


def test_schemas_cover_every_tool_in_enum_order(registry_and_repo):
    registry, _ = registry_and_repo

    names = [schema.function.name for schema in registry.list_schemas()]

    assert names == [name.value for name in ToolName]


def test_schemas_are_clean_json_schema(registry_and_repo):
    registry, _ = registry_and_repo
    schemas = {s.function.name: s.function.parameters for s in registry.list_schemas()}

    details = schemas["get_movie_details"]
    assert details.required == ["title"]
    assert details.properties["title"]["type"] == "string"
    assert "title" not in details.properties["title"]

    discover = schemas["discover_movies"]
    assert discover.required == []
    assert discover.properties["year"] == {
        "type": "integer",
        "description": "Primary release year.",
    }
    assert "popularity.desc" in discover.properties["sort_by"]["enum"]

    preference = schemas["save_user_preference"]
    assert "favorite_genres" in preference.properties["category"]["enum"]
    assert schemas["get_popular_movies"].properties == {}


@pytest.mark.asyncio
async def test_unknown_tool_raises_distinguished_error(registry_and_repo):
    registry, _ = registry_and_repo

    with pytest.raises(UnknownToolError) as excinfo:
        await registry.execute("launch_rockets", {}, ToolContext(user_id="u1"))
    assert excinfo.value.name == "launch_rockets"


@pytest.mark.asyncio
async def test_invalid_arguments_fail_validation(registry_and_repo):
    registry, _ = registry_and_repo

    with pytest.raises(ValidationError):
        await registry.execute("get_movie_details", {}, ToolContext(user_id="u1"))


@pytest.mark.asyncio
async def test_preference_tools_write_for_context_user(registry_and_repo):
    registry, repo = registry_and_repo
    context = ToolContext(user_id="u42")

    reply = await registry.execute(
        "save_user_preference", {"category": "favorite_genres", "value": "Horror"}, context
    )

    assert "saved" in reply
    prefs = await repo.get_preferences("u42")
    assert prefs.favorite_genres == ["Horror"]
    assert "Horror" in await registry.execute("get_user_preferences", {}, context)
