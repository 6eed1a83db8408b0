"""
Tool Registry

Closed set of tool names, each mapped to the schema advertised to the model
and the coroutine that executes it. Every ``ToolName`` must have a handler;
a registry missing one refuses to build.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from garimpo.chat.models import ToolDefinition, ToolFunctionDefinition, ToolFunctionParameters

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    SEARCH_MOVIES_BY_KEYWORD = "search_movies_by_keyword"
    GET_MOVIE_DETAILS = "get_movie_details"
    DISCOVER_MOVIES = "discover_movies"
    GET_PERSON_FILMOGRAPHY = "get_person_filmography"
    GET_NOW_PLAYING_MOVIES = "get_now_playing_movies"
    GET_POPULAR_MOVIES = "get_popular_movies"
    GET_TOP_RATED_MOVIES = "get_top_rated_movies"
    GET_UPCOMING_MOVIES = "get_upcoming_movies"
    GET_SIMILAR_MOVIES = "get_similar_movies"
    GET_MOVIE_CAST = "get_movie_cast"
    GET_WATCH_PROVIDERS = "get_watch_providers"
    GET_USER_PREFERENCES = "get_user_preferences"
    SAVE_USER_PREFERENCE = "save_user_preference"
    REMOVE_USER_PREFERENCE = "remove_user_preference"


class ToolError(Exception):
    """Base class for tool failures the agent loop reports to the user."""


class UnknownToolError(ToolError):
    """The model asked for a tool that is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class ToolArgumentsError(ToolError):
    """A streamed tool call carried arguments that are not a JSON object."""

    def __init__(self, name: str, detail: str):
        super().__init__(f"Malformed arguments for tool '{name}': {detail}")
        self.name = name


class ToolContext(BaseModel):
    """Caller identity passed to every executor; never shown to the model."""

    user_id: str


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    definition: ToolDefinition
    handler: ToolHandler


def definition_from_model(
    name: ToolName, description: str, args_model: type[BaseModel]
) -> ToolDefinition:
    """Build the function schema for a tool from its pydantic argument model."""
    schema = args_model.model_json_schema()
    properties: dict[str, Any] = {}
    for prop_name, prop_schema in schema.get("properties", {}).items():
        prop = dict(prop_schema)
        prop.pop("title", None)
        # Optional[X] renders as anyOf [X, null]; the model only needs X
        any_of = prop.pop("anyOf", None)
        if any_of:
            non_null = [option for option in any_of if option.get("type") != "null"]
            if len(non_null) == 1:
                prop.update(non_null[0])
        prop.pop("default", None)
        properties[prop_name] = prop

    return ToolDefinition(
        function=ToolFunctionDefinition(
            name=name.value,
            description=description,
            parameters=ToolFunctionParameters(
                properties=properties,
                required=list(schema.get("required", [])),
            ),
        )
    )


class ToolRegistry:
    """Maps every ``ToolName`` to its schema and executor."""

    def __init__(self, specs: Mapping[ToolName, ToolSpec]):
        missing = [name.value for name in ToolName if name not in specs]
        if missing:
            raise ValueError(f"No handler registered for tools: {', '.join(missing)}")
        self._specs = dict(specs)

    def list_schemas(self) -> list[ToolDefinition]:
        return [self._specs[name].definition for name in ToolName]

    @staticmethod
    def parse_name(name: str) -> ToolName:
        try:
            return ToolName(name)
        except ValueError as e:
            raise UnknownToolError(name) from e

    async def execute(
        self, name: str, arguments: dict[str, Any], context: ToolContext
    ) -> Any:
        """Run a tool by name.

        Raises:
            UnknownToolError: ``name`` is not a registered tool.
        """
        tool = self.parse_name(name)
        logger.debug("Dispatching %s for user %s", tool.value, context.user_id)
        return await self._specs[tool].handler(arguments, context)
