"""Tools the model can call: movie catalog lookups and preference updates."""

from __future__ import annotations

from .movie_tools import GenreCache, MovieGateway
from .preference_tools import PreferenceTools
from .registry import (
    ToolArgumentsError,
    ToolContext,
    ToolError,
    ToolName,
    ToolRegistry,
    UnknownToolError,
)
from .toolset import create_tool_registry

__all__ = [
    "GenreCache",
    "MovieGateway",
    "PreferenceTools",
    "ToolArgumentsError",
    "ToolContext",
    "ToolError",
    "ToolName",
    "ToolRegistry",
    "UnknownToolError",
    "create_tool_registry",
]
