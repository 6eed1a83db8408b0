"""Clients package containing the LLM and TMDb HTTP clients."""

from __future__ import annotations

from .llm_client import LLMClient, LLMError
from .tmdb_client import TMDbClient, TMDbError

__all__ = ["LLMClient", "LLMError", "TMDbClient", "TMDbError"]
