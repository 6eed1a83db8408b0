"""
Status narration.

Turns a technical progress note ("calling get_movie_details") into a short,
themed line for the user. Narration is cosmetic: any failure yields
``FALLBACK_STATUS`` and never reaches the caller.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from garimpo.chat.logging_utils import should_log_feature
from garimpo.chat.models import SystemMessage, UserMessage

if TYPE_CHECKING:
    from garimpo.clients.llm_client import LLMClient

logger = logging.getLogger(__name__)

FALLBACK_STATUS = "Digging through the film archives..."

# Caller identity must never appear in model-facing text
IDENTITY_FIELDS = frozenset({"user_id", "userId"})

NARRATOR_PROMPT = (
    "You write the one-line progress messages of Garimpo, a fun movie expert "
    "assistant. Rewrite the technical step you are given as a short, playful, "
    "cinema-themed status line of at most 12 words. Reply with the line only."
)


def sanitize_tool_args(tool_args: dict[str, Any] | None) -> dict[str, Any]:
    return {k: v for k, v in (tool_args or {}).items() if k not in IDENTITY_FIELDS}


class StatusNarrator:
    def __init__(self, llm_client: LLMClient, params: dict[str, Any] | None = None):
        self.llm_client = llm_client
        self.params = params or {}

    async def describe(
        self,
        technical_message: str,
        tool_name: str | None = None,
        tool_args: dict[str, Any] | None = None,
    ) -> str:
        """Return a themed status line; falls back to ``FALLBACK_STATUS``."""
        step = technical_message
        if tool_name:
            step += f"\nTool: {tool_name}"
            args = sanitize_tool_args(tool_args)
            if args:
                step += f"\nArguments: {json.dumps(args, ensure_ascii=False)}"

        messages = [SystemMessage(content=NARRATOR_PROMPT), UserMessage(content=step)]
        try:
            text = await self.llm_client.complete(messages, params=self.params)
        except Exception as e:
            logger.warning("Status narration failed, using fallback: %s", e)
            return FALLBACK_STATUS

        status = text.strip().strip("\"'").strip()
        if not status:
            return FALLBACK_STATUS
        if should_log_feature("chat", "status_narration"):
            logger.info("Status line: %s", status)
        return status
