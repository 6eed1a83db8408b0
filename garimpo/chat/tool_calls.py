"""
Streaming tool call assembly.

Providers stream tool calls as fragments tagged with a positional index. A
call is complete once a fragment for a later index arrives, or when the
stream ends; completed calls are handed back so they can be dispatched
while the model is still talking.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from garimpo.chat.logging_utils import log_tool_args_error
from garimpo.chat.models import ToolCallDelta, ToolCallRequest
from garimpo.tools.registry import ToolArgumentsError

logger = logging.getLogger(__name__)


class ToolCallAccumulator:
    """Index-keyed builder for one model turn's tool calls."""

    def __init__(self) -> None:
        self._pending: list[dict[str, Any]] = []
        # Every index below this has already been handed out
        self._next_index = 0
        self._completed: list[ToolCallRequest] = []
        self._dropped = 0

    @property
    def completed(self) -> list[ToolCallRequest]:
        """Calls handed out so far, in index order."""
        return list(self._completed)

    @property
    def dropped(self) -> int:
        """Calls discarded because they never received a function name."""
        return self._dropped

    def add_delta(self, delta: ToolCallDelta) -> list[ToolCallRequest]:
        """Merge one fragment; return the calls it proved complete.

        Raises:
            ToolArgumentsError: A completed call's arguments are not a JSON object.
        """
        index = self._resolve_index(delta)
        if index < self._next_index:
            logger.warning("Ignoring fragment for already dispatched tool call #%d", index)
            return []

        while len(self._pending) <= index:
            self._pending.append(
                {
                    "id": None,
                    "type": "function",
                    "function": {"name": None, "arguments": ""},
                }
            )

        current_call = self._pending[index]
        if delta.id:
            current_call["id"] = delta.id
        if delta.function:
            if delta.function.name:
                current_call["function"]["name"] = delta.function.name
            if delta.function.arguments:
                current_call["function"]["arguments"] += delta.function.arguments

        return self._complete_up_to(index)

    def finish(self) -> list[ToolCallRequest]:
        """Stream ended: every remaining call is complete."""
        return self._complete_up_to(len(self._pending))

    def _resolve_index(self, delta: ToolCallDelta) -> int:
        if delta.index is not None:
            return delta.index
        # Providers that omit the index start a new call with each new id
        if delta.id or not self._pending:
            return len(self._pending)
        return len(self._pending) - 1

    def _complete_up_to(self, stop: int) -> list[ToolCallRequest]:
        ready: list[ToolCallRequest] = []
        for index in range(self._next_index, stop):
            call = self._finalize(index, self._pending[index])
            if call is not None:
                ready.append(call)
        self._next_index = max(self._next_index, stop)
        self._completed.extend(ready)
        return ready

    def _finalize(self, index: int, raw: dict[str, Any]) -> ToolCallRequest | None:
        name = raw["function"]["name"]
        if not name:
            logger.warning("Dropping tool call #%d without a function name", index)
            self._dropped += 1
            return None

        raw_args = raw["function"]["arguments"] or "{}"
        try:
            arguments = json.loads(raw_args)
        except json.JSONDecodeError as e:
            log_tool_args_error(name, e)
            raise ToolArgumentsError(name, str(e)) from e
        if not isinstance(arguments, dict):
            raise ToolArgumentsError(name, "arguments must be a JSON object")

        return ToolCallRequest(
            index=index,
            id=raw["id"] or f"call_{index}",
            name=name,
            arguments=arguments,
        )
