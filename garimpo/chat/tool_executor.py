"""
Tool Execution Handler

Dispatches completed tool calls as background tasks and joins them:
- announces each call (log_step, then a narrated status) before it starts
- runs the call through the tool registry
- formats results as tool messages in call order
- keeps an eye on calls left running after a turn is aborted

Calls are never retried and never cancelled once dispatched.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from garimpo.chat.logging_utils import (
    log_tool_arguments,
    log_tool_execution_error,
    log_tool_execution_start,
    log_tool_execution_success,
    log_tool_results,
)
from garimpo.chat.models import LogStepEvent, ThoughtLogEntry, ToolCallRequest, ToolMessage

if TYPE_CHECKING:
    from garimpo.chat.event_sink import EventSink
    from garimpo.chat.status_narrator import StatusNarrator
    from garimpo.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Starts tool calls as tasks and collects their results."""

    def __init__(
        self,
        registry: ToolRegistry,
        narrator: StatusNarrator,
        chat_conf: dict[str, Any] | None = None,
    ):
        self.registry = registry
        self.narrator = narrator
        self.chat_conf = chat_conf or {}

    async def dispatch(
        self, call: ToolCallRequest, sink: EventSink, context: ToolContext
    ) -> asyncio.Task[ToolMessage]:
        """Announce a call to the client, then start it without awaiting it."""
        entry = ThoughtLogEntry.for_call(call)
        await sink.send(LogStepEvent(payload=entry.payload))

        status = await self.narrator.describe(
            f"Calling the {call.name} tool", call.name, call.arguments
        )
        await sink.status(status)

        logging_conf = self.chat_conf.get("logging", {})
        log_tool_arguments(
            call.name,
            call.arguments,
            f"call #{call.index}",
            logging_conf.get("tool_arguments_truncate", 500),
        )
        return asyncio.create_task(
            self.execute(call, context), name=f"tool:{call.name}:{call.id}"
        )

    async def execute(self, call: ToolCallRequest, context: ToolContext) -> ToolMessage:
        log_tool_execution_start(call.name, call.index)
        try:
            result = await self.registry.execute(call.name, call.arguments, context)
        except Exception as e:
            log_tool_execution_error(call.name, f"{type(e).__name__}: {e}")
            raise

        content = self.format_result(result)
        log_tool_execution_success(call.name, len(content))
        log_tool_results(
            call.name,
            content,
            f"call #{call.index}",
            self.chat_conf.get("logging", {}).get("tool_results_truncate", 200),
        )
        return ToolMessage(content=content, tool_call_id=call.id)

    async def gather(self, tasks: list[asyncio.Task[ToolMessage]]) -> list[ToolMessage]:
        """Wait for every dispatched call; results come back in dispatch order.

        The first failure propagates immediately. Calls still running keep
        running and their outcome is only logged.
        """
        logger.info("→ Tools: awaiting %d dispatched calls", len(tasks))
        try:
            results = await asyncio.gather(*tasks)
        except Exception:
            self.abandon(tasks)
            raise
        logger.info("← Tools: completed all tool executions")
        return list(results)

    def abandon(self, tasks: list[asyncio.Task[ToolMessage]]) -> None:
        """Stop waiting on ``tasks``; they finish in the background."""
        running = sum(1 for task in tasks if not task.done())
        if running:
            logger.info("Leaving %d tool calls to finish in the background", running)
        for task in tasks:
            task.add_done_callback(_log_abandoned_result)

    @staticmethod
    def format_result(result: Any) -> str:
        """Render a tool result as message content for the model."""
        if result is None:
            return "✓ done"
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False)


def _log_abandoned_result(task: asyncio.Task[ToolMessage]) -> None:
    if task.cancelled():
        logger.info("Abandoned %s was cancelled", task.get_name())
        return
    error = task.exception()
    if error is not None:
        logger.warning("Abandoned %s failed: %s", task.get_name(), error)
    else:
        logger.info("Abandoned %s finished after the turn was aborted", task.get_name())
