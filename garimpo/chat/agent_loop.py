"""
Agent Loop

Drives a bounded number of think/act turns for one request:

THINKING(n) -> DISPATCHING -> AWAITING_TOOLS -> THINKING(n+1) ... -> DONE

Each turn streams a completion with every tool advertised. Text is forwarded
to the client as it arrives; tool calls are dispatched as soon as the stream
proves them complete, then joined before the next turn. A turn without tool
calls ends the run. Reaching the turn cap switches to one last completion
without tools that explains what could not be finished.

A failing tool ends the run with an apology; model provider errors propagate
to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from garimpo.chat.logging_utils import log_llm_reply
from garimpo.chat.models import (
    AgentOutcome,
    AgentResult,
    AssistantMessage,
    ChatCompletionMessage,
    SystemMessage,
    ThoughtLogEntry,
    ToolCallDelta,
    ToolCallRequest,
    ToolDefinition,
    ToolMessage,
)
from garimpo.chat.tool_calls import ToolCallAccumulator
from garimpo.tools.registry import ToolArgumentsError, UnknownToolError

if TYPE_CHECKING:
    from garimpo.chat.event_sink import EventSink
    from garimpo.chat.status_narrator import StatusNarrator
    from garimpo.chat.tool_executor import ToolExecutor
    from garimpo.clients.llm_client import LLMClient
    from garimpo.tools.registry import ToolContext

logger = logging.getLogger(__name__)

UNKNOWN_TOOL_APOLOGY = (
    "Sorry, I tried to use a tool I don't have. "
    "Could you ask me again in a different way?"
)
GENERIC_TOOL_APOLOGY = (
    "Sorry, something went wrong while I was looking that up. "
    "Please try again in a moment."
)
EXHAUSTED_INSTRUCTION = (
    "You have reached the limit of tool calls for this request. Do not call any "
    "more tools. Using only the information gathered so far, tell the user you "
    "could not fully complete the request, share whatever you did find, and "
    "apologize briefly."
)


class AgentState(str, Enum):
    THINKING = "thinking"
    DISPATCHING = "dispatching"
    AWAITING_TOOLS = "awaiting_tools"
    FINAL_STREAMING = "final_streaming"
    EXHAUSTED_FALLBACK = "exhausted_fallback"
    DONE = "done"


@dataclass
class AgentTurn:
    """What one streamed completion produced."""

    number: int
    content: str = ""
    calls: list[ToolCallRequest] = field(default_factory=list)
    tasks: list[asyncio.Task[ToolMessage]] = field(default_factory=list)
    dropped_calls: int = 0


@dataclass
class _RunState:
    sink: EventSink
    context: ToolContext
    answer_parts: list[str] = field(default_factory=list)
    thought_log: list[ThoughtLogEntry] = field(default_factory=list)
    state: AgentState = AgentState.THINKING

    async def emit_chunk(self, content: str) -> None:
        self.answer_parts.append(content)
        await self.sink.chunk(content)


class AgentLoop:
    def __init__(
        self,
        llm_client: LLMClient,
        tool_executor: ToolExecutor,
        narrator: StatusNarrator,
        max_turns: int = 3,
        params: dict[str, Any] | None = None,
        chat_conf: dict[str, Any] | None = None,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be a positive integer")
        self.llm_client = llm_client
        self.tool_executor = tool_executor
        self.narrator = narrator
        self.max_turns = max_turns
        self.params = params or {}
        self.chat_conf = chat_conf or {}

    def _transition(self, run: _RunState, state: AgentState, turn: int) -> None:
        logger.debug("Agent turn %d: %s -> %s", turn, run.state.value, state.value)
        run.state = state

    def _result(self, run: _RunState, turns: int, outcome: AgentOutcome) -> AgentResult:
        self._transition(run, AgentState.DONE, turns)
        return AgentResult(
            answer="".join(run.answer_parts),
            thought_log=list(run.thought_log),
            success=outcome == "answered",
            turns=turns,
            outcome=outcome,
        )

    async def run(
        self,
        messages: list[ChatCompletionMessage],
        sink: EventSink,
        context: ToolContext,
    ) -> AgentResult:
        """Run the loop over ``messages`` (left unmodified), streaming to ``sink``."""
        history: list[ChatCompletionMessage] = list(messages)
        tools = self.tool_executor.registry.list_schemas()
        run = _RunState(sink=sink, context=context)

        for turn in range(1, self.max_turns + 1):
            self._transition(run, AgentState.THINKING, turn)
            note = (
                "Reading the request and deciding what to look up"
                if turn == 1
                else "Reviewing the tool results and deciding the next step"
            )
            await sink.status(await self.narrator.describe(note))

            try:
                agent_turn = await self._stream_turn(run, turn, history, tools)
            except ToolArgumentsError as e:
                return await self._abort(run, turn, e)

            if not agent_turn.calls and agent_turn.dropped_calls:
                # The model asked for tools but none of the calls were usable
                return await self._abort(
                    run, turn, ToolArgumentsError("<unnamed>", "tool call without a function name")
                )

            if not agent_turn.calls:
                # Text was streamed as it arrived; nothing left to send
                self._transition(run, AgentState.FINAL_STREAMING, turn)
                logger.info("← LLM: final answer after %d turn(s)", turn)
                return self._result(run, turn, "answered")

            self._transition(run, AgentState.AWAITING_TOOLS, turn)
            try:
                tool_messages = await self.tool_executor.gather(agent_turn.tasks)
            except Exception as e:
                return await self._abort(run, turn, e)

            history.append(
                AssistantMessage(
                    content=agent_turn.content or None,
                    tool_calls=[call.to_tool_call() for call in agent_turn.calls],
                )
            )
            history.extend(tool_messages)

        logger.warning("Maximum agent turns (%d) reached, streaming fallback answer", self.max_turns)
        await self._stream_fallback(run, history)
        return self._result(run, self.max_turns, "exhausted")

    async def _stream_turn(
        self,
        run: _RunState,
        turn: int,
        history: list[ChatCompletionMessage],
        tools: list[ToolDefinition],
    ) -> AgentTurn:
        """Stream one completion, dispatching tool calls as they complete."""
        logger.info("→ LLM: starting streaming request (turn %d)", turn)
        agent_turn = AgentTurn(number=turn)
        accumulator = ToolCallAccumulator()
        text_parts: list[str] = []

        try:
            async for chunk in self.llm_client.stream_chat(history, tools, self.params):
                choices: list[dict[str, Any]] = chunk.get("choices", [])
                if not choices:
                    continue
                delta: dict[str, Any] = choices[0].get("delta") or {}

                content = delta.get("content")
                if content:
                    text_parts.append(content)
                    await run.emit_chunk(content)

                for raw_delta in delta.get("tool_calls") or []:
                    ready = accumulator.add_delta(ToolCallDelta.model_validate(raw_delta))
                    await self._dispatch(run, turn, ready, agent_turn)

            # Nothing marks the last call complete except the end of the stream
            await self._dispatch(run, turn, accumulator.finish(), agent_turn)
        except BaseException:
            self.tool_executor.abandon(agent_turn.tasks)
            raise

        agent_turn.content = "".join(text_parts)
        agent_turn.calls = accumulator.completed
        agent_turn.dropped_calls = accumulator.dropped
        logger.info(
            "← LLM: streaming completed (turn %d), %d tool call(s)", turn, len(agent_turn.calls)
        )
        log_llm_reply(agent_turn.content, agent_turn.calls, f"turn {turn}", self.chat_conf)
        return agent_turn

    async def _dispatch(
        self,
        run: _RunState,
        turn: int,
        calls: list[ToolCallRequest],
        agent_turn: AgentTurn,
    ) -> None:
        for call in calls:
            self._transition(run, AgentState.DISPATCHING, turn)
            run.thought_log.append(ThoughtLogEntry.for_call(call))
            task = await self.tool_executor.dispatch(call, run.sink, run.context)
            agent_turn.tasks.append(task)

    async def _abort(self, run: _RunState, turn: int, error: Exception) -> AgentResult:
        """A tool failed: apologize and end the run. Nothing is retried."""
        if isinstance(error, UnknownToolError):
            logger.warning("Model requested unknown tool '%s'; ending run", error.name)
            await run.emit_chunk(UNKNOWN_TOOL_APOLOGY)
            return self._result(run, turn, "unknown_tool")

        logger.error("Tool failure on turn %d, ending run: %s", turn, error)
        await run.emit_chunk(GENERIC_TOOL_APOLOGY)
        return self._result(run, turn, "tool_failed")

    async def _stream_fallback(
        self, run: _RunState, history: list[ChatCompletionMessage]
    ) -> None:
        self._transition(run, AgentState.EXHAUSTED_FALLBACK, self.max_turns)
        await run.sink.status(
            await self.narrator.describe("Out of lookups, writing up what was found so far")
        )

        fallback_history = [*history, SystemMessage(content=EXHAUSTED_INSTRUCTION)]
        logger.info("→ LLM: requesting fallback answer without tools")
        async for chunk in self.llm_client.stream_chat(fallback_history, None, self.params):
            choices: list[dict[str, Any]] = chunk.get("choices", [])
            if not choices:
                continue
            content = (choices[0].get("delta") or {}).get("content")
            if content:
                await run.emit_chunk(content)
