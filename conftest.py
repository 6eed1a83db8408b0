"""Shared fakes and fixtures for the test suite."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from garimpo.chat.agent_loop import AgentLoop
from garimpo.chat.event_sink import EventSink
from garimpo.chat.models import ChatCompletionMessage, StreamEvent, ToolDefinition, decode_sse
from garimpo.chat.tool_executor import ToolExecutor
from garimpo.clients.llm_client import LLMError
from garimpo.tools.movie_tools import NoArgs
from garimpo.tools.registry import (
    ToolContext,
    ToolHandler,
    ToolName,
    ToolRegistry,
    ToolSpec,
    definition_from_model,
)


@pytest.fixture(autouse=True)
def mock_environment(monkeypatch):
    """Secrets every Configuration needs; never a real key."""
    monkeypatch.setenv("OPENAI_API_KEY", "test_openai_key")
    monkeypatch.setenv("TMDB_API_KEY", "test_tmdb_key")
    monkeypatch.delenv("GARIMPO_CONFIG", raising=False)


# ---------------------- stream chunk builders ----------------------


def text_chunk(content: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": content}}]}


def tool_chunk(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> dict[str, Any]:
    function: dict[str, Any] = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    delta: dict[str, Any] = {"index": index, "function": function}
    if call_id is not None:
        delta["id"] = call_id
        delta["type"] = "function"
    return {"choices": [{"index": 0, "delta": {"tool_calls": [delta]}}]}


def tool_call_stream(name: str, arguments: dict[str, Any] | None = None, call_id: str = "call_1"):
    return [tool_chunk(0, call_id, name, json.dumps(arguments or {}))]


# ---------------------- fakes ----------------------

# A scripted stream step is a chunk dict, or a zero-argument coroutine function
# awaited mid-stream (lets a test observe what happened before the stream ended)
StreamStep = dict[str, Any] | Callable[[], Awaitable[Any]]


class FakeLLMClient:
    """Replays scripted streams in order and records every request."""

    def __init__(
        self,
        streams: list[list[StreamStep] | Exception] | None = None,
        reply: str | Exception = "Rolling the film reels...",
    ):
        self.streams = list(streams or [])
        self.reply = reply
        self.stream_calls: list[dict[str, Any]] = []
        self.complete_calls: list[list[ChatCompletionMessage]] = []

    async def stream_chat(
        self,
        messages: list[ChatCompletionMessage],
        tools: list[ToolDefinition] | None = None,
        params: dict[str, Any] | None = None,
    ):
        self.stream_calls.append({"messages": list(messages), "tools": tools, "params": params})
        if not self.streams:
            raise LLMError("No scripted stream left")
        script = self.streams.pop(0)
        if isinstance(script, Exception):
            raise script
        for step in script:
            if callable(step):
                await step()
            else:
                yield step

    async def complete(
        self, messages: list[ChatCompletionMessage], params: dict[str, Any] | None = None
    ) -> str:
        self.complete_calls.append(list(messages))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class FakeNarrator:
    def __init__(self):
        self.calls: list[tuple[str, str | None, dict[str, Any] | None]] = []

    async def describe(self, technical_message, tool_name=None, tool_args=None):
        self.calls.append((technical_message, tool_name, tool_args))
        return f"status: {technical_message}"


class RecordingTransport:
    def __init__(self, writable: bool = True):
        self.writable = writable
        self.frames: list[str] = []
        self.close_calls = 0
        self.fail_writes = False

    def is_writable(self) -> bool:
        return self.writable

    async def write(self, data: str) -> None:
        if self.fail_writes:
            raise ConnectionError("broken pipe")
        self.frames.append(data)

    async def close(self) -> None:
        self.close_calls += 1

    @property
    def events(self) -> list[StreamEvent]:
        return [decode_sse(frame) for frame in self.frames]

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]


async def _ok_handler(arguments: dict[str, Any], context: ToolContext) -> Any:
    return "ok"


def make_registry(handlers: dict[ToolName, ToolHandler] | None = None) -> ToolRegistry:
    """Registry where every tool returns "ok" unless ``handlers`` overrides it."""
    handlers = handlers or {}
    return ToolRegistry(
        {
            name: ToolSpec(
                definition_from_model(name, f"Test tool {name.value}", NoArgs),
                handlers.get(name, _ok_handler),
            )
            for name in ToolName
        }
    )


def make_loop(llm: FakeLLMClient, registry: ToolRegistry, max_turns: int = 3) -> AgentLoop:
    narrator = FakeNarrator()
    return AgentLoop(llm, ToolExecutor(registry, narrator), narrator, max_turns=max_turns)


# ---------------------- fixtures ----------------------


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def sink(transport: RecordingTransport) -> EventSink:
    return EventSink(transport)


@pytest.fixture()
def context() -> ToolContext:
    return ToolContext(user_id="user-1")
