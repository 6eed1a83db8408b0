"""Agent loop behaviour against a scripted model."""

from __future__ import annotations

import asyncio
import json

import pytest

from conftest import (
    FakeLLMClient,
    FakeNarrator,
    make_loop,
    make_registry,
    text_chunk,
    tool_call_stream,
    tool_chunk,
)
from garimpo.chat.agent_loop import (
    EXHAUSTED_INSTRUCTION,
    GENERIC_TOOL_APOLOGY,
    UNKNOWN_TOOL_APOLOGY,
    AgentLoop,
)
from garimpo.chat.models import (
    AssistantMessage,
    ChunkEvent,
    LogStepEvent,
    SystemMessage,
    ToolMessage,
    UserMessage,
)
from garimpo.chat.tool_executor import ToolExecutor
from garimpo.clients.llm_client import LLMError
from garimpo.tools.registry import ToolName

HISTORY = [SystemMessage(content="persona"), UserMessage(content="What's playing in theaters?")]


@pytest.mark.asyncio
async def test_plain_answer_streams_chunks_in_order(sink, transport, context):
    llm = FakeLLMClient([[text_chunk("Hello"), text_chunk(", movie fan"), text_chunk("!")]])
    loop = make_loop(llm, make_registry())

    result = await loop.run(HISTORY, sink, context)

    assert result.outcome == "answered"
    assert result.success is True
    assert result.turns == 1
    chunks = [e.content for e in transport.events if isinstance(e, ChunkEvent)]
    assert chunks == ["Hello", ", movie fan", "!"]
    assert "".join(chunks) == result.answer
    assert transport.types[0] == "status"


@pytest.mark.asyncio
async def test_now_playing_scenario(sink, transport, context):
    async def now_playing(arguments, ctx):
        return [{"id": 1, "title": "Dune Part Two"}]

    llm = FakeLLMClient(
        [
            tool_call_stream("get_now_playing_movies"),
            [text_chunk("Dune"), text_chunk(" Part Two is in theaters.")],
        ]
    )
    loop = make_loop(llm, make_registry({ToolName.GET_NOW_PLAYING_MOVIES: now_playing}))

    result = await loop.run(HISTORY, sink, context)
    await sink.close()

    types = transport.types
    assert types[0] == "status"
    assert [t for t in types if t != "status"] == ["log_step", "chunk", "chunk", "close"]
    assert types.index("log_step") < types.index("chunk")

    log_step = next(e for e in transport.events if isinstance(e, LogStepEvent))
    assert log_step.payload.tool_name == "get_now_playing_movies"
    assert log_step.payload.tool_args == {}

    assert result.answer == "Dune Part Two is in theaters."
    assert result.turns == 2
    assert [entry.payload.tool_name for entry in result.thought_log] == ["get_now_playing_movies"]

    second_turn = llm.stream_calls[1]["messages"]
    assistant, tool_message = second_turn[-2], second_turn[-1]
    assert isinstance(assistant, AssistantMessage)
    assert assistant.tool_calls[0].id == "call_1"
    assert isinstance(tool_message, ToolMessage)
    assert tool_message.tool_call_id == "call_1"
    assert json.loads(tool_message.content) == [{"id": 1, "title": "Dune Part Two"}]


@pytest.mark.asyncio
async def test_input_history_is_not_mutated(sink, context):
    llm = FakeLLMClient([tool_call_stream("get_popular_movies"), [text_chunk("Done")]])
    loop = make_loop(llm, make_registry())
    history = list(HISTORY)

    await loop.run(history, sink, context)

    assert history == HISTORY


@pytest.mark.asyncio
async def test_turn_cap_streams_fallback_without_tools(sink, transport, context):
    llm = FakeLLMClient(
        [
            tool_call_stream("get_popular_movies", call_id="call_a"),
            tool_call_stream("get_popular_movies", call_id="call_b"),
            tool_call_stream("get_popular_movies", call_id="call_c"),
            [text_chunk("Sorry, I could not finish that.")],
        ]
    )
    loop = make_loop(llm, make_registry(), max_turns=3)

    result = await loop.run(HISTORY, sink, context)
    await sink.close()

    assert result.outcome == "exhausted"
    assert result.success is False
    assert result.turns == 3
    assert len(llm.stream_calls) == 4
    fallback = llm.stream_calls[-1]
    assert fallback["tools"] is None
    assert fallback["messages"][-1] == SystemMessage(content=EXHAUSTED_INSTRUCTION)
    assert result.answer == "Sorry, I could not finish that."
    assert transport.types[-2:] == ["chunk", "close"]
    assert len(result.thought_log) == 3


@pytest.mark.asyncio
async def test_turn_cap_of_one(sink, context):
    llm = FakeLLMClient([tool_call_stream("get_popular_movies"), [text_chunk("Best effort")]])
    loop = make_loop(llm, make_registry(), max_turns=1)

    result = await loop.run(HISTORY, sink, context)

    assert result.outcome == "exhausted"
    assert len(llm.stream_calls) == 2


def test_turn_cap_must_be_positive():
    with pytest.raises(ValueError):
        make_loop(FakeLLMClient(), make_registry(), max_turns=0)


@pytest.mark.asyncio
async def test_tool_messages_follow_call_order(sink, context):
    async def slow(arguments, ctx):
        await asyncio.sleep(0.05)
        return "slow result"

    async def fast(arguments, ctx):
        return "fast result"

    llm = FakeLLMClient(
        [
            [
                tool_chunk(0, "call_slow", "get_popular_movies", "{}"),
                tool_chunk(1, "call_fast", "get_top_rated_movies", "{}"),
            ],
            [text_chunk("Here you go")],
        ]
    )
    registry = make_registry(
        {ToolName.GET_POPULAR_MOVIES: slow, ToolName.GET_TOP_RATED_MOVIES: fast}
    )
    loop = make_loop(llm, registry)

    await loop.run(HISTORY, sink, context)

    tool_messages = [m for m in llm.stream_calls[1]["messages"] if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == ["call_slow", "call_fast"]
    assert [m.content for m in tool_messages] == ["slow result", "fast result"]


@pytest.mark.asyncio
async def test_first_call_dispatched_before_stream_ends(sink, context):
    started = asyncio.Event()

    async def first(arguments, ctx):
        started.set()
        return "first"

    async def wait_for_first_call():
        await asyncio.wait_for(started.wait(), timeout=1)

    llm = FakeLLMClient(
        [
            [
                tool_chunk(0, "call_0", "get_popular_movies", "{}"),
                tool_chunk(1, "call_1", "get_top_rated_movies", ""),
                wait_for_first_call,
                tool_chunk(1, arguments="{}"),
            ],
            [text_chunk("Both done")],
        ]
    )
    loop = make_loop(llm, make_registry({ToolName.GET_POPULAR_MOVIES: first}))

    result = await loop.run(HISTORY, sink, context)

    assert started.is_set()
    assert result.outcome == "answered"


@pytest.mark.asyncio
async def test_log_step_sent_before_tool_runs(sink, transport, context):
    seen_before_run: list[str] = []

    async def handler(arguments, ctx):
        seen_before_run.extend(transport.types)
        return "ok"

    llm = FakeLLMClient([tool_call_stream("get_popular_movies"), [text_chunk("ok")]])
    loop = make_loop(llm, make_registry({ToolName.GET_POPULAR_MOVIES: handler}))

    await loop.run(HISTORY, sink, context)

    assert "log_step" in seen_before_run


@pytest.mark.asyncio
async def test_unknown_tool_apologizes_without_retry(sink, transport, context):
    llm = FakeLLMClient([tool_call_stream("make_popcorn")])
    loop = make_loop(llm, make_registry())

    result = await loop.run(HISTORY, sink, context)

    assert result.outcome == "unknown_tool"
    assert result.answer == UNKNOWN_TOOL_APOLOGY
    assert len(llm.stream_calls) == 1
    chunks = [e.content for e in transport.events if isinstance(e, ChunkEvent)]
    assert chunks == [UNKNOWN_TOOL_APOLOGY]


@pytest.mark.asyncio
async def test_failing_tool_ends_request_with_generic_apology(sink, context):
    async def broken(arguments, ctx):
        raise RuntimeError("catalog exploded")

    llm = FakeLLMClient([tool_call_stream("get_popular_movies")])
    loop = make_loop(llm, make_registry({ToolName.GET_POPULAR_MOVIES: broken}))

    result = await loop.run(HISTORY, sink, context)

    assert result.outcome == "tool_failed"
    assert result.answer == GENERIC_TOOL_APOLOGY
    assert len(llm.stream_calls) == 1


@pytest.mark.asyncio
async def test_only_unnamed_tool_calls_end_with_generic_apology(sink, transport, context):
    llm = FakeLLMClient([[tool_chunk(0, "call_1", None, "{}")]])
    loop = make_loop(llm, make_registry())

    result = await loop.run(HISTORY, sink, context)

    assert result.outcome == "tool_failed"
    assert result.answer == GENERIC_TOOL_APOLOGY
    assert result.thought_log == []
    assert len(llm.stream_calls) == 1
    chunks = [e.content for e in transport.events if isinstance(e, ChunkEvent)]
    assert chunks == [GENERIC_TOOL_APOLOGY]


@pytest.mark.asyncio
async def test_malformed_arguments_abort_before_execution(sink, context):
    calls = []

    async def handler(arguments, ctx):
        calls.append(arguments)
        return "ok"

    llm = FakeLLMClient([[tool_chunk(0, "call_1", "get_popular_movies", "{not json")]])
    loop = make_loop(llm, make_registry({ToolName.GET_POPULAR_MOVIES: handler}))

    result = await loop.run(HISTORY, sink, context)

    assert result.outcome == "tool_failed"
    assert result.answer == GENERIC_TOOL_APOLOGY
    assert calls == []


@pytest.mark.asyncio
async def test_text_before_failure_is_kept_in_answer(sink, context):
    async def broken(arguments, ctx):
        raise RuntimeError("boom")

    llm = FakeLLMClient(
        [[text_chunk("Let me check. "), *tool_call_stream("get_popular_movies")]]
    )
    loop = make_loop(llm, make_registry({ToolName.GET_POPULAR_MOVIES: broken}))

    result = await loop.run(HISTORY, sink, context)

    assert result.answer == "Let me check. " + GENERIC_TOOL_APOLOGY


@pytest.mark.asyncio
async def test_provider_error_propagates(sink, context):
    llm = FakeLLMClient([LLMError("provider down")])
    loop = make_loop(llm, make_registry())

    with pytest.raises(LLMError):
        await loop.run(HISTORY, sink, context)


@pytest.mark.asyncio
async def test_tools_are_advertised_every_turn(sink, context):
    llm = FakeLLMClient([tool_call_stream("get_popular_movies"), [text_chunk("Done")]])
    registry = make_registry()
    loop = make_loop(llm, registry)

    await loop.run(HISTORY, sink, context)

    for call in llm.stream_calls:
        assert len(call["tools"]) == len(ToolName)


@pytest.mark.asyncio
async def test_agent_params_are_forwarded(sink, context):
    llm = FakeLLMClient([[text_chunk("Hi")]])
    registry = make_registry()
    narrator = FakeNarrator()
    loop = AgentLoop(
        llm, ToolExecutor(registry, narrator), narrator, max_turns=2, params={"temperature": 0}
    )

    await loop.run(HISTORY, sink, context)

    assert llm.stream_calls[0]["params"] == {"temperature": 0}
