"""
Chat Data Models

Data structures for the chat engine: LLM API message types, tool definitions,
streaming deltas, client-facing stream events and agent results.
All strongly typed with Pydantic for validation and type safety.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

# ==============================================================================
# CORE CHAT MESSAGES (LLM API Types)
# ==============================================================================


class SystemMessage(BaseModel):
    """System message for setting context."""

    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseModel):
    """User message."""

    role: Literal["user"] = "user"
    content: str


class FunctionCall(BaseModel):
    """Function call within a tool call."""

    name: str
    arguments: str = Field(default="{}")  # JSON string


class ToolCall(BaseModel):
    """Tool call as carried in an assistant message."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class AssistantMessage(BaseModel):
    """Assistant message with optional tool calls."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None

    @field_validator("tool_calls")
    @classmethod
    def validate_tool_calls(cls, v: list[ToolCall] | None) -> list[ToolCall] | None:
        """Convert empty tool_calls list to None to avoid API errors."""
        if v is not None and len(v) == 0:
            return None
        return v

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict format for the LLM API."""
        result: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
        }
        if self.tool_calls:
            result["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        return result


class ToolMessage(BaseModel):
    """Tool response message."""

    role: Literal["tool"] = "tool"
    content: str
    tool_call_id: str


# Union of all message types for conversation
ChatCompletionMessage = SystemMessage | UserMessage | AssistantMessage | ToolMessage


def to_api_format(messages: list[ChatCompletionMessage]) -> list[dict[str, Any]]:
    """Serialize messages for the chat completions endpoint."""
    result: list[dict[str, Any]] = []
    for msg in messages:
        # AssistantMessage keeps an explicit null content next to tool calls
        if isinstance(msg, AssistantMessage):
            result.append(msg.to_dict())
        else:
            result.append(msg.model_dump())
    return result


# ==============================================================================
# TOOL DEFINITIONS AND SCHEMAS
# ==============================================================================


class ToolFunctionParameters(BaseModel):
    """Function parameters schema for tools."""

    type: Literal["object"] = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    additionalProperties: bool = False


class ToolFunctionDefinition(BaseModel):
    """Tool function definition."""

    name: str
    description: str
    parameters: ToolFunctionParameters


class ToolDefinition(BaseModel):
    """Complete tool definition for OpenAI API."""

    type: Literal["function"] = "function"
    function: ToolFunctionDefinition


class ToolCallRequest(BaseModel):
    """A fully assembled tool call, ready to dispatch."""

    index: int
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    def to_tool_call(self) -> ToolCall:
        return ToolCall(
            id=self.id,
            function=FunctionCall(
                name=self.name, arguments=json.dumps(self.arguments, ensure_ascii=False)
            ),
        )


# ==============================================================================
# STREAMING MODELS
# ==============================================================================


class FunctionCallDelta(BaseModel):
    """Partial function call data in streaming response."""

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Partial tool call data in streaming response."""

    index: int | None = None
    id: str | None = None
    type: Literal["function"] | None = None
    function: FunctionCallDelta | None = None


# ==============================================================================
# CLIENT STREAM EVENTS (server-sent events)
# ==============================================================================


class _EventModel(BaseModel):
    """Events serialize with camelCase keys for the browser client."""

    model_config = ConfigDict(populate_by_name=True)


class ToolCallPayload(_EventModel):
    tool_name: str = Field(alias="toolName")
    tool_args: dict[str, Any] = Field(default_factory=dict, alias="toolArgs")


class ThoughtLogEntry(_EventModel):
    """One dispatched tool call, kept for later replay in the UI."""

    log_type: Literal["tool_call"] = Field(default="tool_call", alias="logType")
    payload: ToolCallPayload

    @classmethod
    def for_call(cls, call: ToolCallRequest) -> ThoughtLogEntry:
        return cls(payload=ToolCallPayload(tool_name=call.name, tool_args=call.arguments))


class StatusEvent(_EventModel):
    type: Literal["status"] = "status"
    message: str


class ChunkEvent(_EventModel):
    type: Literal["chunk"] = "chunk"
    content: str


class LogStepEvent(_EventModel):
    type: Literal["log_step"] = "log_step"
    log_type: Literal["tool_call"] = Field(default="tool_call", alias="logType")
    payload: ToolCallPayload


class ProcessStartEvent(_EventModel):
    type: Literal["process_start"] = "process_start"
    process_id: str = Field(alias="processId")


class ProcessEndEvent(_EventModel):
    type: Literal["process_end"] = "process_end"
    thought_log: list[ThoughtLogEntry] = Field(default_factory=list, alias="thoughtLog")


class ErrorEvent(_EventModel):
    type: Literal["error"] = "error"
    message: str


class CloseEvent(_EventModel):
    type: Literal["close"] = "close"


StreamEvent = Annotated[
    StatusEvent
    | ChunkEvent
    | LogStepEvent
    | ProcessStartEvent
    | ProcessEndEvent
    | ErrorEvent
    | CloseEvent,
    Field(discriminator="type"),
]

_stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def encode_sse(event: StreamEvent) -> str:
    """Render one event as a server-sent-event frame."""
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"


def decode_sse(frame: str) -> StreamEvent:
    """Parse a ``data: ...`` frame back into its event model."""
    data = frame.strip()
    if not data.startswith("data: "):
        raise ValueError(f"Not a server-sent-event data frame: {frame!r}")
    return _stream_event_adapter.validate_json(data[6:])


# ==============================================================================
# AGENT RESULTS
# ==============================================================================

AgentOutcome = Literal["answered", "exhausted", "unknown_tool", "tool_failed"]


class AgentResult(BaseModel):
    """Outcome of one agent run."""

    answer: str
    thought_log: list[ThoughtLogEntry] = Field(default_factory=list)
    success: bool
    turns: int
    outcome: AgentOutcome
