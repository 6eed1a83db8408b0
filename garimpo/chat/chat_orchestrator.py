"""
Chat Orchestrator

Coordination layer for one chat exchange:
1. Accepts the user's message and files it under a (possibly new) conversation
2. Streams the agent's answer for that conversation as server-sent events
3. Persists the answer together with the tool calls that produced it

Also exposes the conversation and preference operations of the HTTP API.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from garimpo.chat.agent_loop import AgentLoop
from garimpo.chat.conversation_builder import build_conversation
from garimpo.chat.event_sink import EventSink, QueueTransport
from garimpo.chat.logging_utils import log_performance
from garimpo.chat.models import (
    AgentResult,
    ProcessEndEvent,
    ProcessStartEvent,
    UserMessage,
)
from garimpo.chat.status_narrator import StatusNarrator
from garimpo.chat.tool_executor import ToolExecutor
from garimpo.clients.llm_client import LLMError
from garimpo.config import Configuration
from garimpo.history.models import Conversation, PreferenceSet, StoredMessage
from garimpo.history.repository import ConversationNotFoundError
from garimpo.tools.registry import ToolContext

if TYPE_CHECKING:
    from garimpo.clients.llm_client import LLMClient
    from garimpo.history.repository import ConversationRepository, PreferenceRepository
    from garimpo.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

TURN_ERROR_MESSAGE = "Sorry, something went wrong while preparing your answer. Please try again."

TITLE_PROMPT = (
    "You create short, descriptive titles (at most 5 words) for conversations, "
    "based on the user's first message. Reply ONLY with the title, with no other "
    'words or punctuation. User message: "{message}"'
)
TITLE_MAX_WORDS = 5


def fallback_title(message: str) -> str:
    return " ".join(message.split()[:TITLE_MAX_WORDS])


class ChatOrchestrator:
    """
    Conversation orchestrator - wires the chat components for each request
    1. Takes your message
    2. Assembles persona, preferences and history
    3. Lets the agent loop answer (using tools if needed)
    4. Streams the answer back and saves it
    """

    class ChatOrchestratorConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        llm_client: Any  # LLMClient
        registry: Any  # ToolRegistry
        conversations: Any  # ConversationRepository protocol
        preferences: Any  # PreferenceRepository protocol
        configuration: Configuration

    def __init__(self, service_config: ChatOrchestratorConfig):
        self.llm_client: LLMClient = service_config.llm_client
        self.registry: ToolRegistry = service_config.registry
        self.conversations: ConversationRepository = service_config.conversations
        self.preferences: PreferenceRepository = service_config.preferences
        self.configuration = service_config.configuration
        self.chat_conf = self.configuration.get_chat_service_config()

        self.narrator = StatusNarrator(
            self.llm_client, self.configuration.get_llm_profile("narrator")
        )
        self.tool_executor = ToolExecutor(self.registry, self.narrator, self.chat_conf)
        self.agent_loop = AgentLoop(
            self.llm_client,
            self.tool_executor,
            self.narrator,
            max_turns=self.configuration.get_max_agent_turns(),
            params=self.configuration.get_llm_profile("agent"),
            chat_conf=self.chat_conf,
        )
        self._title_params = self.configuration.get_llm_profile("title")
        self._turn_tasks: set[asyncio.Task[AgentResult | None]] = set()

    # ---------- chat ----------

    async def handle_chat_request(
        self, user_id: str, message: str, conversation_id: str | None = None
    ) -> str:
        """File ``message`` under a conversation and return the conversation id.

        Raises:
            ValueError: The message is empty.
            ConversationNotFoundError: ``conversation_id`` is not owned by the user.
        """
        message = message.strip()
        if not message:
            raise ValueError("Message must not be empty")

        if conversation_id:
            await self.ensure_owner(conversation_id, user_id)
        else:
            title = await self.generate_title(message)
            conversation = await self.conversations.create_conversation(user_id, title)
            conversation_id = conversation.id
            logger.info("Created conversation %s titled '%s'", conversation_id, title)

        await self.conversations.append_message(conversation_id, "user", message)
        return conversation_id

    async def generate_title(self, first_message: str) -> str:
        """Ask the model for a short title; fall back to the message's first words."""
        prompt = TITLE_PROMPT.format(message=first_message)
        try:
            reply = await self.llm_client.complete(
                [UserMessage(content=prompt)], params=self._title_params
            )
        except LLMError as e:
            logger.warning("Title generation failed, using message prefix: %s", e)
            return fallback_title(first_message)

        words = reply.replace('"', "").split()
        title = " ".join(words[:TITLE_MAX_WORDS])
        return title or fallback_title(first_message)

    async def ensure_owner(self, conversation_id: str, user_id: str) -> None:
        owner = await self.conversations.get_conversation_owner(conversation_id)
        if owner is None or owner != user_id:
            raise ConversationNotFoundError(conversation_id)

    async def start_conversation_turn(
        self, conversation_id: str, user_id: str
    ) -> AsyncIterator[str]:
        """Run one turn in the background and yield its SSE frames.

        If the consumer stops iterating (client gone) the turn keeps running
        and its remaining events are dropped.
        """
        transport = QueueTransport()
        sink = EventSink(transport)
        task = asyncio.create_task(
            self.run_turn(conversation_id, user_id, sink), name=f"turn:{conversation_id}"
        )
        self._turn_tasks.add(task)
        task.add_done_callback(self._turn_tasks.discard)

        try:
            async for frame in transport.frames():
                yield frame
        finally:
            if not task.done():
                transport.detach()

    async def run_turn(
        self, conversation_id: str, user_id: str, sink: EventSink
    ) -> AgentResult | None:
        """Answer the latest message of a conversation, streaming to ``sink``."""
        process_id = str(uuid.uuid4())
        try:
            await sink.send(ProcessStartEvent(process_id=process_id))

            history, prefs = await asyncio.gather(
                self.conversations.get_history(conversation_id),
                self.preferences.get_preferences(user_id),
            )
            messages = build_conversation(history, prefs)

            async with log_performance(f"Agent run for conversation {conversation_id}"):
                result = await self.agent_loop.run(
                    messages, sink, ToolContext(user_id=user_id)
                )

            if result.answer:
                await self.conversations.append_message(
                    conversation_id,
                    "ai",
                    result.answer,
                    {"thought_log": [e.model_dump(by_alias=True) for e in result.thought_log]},
                )
            else:
                logger.warning("Agent produced an empty answer for %s", conversation_id)

            await sink.send(ProcessEndEvent(thought_log=result.thought_log))
            logger.info(
                "Turn %s finished: outcome=%s turns=%d", process_id, result.outcome, result.turns
            )
            return result
        except Exception as e:
            logger.exception("Error answering conversation %s: %s", conversation_id, e)
            await sink.error(TURN_ERROR_MESSAGE)
            return None
        finally:
            await sink.close()

    # ---------- conversations ----------

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        return await self.conversations.list_conversations(user_id)

    async def get_messages(self, conversation_id: str, user_id: str) -> list[StoredMessage]:
        await self.ensure_owner(conversation_id, user_id)
        return await self.conversations.get_messages(conversation_id)

    async def delete_conversation(self, conversation_id: str, user_id: str) -> None:
        await self.ensure_owner(conversation_id, user_id)
        await self.conversations.delete_conversation(conversation_id)
        logger.info("Deleted conversation %s", conversation_id)

    # ---------- preferences ----------

    async def get_preferences(self, user_id: str) -> PreferenceSet:
        return await self.preferences.get_preferences(user_id) or PreferenceSet()

    async def add_preference(self, user_id: str, category: str, value: str) -> PreferenceSet:
        return await self.preferences.add_preference(user_id, category, value)

    async def remove_preference(self, user_id: str, category: str, value: str) -> PreferenceSet:
        return await self.preferences.remove_preference(user_id, category, value)

    async def cleanup(self) -> None:
        """Let in-flight turns finish so their answers are persisted."""
        if not self._turn_tasks:
            return
        logger.info("→ Orchestrator: waiting for %d in-flight turns", len(self._turn_tasks))
        await asyncio.gather(*self._turn_tasks, return_exceptions=True)
        logger.info("← Orchestrator: cleanup completed")
