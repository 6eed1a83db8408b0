"""
Conversation Builder

Assembles the message list handed to the agent loop, always in this order:

1. the Garimpo persona (system)
2. an optional "remember my preferences" exchange (user + assistant)
3. the persisted history, oldest first
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from garimpo.chat.logging_utils import should_log_feature
from garimpo.chat.models import (
    AssistantMessage,
    ChatCompletionMessage,
    SystemMessage,
    UserMessage,
)
from garimpo.history.models import PreferenceCategory, PreferenceSet, StoredMessage

logger = logging.getLogger(__name__)

PERSONA_PROMPT = (
    "You are 'Garimpo', a fun and expert cinema assistant. Your only purpose is "
    "to help users find great movies. "
    "Use the available tools to look up information. "
    "Pass movie, actor, director and genre names to the tools EXACTLY as the "
    "user wrote them or as they appeared in earlier results. Do not translate "
    "anything."
)

PREFERENCES_ACK = "Got it, I've saved your preferences!"


def _join(items: list[str]) -> str:
    return ", ".join(items)


# Clause order is fixed; categories without values are skipped entirely
PREFERENCE_CLAUSES: list[tuple[PreferenceCategory, Callable[[list[str]], str]]] = [
    (PreferenceCategory.FAVORITE_GENRES, lambda v: f"my favorite genres are {_join(v)}"),
    (PreferenceCategory.FAVORITE_ACTORS, lambda v: f"my favorite actors are {_join(v)}"),
    (PreferenceCategory.FAVORITE_DIRECTORS, lambda v: f"my favorite directors are {_join(v)}"),
    (
        PreferenceCategory.MOVIE_MOODS,
        lambda v: f"I usually watch movies with these vibes: {_join(v)}",
    ),
    (
        PreferenceCategory.FAVORITE_MOVIES,
        lambda v: "I have already saved some movies as favorites",
    ),
    (
        PreferenceCategory.FAVORITE_DECADES,
        lambda v: f"my favorite decades for movies are {_join(v)}",
    ),
    (PreferenceCategory.DISLIKED_GENRES, lambda v: f"the genres I dislike are {_join(v)}"),
    (PreferenceCategory.DISLIKED_ACTORS, lambda v: f"the actors I dislike are {_join(v)}"),
]


def build_preference_summary(prefs: PreferenceSet | None) -> str | None:
    """Render the non-empty categories as one sentence, or None if nothing is set."""
    if prefs is None:
        return None

    parts: list[str] = []
    for category, render in PREFERENCE_CLAUSES:
        values = prefs.get_list(category)
        if values:
            parts.append(render(values))
    if prefs.other_notes:
        parts.append(f'an extra note about my taste is: "{prefs.other_notes}"')

    if not parts:
        return None
    return f"Remember my preferences: {'; '.join(parts)}."


def to_chat_message(message: StoredMessage) -> ChatCompletionMessage:
    if message.sender == "user":
        return UserMessage(content=message.text)
    return AssistantMessage(content=message.text)


def build_conversation(
    history: list[StoredMessage], prefs: PreferenceSet | None = None
) -> list[ChatCompletionMessage]:
    """Build ``[persona, (prefs, ack)?, *history]`` for one request."""
    messages: list[ChatCompletionMessage] = [SystemMessage(content=PERSONA_PROMPT)]

    summary = build_preference_summary(prefs)
    if summary:
        messages.append(UserMessage(content=summary))
        messages.append(AssistantMessage(content=PREFERENCES_ACK))

    messages.extend(to_chat_message(message) for message in history)

    if should_log_feature("chat", "system_prompt"):
        logger.info("System prompt being used:\n%s", PERSONA_PROMPT)
    logger.debug(
        "Built conversation: %d history messages, preferences %s",
        len(history),
        "included" if summary else "omitted",
    )
    return messages
