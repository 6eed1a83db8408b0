"""Message list assembly: persona, optional preference exchange, history."""

from __future__ import annotations

from garimpo.chat.conversation_builder import (
    PERSONA_PROMPT,
    PREFERENCES_ACK,
    build_conversation,
    build_preference_summary,
)
from garimpo.chat.models import AssistantMessage, SystemMessage, UserMessage
from garimpo.history.models import PreferenceSet, StoredMessage


def stored(sender, text, seq):
    return StoredMessage(conversation_id="c1", seq=seq, sender=sender, text=text)


HISTORY = [
    stored("user", "Recommend a thriller", 1),
    stored("ai", "Try Prisoners (2013).", 2),
    stored("user", "Something older?", 3),
]


def test_without_preferences_persona_then_history():
    messages = build_conversation(HISTORY, None)

    assert messages == [
        SystemMessage(content=PERSONA_PROMPT),
        UserMessage(content="Recommend a thriller"),
        AssistantMessage(content="Try Prisoners (2013)."),
        UserMessage(content="Something older?"),
    ]


def test_preferences_inserted_between_persona_and_history():
    prefs = PreferenceSet(favorite_genres=["Thriller", "Noir"])

    messages = build_conversation(HISTORY, prefs)

    assert messages[0] == SystemMessage(content=PERSONA_PROMPT)
    assert messages[1] == UserMessage(
        content="Remember my preferences: my favorite genres are Thriller, Noir."
    )
    assert messages[2] == AssistantMessage(content=PREFERENCES_ACK)
    assert messages[3:] == build_conversation(HISTORY, None)[1:]


def test_empty_preference_set_adds_no_exchange():
    assert build_conversation(HISTORY, PreferenceSet()) == build_conversation(HISTORY, None)
    assert build_preference_summary(PreferenceSet()) is None


def test_summary_uses_fixed_clause_order_and_skips_empty_categories():
    prefs = PreferenceSet(
        disliked_actors=["Actor X"],
        favorite_movies=["603", "78"],
        favorite_directors=["Denis Villeneuve"],
        movie_moods=["mind-bending"],
        other_notes="no subtitles please",
    )

    assert build_preference_summary(prefs) == (
        "Remember my preferences: "
        "my favorite directors are Denis Villeneuve; "
        "I usually watch movies with these vibes: mind-bending; "
        "I have already saved some movies as favorites; "
        "the actors I dislike are Actor X; "
        'an extra note about my taste is: "no subtitles please".'
    )


def test_persona_mentions_exact_name_passing():
    assert "Garimpo" in PERSONA_PROMPT
    assert "EXACTLY" in PERSONA_PROMPT
