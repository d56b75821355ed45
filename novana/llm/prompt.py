"""System prompt and message-list assembly for a chat turn."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from novana.chat.models import ConversationTurn, RetrievalHit

logger = logging.getLogger(__name__)

MAX_SNIPPETS = 2
SNIPPET_WORDS = 20


def build_system_prompt(person_name: str) -> str:
    """Persona instruction for conversations about *person_name*."""
    name = person_name or "this loved one"
    return (
        f"You are Novana, a warm, concise companion reflecting on memories of {name}.\n"
        "- Answer in 2–4 short sentences.\n"
        "- If the user is vague, ask ONE focused follow-up (not every time).\n"
        "- Reference at most one short snippet if helpful.\n"
        "- Never role-play the loved one; speak as a supportive assistant.\n"
        "- Keep replies specific to the user's message."
    )


def snippetify(text: str | None, max_words: int = 24) -> str:
    """Collapse whitespace and cut to *max_words*, marking the cut with an ellipsis."""
    if not text:
        return ""
    words = str(text).split()
    if len(words) <= max_words:
        return " ".join(words)
    return " ".join(words[:max_words]) + "…"


def build_context_block(hits: list[RetrievalHit], max_chars: int) -> str:
    """Format the top retrieved chunks, never longer than *max_chars*."""
    if not hits:
        return ""
    lines = [f"• {snippetify(hit.text, SNIPPET_WORDS)}" for hit in hits[:MAX_SNIPPETS]]
    block = "Relevant snippets:\n" + "\n".join(lines)
    return block[:max_chars]


def history_messages(recent: list[ConversationTurn]) -> list[dict[str, str]]:
    """Turn a newest-first history window into chronological API messages."""
    return [turn.to_api_message() for turn in reversed(recent)]


def build_messages(
    person_name: str,
    hits: list[RetrievalHit],
    recent: list[ConversationTurn],
    max_chars: int,
) -> list[dict[str, str]]:
    """Assemble the full message list: one system message, then history.

    Args:
        person_name: Display name of the person being discussed.
        hits: Retrieved memory chunks, most relevant first.
        recent: History window as returned by the store (newest first).
        max_chars: Character budget for the snippet block.

    Returns:
        Messages in the ``{"role", "content"}`` shape Ollama expects.
    """
    system = build_system_prompt(person_name)
    context = build_context_block(hits, max_chars)
    if context:
        system = f"{system}\n\n{context}"

    messages = [{"role": "system", "content": system}]
    messages.extend(history_messages(recent))
    logger.debug(
        "Built %d messages (%d snippet chars, %d history turns)",
        len(messages),
        len(context),
        len(recent),
    )
    return messages


def flatten_messages(messages: list[dict[str, str]]) -> str:
    """Render a chat message list as one completion prompt.

    System content first, then "User:"/"Assistant:" lines, ending with an
    "Assistant:" cue for the model to continue.
    """
    system = ""
    lines: list[str] = []
    for message in messages:
        if message["role"] == "system":
            system = message["content"]
            continue
        tag = "Assistant" if message["role"] == "assistant" else "User"
        lines.append(f"{tag}: {message['content']}")
    return f"{system}\n\n" + "\n".join(lines) + "\nAssistant:"
