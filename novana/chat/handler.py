"""Chat turn handling: persistence, quick answers, retrieval and generation.

The pipeline for one message is strictly sequential:

    persist user turn → deterministic check → retrieval → history window
    → message assembly → model fallback → sanitize → persist assistant turn

The user turn is committed before anything can fail downstream, so the
log always shows what was sent. Generation failures never reach the
caller; they become a fixed apology with ``model_used == "none"``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from novana.chat.models import ChatReply, Citation
from novana.chat.reply import tidy_reply
from novana.chat.rules import answer_age
from novana.llm.errors import ExhaustionFailure
from novana.llm.prompt import build_messages

if TYPE_CHECKING:
    from collections.abc import Callable

    from novana.chat.store import ConversationStore
    from novana.llm.fallback import GenerationOrchestrator
    from novana.memory.retrieval import RetrievalClient
    from novana.people.store import PeopleStore

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, I had trouble generating a reply. Could you rephrase that?"
RULE_MODEL = "rule"
NO_MODEL = "none"


class InvalidChatRequest(ValueError):
    """A required field is missing or malformed."""


def _parse_person_id(raw: object) -> int:
    if isinstance(raw, bool):
        raise InvalidChatRequest("person_id must be a positive integer")
    try:
        person_id = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise InvalidChatRequest("person_id must be a positive integer") from None
    if person_id <= 0:
        raise InvalidChatRequest("person_id must be a positive integer")
    return person_id


class ChatHandler:
    """Answers one chat message about one person.

    All collaborators are injected; nothing here is global.
    """

    def __init__(
        self,
        *,
        conversations: ConversationStore,
        people: PeopleStore,
        retrieval: RetrievalClient,
        orchestrator: GenerationOrchestrator,
        history_turns: int = 12,
        max_context_chars: int = 900,
        max_words: int = 120,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._conversations = conversations
        self._people = people
        self._retrieval = retrieval
        self._orchestrator = orchestrator
        self.history_turns = history_turns
        self.max_context_chars = max_context_chars
        self.max_words = max_words
        self._today = today

    async def handle(self, person_id: object, user_id: object, message: object) -> ChatReply:
        """Produce (and persist) the assistant reply for *message*.

        Raises:
            InvalidChatRequest: missing person id, caller or message.
        """
        pid = _parse_person_id(person_id)
        if not isinstance(message, str) or not message.strip():
            raise InvalidChatRequest("message is required")
        if user_id is None or not str(user_id).strip():
            raise InvalidChatRequest("user_id is required")
        uid = str(user_id).strip()

        logger.info("Chat request: user=%s person=%s", uid, pid)

        person = await self._people.get_by_id(pid)
        person_name = person.name if person and person.name else "this loved one"

        await self._conversations.append(pid, uid, "user", message)

        quick = answer_age(message, person, today=self._today())
        if quick is not None:
            reply = tidy_reply(quick, self.max_words)
            await self._conversations.append(pid, uid, "assistant", reply)
            return ChatReply(reply=reply, citations=[], model_used=RULE_MODEL)

        hits = await self._retrieval.query(pid, message)
        recent = await self._conversations.fetch_recent(pid, self.history_turns)
        messages = build_messages(person_name, hits, recent, self.max_context_chars)

        try:
            result = await self._orchestrator.generate(messages)
        except ExhaustionFailure as exc:
            logger.warning("All models failed for person %s: %s", pid, ", ".join(exc.codes))
            reply, model_used = APOLOGY, NO_MODEL
        else:
            reply = tidy_reply(result.reply, self.max_words)
            model_used = result.model

        await self._conversations.append(pid, uid, "assistant", reply)

        return ChatReply(
            reply=reply,
            citations=[Citation.from_hit(hit) for hit in hits],
            model_used=model_used,
        )
