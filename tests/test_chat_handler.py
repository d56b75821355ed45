"""Tests for ChatHandler — the end-to-end chat pipeline."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from novana.chat.handler import APOLOGY, ChatHandler, InvalidChatRequest
from novana.chat.models import RetrievalHit
from novana.chat.reply import tidy_reply
from novana.chat.store import ConversationStore
from novana.llm.errors import ClientFault, ExhaustionFailure, ModelUnavailable
from novana.llm.fallback import GenerationOrchestrator, GenerationResult
from novana.memory.retrieval import RetrievalClient
from novana.people.store import PeopleStore

HITS = [
    RetrievalHit(
        id="m3-c0",
        text="She grew tomatoes every summer.",
        metadata={"person_id": 7, "memory_id": 3, "chunk_index": 0},
    ),
    RetrievalHit(
        id="m5-c2",
        text="Her kitchen smelled of basil.",
        metadata={"person_id": 7, "memory_id": 5, "chunk_index": 2},
    ),
]


def _retrieval(hits: list[RetrievalHit] | None = None) -> MagicMock:
    retrieval = MagicMock()
    retrieval.query = AsyncMock(return_value=list(hits or []))
    return retrieval


def _ollama(chat=None, generate=None, available=("a", "b")) -> MagicMock:
    client = MagicMock()
    client.list_models = AsyncMock(return_value=set(available))
    client.chat = AsyncMock(side_effect=chat or [])
    client.generate = AsyncMock(side_effect=generate or [])
    return client


def _handler(
    conversations: ConversationStore,
    people: PeopleStore,
    *,
    retrieval=None,
    orchestrator=None,
    today: date = date(2024, 3, 2),
) -> ChatHandler:
    return ChatHandler(
        conversations=conversations,
        people=people,
        retrieval=retrieval or _retrieval(),
        orchestrator=orchestrator or MagicMock(),
        history_turns=12,
        max_context_chars=900,
        today=lambda: today,
    )


# -- Validation ----------------------------------------------------------------


@pytest.mark.parametrize(
    ("person_id", "user_id", "message"),
    [
        (None, "u1", "hi"),
        (0, "u1", "hi"),
        (-3, "u1", "hi"),
        ("abc", "u1", "hi"),
        (True, "u1", "hi"),
        (7, "", "hi"),
        (7, None, "hi"),
        (7, "u1", ""),
        (7, "u1", "   "),
        (7, "u1", None),
    ],
)
async def test_invalid_requests_rejected(conversations, people, person_id, user_id, message) -> None:
    handler = _handler(conversations, people)
    with pytest.raises(InvalidChatRequest):
        await handler.handle(person_id, user_id, message)
    assert await conversations.fetch_recent(7, 10) == []


async def test_person_id_string_accepted(conversations, people) -> None:
    orchestrator = MagicMock()
    orchestrator.generate = AsyncMock(return_value=GenerationResult("Hi.", "a"))
    handler = _handler(conversations, people, orchestrator=orchestrator)

    reply = await handler.handle("7", "u1", "hello")
    assert reply.model_used == "a"


# -- Deterministic answers -----------------------------------------------------


async def test_age_question_answered_by_rule(conversations, people) -> None:
    await people.upsert(7, "Rose", birth_date="1945-03-01")
    retrieval = _retrieval(HITS)
    orchestrator = MagicMock()
    orchestrator.generate = AsyncMock()
    handler = _handler(conversations, people, retrieval=retrieval, orchestrator=orchestrator)

    reply = await handler.handle(7, "u1", "How old would she be?")

    assert reply.reply == "They'd be about 79 years old (born 1945-03-01)."
    assert reply.model_used == "rule"
    assert reply.citations == []
    retrieval.query.assert_not_awaited()
    orchestrator.generate.assert_not_awaited()

    turns = await conversations.history(7)
    assert [(t.role, t.content) for t in turns] == [
        ("user", "How old would she be?"),
        ("assistant", "They'd be about 79 years old (born 1945-03-01)."),
    ]


async def test_age_question_without_person(conversations, people) -> None:
    reply = await _handler(conversations, people).handle(42, "u1", "When is his birthday?")
    assert reply.model_used == "rule"
    assert "don't have their birthday" in reply.reply


# -- Generation ----------------------------------------------------------------


async def test_generated_reply_with_citations(conversations, people) -> None:
    await people.upsert(7, "Rose")
    await conversations.append(7, "u1", "user", "earlier question")
    await conversations.append(7, "u1", "assistant", "earlier answer")

    orchestrator = MagicMock()
    orchestrator.generate = AsyncMock(
        return_value=GenerationResult('"She loved  her garden."', "llama3:8b")
    )
    handler = _handler(conversations, people, retrieval=_retrieval(HITS), orchestrator=orchestrator)

    reply = await handler.handle(7, "u1", "Tell me about her garden")

    assert reply.reply == "She loved her garden."
    assert reply.model_used == "llama3:8b"
    assert [c.model_dump() for c in reply.citations] == [
        {"memory_id": 3, "chunk_index": 0},
        {"memory_id": 5, "chunk_index": 2},
    ]

    messages = orchestrator.generate.await_args.args[0]
    assert messages[0]["role"] == "system"
    assert "memories of Rose" in messages[0]["content"]
    assert "She grew tomatoes every summer." in messages[0]["content"]
    assert [m["content"] for m in messages[1:]] == [
        "earlier question",
        "earlier answer",
        "Tell me about her garden",
    ]

    turns = await conversations.history(7)
    assert [t.role for t in turns] == ["user", "assistant", "user", "assistant"]
    assert turns[-1].content == "She loved her garden."


async def test_history_window_is_bounded(conversations, people) -> None:
    for i in range(20):
        await conversations.append(7, "u1", "user" if i % 2 == 0 else "assistant", f"m{i}")
    orchestrator = MagicMock()
    orchestrator.generate = AsyncMock(return_value=GenerationResult("Ok.", "a"))
    handler = _handler(conversations, people, orchestrator=orchestrator)

    await handler.handle(7, "u1", "latest")

    messages = orchestrator.generate.await_args.args[0]
    assert len(messages) == 1 + 12
    assert messages[-1]["content"] == "latest"


async def test_fallback_to_second_model(conversations, people) -> None:
    ollama = _ollama(
        chat=[ModelUnavailable(), ModelUnavailable(), "B says hello."],
        generate=[ModelUnavailable()],
    )
    orchestrator = GenerationOrchestrator(ollama, ["a", "b"], sanitize=tidy_reply)
    handler = _handler(conversations, people, orchestrator=orchestrator)

    reply = await handler.handle(7, "u1", "Tell me something")

    assert reply.model_used == "b"
    assert reply.reply == "B says hello."


async def test_exhaustion_becomes_apology(conversations, people) -> None:
    ollama = _ollama(chat=[ClientFault(code="400"), ClientFault(code="400")])
    orchestrator = GenerationOrchestrator(ollama, ["a", "b"], sanitize=tidy_reply)
    handler = _handler(conversations, people, retrieval=_retrieval(HITS), orchestrator=orchestrator)

    reply = await handler.handle(7, "u1", "Tell me something")

    assert reply.reply == APOLOGY
    assert reply.model_used == "none"
    assert len(reply.citations) == 2

    turns = await conversations.history(7)
    assert [(t.role, t.content) for t in turns] == [
        ("user", "Tell me something"),
        ("assistant", APOLOGY),
    ]


async def test_user_turn_persisted_before_generation(conversations, people) -> None:
    seen: list[list[str]] = []

    async def _generate(messages):
        seen.append([t.content for t in await conversations.history(7)])
        raise ExhaustionFailure(["model-missing:a"])

    orchestrator = MagicMock()
    orchestrator.generate = AsyncMock(side_effect=_generate)
    handler = _handler(conversations, people, orchestrator=orchestrator)

    await handler.handle(7, "u1", "Are you there?")
    assert seen == [["Are you there?"]]


async def test_retrieval_failure_does_not_break_pipeline(conversations, people) -> None:
    chroma = MagicMock()
    chroma.get_or_create_collection.side_effect = ConnectionError("chroma down")
    orchestrator = MagicMock()
    orchestrator.generate = AsyncMock(return_value=GenerationResult("Still here.", "a"))
    handler = _handler(
        conversations, people, retrieval=RetrievalClient(client=chroma), orchestrator=orchestrator
    )

    reply = await handler.handle(7, "u1", "Tell me about him")

    assert reply.reply == "Still here."
    assert reply.citations == []
    assert "Relevant snippets" not in orchestrator.generate.await_args.args[0][0]["content"]


async def test_persistence_failure_propagates(people) -> None:
    conversations = MagicMock()
    conversations.append = AsyncMock(side_effect=RuntimeError("database is locked"))
    handler = _handler(conversations, people)

    with pytest.raises(RuntimeError, match="locked"):
        await handler.handle(7, "u1", "hello")
