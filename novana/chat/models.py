"""Data models for people, conversation turns, retrieval hits and replies."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Person(BaseModel):
    """The remembered person a conversation is about."""

    id: int
    name: str = ""
    birth_date: str | None = None  # ISO date
    death_date: str | None = None


class ConversationTurn(BaseModel):
    """A single persisted conversation message."""

    id: int = 0
    person_id: int
    user_id: str
    role: Literal["user", "assistant"]
    content: str
    created_at: str = ""

    def to_api_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class HitMetadata(BaseModel):
    person_id: int | None = None
    memory_id: int | str | None = None
    chunk_index: int | None = None


class RetrievalHit(BaseModel):
    """A memory-text chunk returned by the vector store."""

    id: str
    text: str = ""
    metadata: HitMetadata = Field(default_factory=HitMetadata)


class Citation(BaseModel):
    memory_id: int | str | None = None
    chunk_index: int | None = None

    @classmethod
    def from_hit(cls, hit: RetrievalHit) -> "Citation":
        return cls(memory_id=hit.metadata.memory_id, chunk_index=hit.metadata.chunk_index)


class ChatReply(BaseModel):
    """What the chat endpoint returns."""

    model_config = ConfigDict(protected_namespaces=())

    reply: str
    citations: list[Citation] = Field(default_factory=list)
    model_used: str
