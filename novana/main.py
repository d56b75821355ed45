"""Novana chat service entry point."""

import asyncio
import logging

from novana.chat.handler import ChatHandler
from novana.chat.reply import tidy_reply
from novana.chat.store import ConversationStore
from novana.config import settings
from novana.llm.fallback import GenerationOrchestrator
from novana.llm.ollama import OllamaClient
from novana.memory.retrieval import RetrievalClient
from novana.people.store import PeopleStore
from novana.web.server import ChatServer

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def build_ollama_client() -> OllamaClient:
    return OllamaClient(
        settings.ollama_url,
        deadline=settings.ai_deadline_seconds,
        keep_alive=settings.ai_keep_alive,
        options={
            "temperature": settings.ai_temperature,
            "top_p": settings.ai_top_p,
            "top_k": settings.ai_top_k,
            "repeat_penalty": settings.ai_repeat_penalty,
            "num_predict": settings.ai_max_tokens,
        },
    )


def build_orchestrator(ollama: OllamaClient) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        ollama,
        settings.get_candidate_models(),
        max_tokens=settings.ai_max_tokens,
        sanitize=lambda text: tidy_reply(text, settings.reply_max_words),
    )


def build_handler(
    orchestrator: GenerationOrchestrator, conversations: ConversationStore
) -> ChatHandler:
    """Wire the remaining collaborators from settings."""
    retrieval = RetrievalClient(
        url=settings.chroma_url,
        collection_name=settings.chroma_collection,
        top_k=settings.chunk_top_k,
    )
    return ChatHandler(
        conversations=conversations,
        people=PeopleStore(),
        retrieval=retrieval,
        orchestrator=orchestrator,
        history_turns=settings.history_turns,
        max_context_chars=settings.max_context_chars,
        max_words=settings.reply_max_words,
    )


async def serve() -> None:
    ollama = build_ollama_client()
    conversations = ConversationStore()
    orchestrator = build_orchestrator(ollama)
    handler = build_handler(orchestrator, conversations)
    server = ChatServer(handler, conversations)

    logger.info(
        "Starting Novana chat with models %s (deadline %gs)",
        ", ".join(orchestrator.models) or "none",
        settings.ai_deadline_seconds,
    )
    warmup = orchestrator.start_warmup()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        if warmup is not None and not warmup.done():
            warmup.cancel()
        await server.stop()
        await ollama.aclose()


def main() -> None:
    """Run the chat API until interrupted."""
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
