"""Async HTTP API for the chat pipeline.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Callers are
identified by the ``X-User-Id`` header set by the authenticating proxy in
front of this service; when ``API_KEY`` is configured, ``X-Api-Key`` must
match it.
"""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from novana.chat.handler import ChatHandler, InvalidChatRequest
from novana.chat.store import ConversationStore
from novana.config import settings

logger = logging.getLogger(__name__)

HANDLER_KEY = web.AppKey("chat_handler", ChatHandler)
CONVERSATIONS_KEY = web.AppKey("conversations", ConversationStore)


def _authorize(request: web.Request) -> str | None:
    """Return the caller's user id, or None if the request is not allowed."""
    if settings.api_key and request.headers.get("X-Api-Key", "") != settings.api_key:
        return None
    user_id = request.headers.get("X-User-Id", "").strip()
    return user_id or None


def _bad_request(detail: str) -> web.Response:
    return web.json_response({"error": "bad-request", "detail": detail}, status=400)


async def _handle_chat(request: web.Request) -> web.Response:
    """POST /api/ai/chat — answer one message."""
    user_id = _authorize(request)
    if user_id is None:
        logger.warning("Chat rejected: missing credentials")
        return web.json_response({"error": "unauthorized"}, status=401)

    try:
        payload: dict[str, Any] = await request.json()
    except Exception:
        return _bad_request("invalid JSON")
    if not isinstance(payload, dict):
        return _bad_request("expected a JSON object")

    handler = request.app[HANDLER_KEY]
    try:
        reply = await handler.handle(payload.get("person_id"), user_id, payload.get("message"))
    except InvalidChatRequest as exc:
        return _bad_request(str(exc))
    except Exception:
        logger.exception("Chat failed: user=%s", user_id)
        return web.json_response({"error": "chat-failed"}, status=500)

    return web.json_response(reply.model_dump(mode="json"))


async def _handle_history(request: web.Request) -> web.Response:
    """GET /api/ai/history/{person_id} — chronological transcript."""
    if _authorize(request) is None:
        return web.json_response({"error": "unauthorized"}, status=401)

    try:
        person_id = int(request.match_info["person_id"])
        limit = int(request.query.get("limit") or 50)
    except ValueError:
        return _bad_request("person_id and limit must be integers")

    store = request.app[CONVERSATIONS_KEY]
    try:
        turns = await store.history(person_id, limit)
    except Exception:
        logger.exception("History failed: person=%s", person_id)
        return web.json_response({"error": "history-failed"}, status=500)

    return web.json_response(
        [{"role": t.role, "content": t.content, "created_at": t.created_at} for t in turns]
    )


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


def create_web_app(handler: ChatHandler, conversations: ConversationStore) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[HANDLER_KEY] = handler
    app[CONVERSATIONS_KEY] = conversations
    app.router.add_get("/health", _health)
    app.router.add_post("/api/ai/chat", _handle_chat)
    app.router.add_get("/api/ai/history/{person_id}", _handle_history)
    return app


class ChatServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        handler: ChatHandler,
        conversations: ConversationStore,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self.host = host or settings.server_host
        self.port = port or settings.server_port
        self._app = create_web_app(handler, conversations)
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Chat API listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Chat API stopped")
