"""Async client for a local Ollama server.

Wraps the three endpoints the chat pipeline needs (``/api/tags``,
``/api/chat`` and ``/api/generate``). Each generation call runs under a
hard wall-clock deadline; when it expires the in-flight request is
cancelled, its connection released, and ``DeadlineExceeded`` is raised.
HTTP and transport errors are translated into the ``novana.llm.errors``
taxonomy so the fallback loop can decide what to try next.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from novana.llm.errors import (
    ClientFault,
    DeadlineExceeded,
    ServiceFault,
    TransportFailure,
    from_status,
)

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS: dict[str, Any] = {
    "temperature": 0.6,
    "top_p": 0.9,
    "top_k": 40,
    "repeat_penalty": 1.1,
    "num_predict": 120,
}

_TAGS_TIMEOUT = 4.0
_WARMUP_TAGS_TIMEOUT = 3.0
_WARMUP_TIMEOUT = 15.0


class OllamaClient:
    """Talks to one Ollama base URL.

    Pass ``http_client`` to share a connection pool (or, in tests, an
    ``httpx.AsyncClient`` with a mock transport). Otherwise the client
    creates and owns its own.
    """

    def __init__(
        self,
        base_url: str,
        *,
        deadline: float = 30.0,
        keep_alive: str = "15m",
        options: dict[str, Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.deadline = deadline
        self.keep_alive = keep_alive
        self.options = {**DEFAULT_OPTIONS, **(options or {})}
        self._owns_client = http_client is None
        # The transport gives up slightly before the deadline so a slow
        # socket surfaces as a transport error rather than hanging.
        self._client = http_client or httpx.AsyncClient(timeout=max(4.0, deadline - 0.5))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _build_options(self, overrides: dict[str, Any]) -> dict[str, Any]:
        return {**self.options, "keep_alive": self.keep_alive, **overrides}

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST under the deadline and return the decoded JSON body."""
        try:
            async with asyncio.timeout(self.deadline):
                resp = await self._client.post(self._url(path), json=payload)
        except TimeoutError as exc:
            raise DeadlineExceeded(f"{path}: no response within {self.deadline:g}s") from exc
        except httpx.TransportError as exc:
            raise TransportFailure(f"{path}: {exc!r}") from exc
        except httpx.HTTPError as exc:
            raise ClientFault(f"{path}: {exc!r}", code="http") from exc

        if resp.is_error:
            raise from_status(resp.status_code, resp.text[:200])

        try:
            data = resp.json()
        except ValueError as exc:
            raise ServiceFault(f"{path}: response is not JSON", code="bad-json") from exc
        if not isinstance(data, dict):
            raise ServiceFault(f"{path}: unexpected response shape", code="bad-json")
        return data

    # -- Endpoints -------------------------------------------------------------

    async def list_models(self) -> set[str]:
        """Names of the models the server has available.

        Returns an empty set when the server cannot be reached.
        """
        try:
            resp = await self._client.get(self._url("/api/tags"), timeout=_TAGS_TIMEOUT)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Ollama model list unavailable: %r", exc)
            return set()

        if not isinstance(data, dict):
            return set()
        models = data.get("models") or []
        return {m["name"] for m in models if isinstance(m, dict) and m.get("name")}

    async def chat(self, model: str, messages: list[dict[str, str]], **options: Any) -> str:
        """Non-streaming chat completion. Returns the stripped reply text."""
        data = await self._post(
            "/api/chat",
            {
                "model": model,
                "messages": messages,
                "stream": False,
                "options": self._build_options(options),
            },
        )
        message = data.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        return str(content or data.get("response") or "").strip()

    async def generate(self, model: str, prompt: str, **options: Any) -> str:
        """Single-shot prompt completion. Returns the stripped text."""
        data = await self._post(
            "/api/generate",
            {
                "model": model,
                "prompt": prompt,
                "stream": False,
                "options": self._build_options(options),
            },
        )
        return str(data.get("response") or "").strip()

    async def warmup(self, model: str) -> bool:
        """Load *model* into memory with a tiny completion.

        Best-effort: failures are logged and reported as False.
        """
        try:
            await self._client.get(self._url("/api/tags"), timeout=_WARMUP_TAGS_TIMEOUT)
            resp = await self._client.post(
                self._url("/api/generate"),
                json={
                    "model": model,
                    "prompt": "hi",
                    "stream": False,
                    "options": {"num_predict": 8, "keep_alive": self.keep_alive},
                },
                timeout=_WARMUP_TIMEOUT,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Ollama warmup skipped for %s: %r", model, exc)
            return False

        logger.info("Ollama model '%s' warmed up", model)
        return True
