"""Model fallback loop for reply generation.

Candidates are tried in configured order. Each candidate gets a fixed
ladder of strategies, from the full chat call down to a cheap prompt
completion, and the first non-empty reply wins:

1. ``chat``: full message list, configured sampling and token budget.
2. ``chat-reduced``: half the tokens (floor 48), temperature 0.5.
3. ``prompt``: flattened prompt on ``/api/generate``, a third of the
   tokens (floor 40), temperature 0.5.

A retryable failure moves down the ladder; a fatal one abandons the model.
Any unexpected exception from the client is treated as fatal.
Models the server does not list are skipped without spending a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from novana.llm.errors import (
    EmptyGeneration,
    ExhaustionFailure,
    GenerationAttempt,
    GenerationError,
)
from novana.llm.prompt import flatten_messages

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from novana.llm.ollama import OllamaClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Strategy:
    """One rung of the degradation ladder."""

    name: str
    shape: Literal["chat", "prompt"]
    token_divisor: int = 1
    token_floor: int = 0
    temperature: float | None = None

    def num_predict(self, max_tokens: int) -> int:
        if self.token_divisor <= 1:
            return max_tokens
        return max(self.token_floor, max_tokens // self.token_divisor)

    def options(self, max_tokens: int) -> dict[str, Any]:
        opts: dict[str, Any] = {"num_predict": self.num_predict(max_tokens)}
        if self.temperature is not None:
            opts["temperature"] = self.temperature
        return opts


STRATEGIES: tuple[Strategy, ...] = (
    Strategy("chat", "chat"),
    Strategy("chat-reduced", "chat", token_divisor=2, token_floor=48, temperature=0.5),
    Strategy("prompt", "prompt", token_divisor=3, token_floor=40, temperature=0.5),
)


@dataclass
class GenerationResult:
    reply: str
    model: str
    attempts: list[GenerationAttempt] = field(default_factory=list)


def _strip(text: str) -> str:
    return text.strip()


class GenerationOrchestrator:
    """Runs the candidate × strategy matrix against one Ollama client.

    Args:
        client: Generation service client.
        models: Candidate model names in trial order.
        max_tokens: Token budget for the first strategy.
        sanitize: Applied to every raw result before the emptiness check.
        strategies: Override the default ladder (mainly for tests).
    """

    def __init__(
        self,
        client: OllamaClient,
        models: Sequence[str],
        *,
        max_tokens: int = 120,
        sanitize: Callable[[str], str] | None = None,
        strategies: Sequence[Strategy] = STRATEGIES,
    ) -> None:
        self._client = client
        self.models: tuple[str, ...] = tuple(models)
        self.max_tokens = max_tokens
        self.strategies: tuple[Strategy, ...] = tuple(strategies)
        self._sanitize = sanitize or _strip

    async def _call(self, model: str, strategy: Strategy, messages: list[dict[str, str]]) -> str:
        options = strategy.options(self.max_tokens)
        if strategy.shape == "prompt":
            raw = await self._client.generate(model, flatten_messages(messages), **options)
        else:
            raw = await self._client.chat(model, messages, **options)
        text = self._sanitize(raw)
        if not text:
            raise EmptyGeneration(f"{model}/{strategy.name}: empty reply")
        return text

    async def generate(self, messages: list[dict[str, str]]) -> GenerationResult:
        """Return the first usable reply.

        Raises:
            ExhaustionFailure: every candidate was missing or failed every
                strategy. Carries one code per candidate.
        """
        available = await self._client.list_models()
        codes: list[str] = []
        attempts: list[GenerationAttempt] = []
        last_tier = len(self.strategies)

        for model in self.models:
            if model not in available:
                logger.warning("Model %s not loaded, skipping", model)
                codes.append(f"model-missing:{model}")
                attempts.append(GenerationAttempt(model, "-", "model-missing"))
                continue

            for tier, strategy in enumerate(self.strategies, start=1):
                try:
                    text = await self._call(model, strategy, messages)
                except GenerationError as exc:
                    attempts.append(GenerationAttempt(model, strategy.name, exc.code))
                    logger.warning(
                        "Generation failed: model=%s strategy=%s code=%s (%s)",
                        model,
                        strategy.name,
                        exc.code,
                        exc,
                    )
                    if tier == last_tier:
                        codes.append(f"{model}:{exc.code}")
                        break
                    if not exc.retryable:
                        codes.append(f"{model}:fatal" if tier == 1 else f"{model}:fatal{tier}")
                        break
                    continue
                except Exception:
                    attempts.append(GenerationAttempt(model, strategy.name, "unexpected"))
                    logger.exception(
                        "Generation crashed: model=%s strategy=%s", model, strategy.name
                    )
                    codes.append(f"{model}:fatal" if tier == 1 else f"{model}:fatal{tier}")
                    break

                attempts.append(GenerationAttempt(model, strategy.name, "ok"))
                if tier > 1:
                    logger.info("Recovered with model=%s strategy=%s", model, strategy.name)
                return GenerationResult(reply=text, model=model, attempts=attempts)

        raise ExhaustionFailure(codes, attempts)

    async def warmup(self) -> bool:
        """Prime the primary model. Never raises."""
        if not self.models:
            return False
        return await self._client.warmup(self.models[0])

    def start_warmup(self) -> asyncio.Task | None:
        """Schedule :meth:`warmup` as a fire-and-forget task.

        Returns the task (useful for testing) or None with no models configured.
        """
        if not self.models:
            logger.warning("No chat models configured, warmup skipped")
            return None
        return asyncio.ensure_future(self.warmup())
