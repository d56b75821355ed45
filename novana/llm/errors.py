"""Failure taxonomy for calls to the text-generation service.

Every error carries a short ``code`` for diagnostics and a ``retryable``
flag that decides whether the fallback loop escalates to the next strategy
for the same model or gives up on that model.
"""

from __future__ import annotations

from dataclasses import dataclass


class GenerationError(Exception):
    """Base class for a failed generation call."""

    code: str = "error"
    retryable: bool = False

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        if code is not None:
            self.code = code


class DeadlineExceeded(GenerationError):
    """The call did not finish within its wall-clock deadline."""

    code = "deadline"
    retryable = True


class TransportFailure(GenerationError):
    """Connection refused, reset or aborted before a response arrived."""

    code = "transport"
    retryable = True


class ModelUnavailable(GenerationError):
    """HTTP 404: the model is not loaded on the service."""

    code = "404"
    retryable = True


class ServiceFault(GenerationError):
    """HTTP 5xx from the service."""

    retryable = True


class ClientFault(GenerationError):
    """Any other HTTP 4xx. Retrying the same request will not help."""

    retryable = False


class EmptyGeneration(GenerationError):
    """The call succeeded but produced no usable text."""

    code = "empty"
    retryable = True


def from_status(status: int, detail: str = "") -> GenerationError:
    """Map an HTTP error status to the matching failure."""
    message = f"HTTP {status}: {detail}" if detail else f"HTTP {status}"
    if status == 404:
        return ModelUnavailable(message)
    if 500 <= status < 600:
        return ServiceFault(message, code=str(status))
    return ClientFault(message, code=str(status))


@dataclass(frozen=True)
class GenerationAttempt:
    """One (model, strategy) try and how it ended. Diagnostic only."""

    model: str
    strategy: str
    outcome: str


class ExhaustionFailure(Exception):
    """Every candidate model and strategy failed.

    ``codes`` holds one short code per candidate, in trial order.
    """

    def __init__(self, codes: list[str], attempts: list[GenerationAttempt] | None = None) -> None:
        self.codes = list(codes)
        self.attempts = list(attempts or [])
        super().__init__("all-models-failed: " + ", ".join(self.codes))
