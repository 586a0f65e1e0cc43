"""Domain exceptions for the AI streaming pipeline.

Each exception carries a stable `error_code` so logs and client-facing error
markers can be tagged consistently. Outside a stream the global error handler
turns the code into an HTTP status. Only `ModelInvocationError` is recovered
from (by falling back to the next candidate model); the others end a run.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.exceptions import DomainError


@dataclass(slots=True, eq=False)
class AIStreamError(DomainError):
    """Base class for AI streaming domain errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class ModelInvocationError(AIStreamError):
    """The provider call failed or ended in a way that cannot be continued."""

    def __init__(self, model: str, message: str = "Model invocation failed") -> None:
        super().__init__(message=f"{model}: {message}", error_code="model_error")


class CandidatesExhausted(AIStreamError):
    def __init__(
        self, message: str = "All candidate models failed to complete the request"
    ) -> None:
        super().__init__(message=message, error_code="exhausted")


class NoCandidatesConfigured(AIStreamError):
    def __init__(self, message: str = "No candidate models are configured") -> None:
        super().__init__(message=message, error_code="no_candidates")


class ClientDisconnected(AIStreamError):
    def __init__(self, message: str = "Client disconnected mid-stream") -> None:
        super().__init__(message=message, error_code="client_disconnected")
