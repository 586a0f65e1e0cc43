"""Providers for the AI collaborators used by the writing endpoints.

Each provider is a plain FastAPI dependency so tests can swap it through
`app.dependency_overrides` without touching the network.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from pydantic_ai.models import Model

from core.config import get_settings
from services.ai.credits import CreditAccountant
from services.ai.invoker import CompletionStreamProtocol
from services.ai.model_factory import (
    get_completion_stream,
    get_model_candidates,
    get_text_model,
)
from services.ai.models import ModelCandidate
from services.ai.orchestrator import RetryFallbackOrchestrator


@lru_cache
def get_credit_accountant() -> CreditAccountant:
    """Process-wide accountant; it owns the pending credit-update tasks."""
    return CreditAccountant()


def get_invoker() -> CompletionStreamProtocol:
    return get_completion_stream()


def get_orchestrator(
    invoker: Annotated[CompletionStreamProtocol, Depends(get_invoker)],
) -> RetryFallbackOrchestrator:
    settings = get_settings()
    return RetryFallbackOrchestrator(
        invoker,
        get_credit_accountant(),
        max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
    )


def get_candidates() -> list[ModelCandidate]:
    return get_model_candidates()


def get_agent_model() -> Model:
    return get_text_model()


OrchestratorDep = Annotated[RetryFallbackOrchestrator, Depends(get_orchestrator)]
CandidatesDep = Annotated[list[ModelCandidate], Depends(get_candidates)]
AgentModelDep = Annotated[Model, Depends(get_agent_model)]
