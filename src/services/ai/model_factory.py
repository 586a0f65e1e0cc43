"""Centralized factory for language-model clients.

Usage:
    from services.ai.model_factory import (
        get_completion_stream,
        get_model_candidates,
        get_text_model,
    )

    invoker = get_completion_stream()  # streaming features
    model = get_text_model()  # pydantic-ai agents
"""

from __future__ import annotations

import logging
from functools import lru_cache

from openai import AsyncOpenAI
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import get_settings
from services.ai.invoker import OpenAICompletionStream
from services.ai.models import ModelCandidate, OutputMode


logger = logging.getLogger(__name__)


@lru_cache
def get_openai_client() -> AsyncOpenAI:
    """Get the cached async client for the configured provider."""
    settings = get_settings()
    if not settings.LLM_API_KEY:
        logger.warning("LLM_API_KEY not configured; provider calls will fail")
    return AsyncOpenAI(
        api_key=settings.LLM_API_KEY or "missing",
        base_url=settings.LLM_BASE_URL,
        timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS,
        # Fallback to the next candidate replaces SDK-level retries
        max_retries=0,
    )


def get_model_candidates() -> list[ModelCandidate]:
    """Ordered fallback list for the streaming features."""
    settings = get_settings()
    return [
        ModelCandidate(
            name=c.name,
            output_mode=OutputMode(c.output_mode),
            temperature=c.temperature,
        )
        for c in settings.LLM_MODEL_CANDIDATES
    ]


def get_completion_stream() -> OpenAICompletionStream:
    return OpenAICompletionStream(get_openai_client())


def get_text_model() -> Model:
    """Get the pydantic-ai model used by the non-streaming agents."""
    settings = get_settings()
    provider = OpenAIProvider(openai_client=get_openai_client())
    logger.info(f"Using text model: {settings.LLM_TEXT_MODEL}")
    return OpenAIChatModel(settings.LLM_TEXT_MODEL, provider=provider)
