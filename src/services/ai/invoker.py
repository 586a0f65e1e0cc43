"""Streaming chat-completion invoker for OpenAI-compatible providers.

The orchestrator only sees `StreamEvent`s; every provider-specific detail
(chunk shape, finish-reason vocabulary, SDK exceptions) stays in this module.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx
import openai
from openai import AsyncOpenAI

from services.ai.exceptions import ModelInvocationError
from services.ai.models import (
    CompletionRequest,
    ContentDelta,
    Finish,
    FinishReason,
    OutputMode,
    StreamEvent,
    UsageReport,
)


logger = logging.getLogger(__name__)

# Providers disagree on what a normal stop is called
STOP_REASONS = frozenset({"stop", "eos", "end_turn"})
LENGTH_REASONS = frozenset({"length"})


class CompletionStreamProtocol(Protocol):
    """Capability the orchestrator depends on: one streaming model call."""

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]: ...


def map_finish_reason(model: str, reason: str) -> FinishReason:
    if reason in STOP_REASONS:
        return FinishReason.STOP
    if reason in LENGTH_REASONS:
        return FinishReason.LENGTH
    raise ModelInvocationError(model, f"unsupported finish reason '{reason}'")


def build_messages(request: CompletionRequest) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": request.system_prompt},
        {"role": "user", "content": request.user_prompt},
    ]


def build_create_kwargs(request: CompletionRequest) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": request.model,
        "messages": build_messages(request),
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
        "stream": True,
        "stream_options": {"include_usage": True},
    }
    if request.output_mode is OutputMode.JSON and request.response_schema:
        kwargs["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": request.schema_name,
                "schema": request.response_schema,
            },
        }
    return kwargs


class OpenAICompletionStream:
    """`CompletionStreamProtocol` over `AsyncOpenAI.chat.completions`."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        try:
            response = await self._client.chat.completions.create(
                **build_create_kwargs(request)
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise ModelInvocationError(request.model, str(exc)) from exc

        try:
            async for chunk in response:
                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    yield UsageReport(
                        prompt_tokens=usage.prompt_tokens or 0,
                        completion_tokens=usage.completion_tokens or 0,
                        total_tokens=usage.total_tokens or 0,
                    )
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                content = choice.delta.content if choice.delta else None
                if content:
                    yield ContentDelta(content)
                if choice.finish_reason:
                    yield Finish(map_finish_reason(request.model, choice.finish_reason))
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise ModelInvocationError(request.model, str(exc)) from exc
        finally:
            await response.close()
