"""Domain models for the streaming rephrase pipeline.

* ModelCandidate   - one entry of the ordered fallback list.
* GenerationBudget - token sizing for a single provider request.
* StreamSession    - all mutable state of one client request, owned by a
  single orchestrator run and discarded when the request ends.
* ContentDelta / UsageReport / Finish - events yielded by a completion stream.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum


class OutputMode(StrEnum):
    JSON = "json"
    TEXT = "text"


class FinishReason(StrEnum):
    STOP = "stop"
    LENGTH = "length"


class SessionStatus(StrEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"


@dataclass(frozen=True, slots=True)
class ModelCandidate:
    name: str
    output_mode: OutputMode = OutputMode.JSON
    temperature: float = 0.7

    @property
    def is_structured(self) -> bool:
        return self.output_mode is OutputMode.JSON


@dataclass(frozen=True, slots=True)
class GenerationBudget:
    """Token sizing derived from the current system and user prompts."""

    system_prompt_tokens: int
    user_prompt_tokens: int
    max_output_tokens: int

    @classmethod
    def for_prompts(
        cls, system_tokens: int, user_tokens: int, ceiling: int | None = None
    ) -> GenerationBudget:
        # Rephrased prose runs longer than its source and structured mode
        # repeats the source paragraphs, hence the generous multiplier.
        total_input = system_tokens + user_tokens
        max_output = math.ceil(
            (user_tokens * 2) + (total_input * 1.4) + (user_tokens * 1.4)
        )
        max_output = max(max_output, 1)
        if ceiling is not None:
            max_output = min(max_output, ceiling)
        return cls(
            system_prompt_tokens=system_tokens,
            user_prompt_tokens=user_tokens,
            max_output_tokens=max_output,
        )


# --------------------------------------------------------------------------- #
# Completion stream events
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class ContentDelta:
    fragment: str


@dataclass(frozen=True, slots=True)
class UsageReport:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True, slots=True)
class Finish:
    reason: FinishReason


StreamEvent = ContentDelta | UsageReport | Finish


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """Everything the invoker needs for one streaming provider call."""

    model: str
    system_prompt: str
    user_prompt: str
    temperature: float
    max_tokens: int
    output_mode: OutputMode
    response_schema: dict | None = None
    schema_name: str = "response"


# --------------------------------------------------------------------------- #
# Session state
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class StreamSession:
    """Mutable per-request state for one orchestrator run.

    `processed_count` counts what the current candidate has emitted; it drives
    the continuation prompt and is reset when the run falls back to another
    model. Records themselves are never kept.
    """

    user_id: str
    candidates: list[ModelCandidate]
    max_attempts_per_model: int = 3
    model_index: int = 0
    attempt: int = 0
    user_prompt: str = ""
    budget: GenerationBudget | None = None
    processed_count: int = 0
    emitted_total: int = 0
    status: SessionStatus = SessionStatus.PENDING
    error_message: str | None = None

    @property
    def current_candidate(self) -> ModelCandidate | None:
        if self.model_index < len(self.candidates):
            return self.candidates[self.model_index]
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status is not SessionStatus.PENDING

    def start_candidate(self, user_prompt: str, budget: GenerationBudget) -> None:
        """Reset per-candidate state; each candidate restarts from the full request."""
        self.attempt = 1
        self.processed_count = 0
        self.user_prompt = user_prompt
        self.budget = budget

    def start_retry(self, user_prompt: str, budget: GenerationBudget) -> None:
        self.attempt += 1
        self.user_prompt = user_prompt
        self.budget = budget

    def advance_candidate(self) -> bool:
        """Move to the next candidate; return False when none remain."""
        self.model_index += 1
        return self.model_index < len(self.candidates)

    def record_emitted(self) -> None:
        self.processed_count += 1
        self.emitted_total += 1
