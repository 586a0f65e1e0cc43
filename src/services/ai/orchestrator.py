"""Retry/fallback orchestration for the streaming writing features.

One `RetryFallbackOrchestrator.run` drives a `StreamSession` through its
candidate models and yields validated records as soon as the extractor
completes them. Terminal status lands on the session; the forwarder turns it
into the done or error marker.

Per attempt:
  * finish(stop), or a structured stream with no finish signal: succeeded.
  * finish(length) on a structured candidate with attempts left and
    unprocessed paragraphs: retry the same model over the remainder.
  * anything else, including provider errors and an empty text-mode
    response: fall back to the next candidate with the full prompt.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from enum import StrEnum

from pydantic import BaseModel

from core.error_handler import structured_logger
from services.ai.credits import CreditAccountant
from services.ai.exceptions import (
    CandidatesExhausted,
    ClientDisconnected,
    ModelInvocationError,
    NoCandidatesConfigured,
)
from services.ai.invoker import CompletionStreamProtocol
from services.ai.models import (
    CompletionRequest,
    ContentDelta,
    Finish,
    FinishReason,
    GenerationBudget,
    ModelCandidate,
    SessionStatus,
    StreamSession,
    UsageReport,
)
from services.ai.prompts import PromptBuilder
from services.ai.record_extractor import Extractor, RecordExtractor, TextCollector
from services.ai.token_estimator import estimate_tokens


logger = logging.getLogger(__name__)

IsDisconnected = Callable[[], Awaitable[bool]]

FATAL_MESSAGE = "An unexpected error occurred while generating the response"


class _Outcome(StrEnum):
    SUCCEEDED = "succeeded"
    RETRY = "retry"
    FALLBACK = "fallback"


def make_extractor(candidate: ModelCandidate, builder: PromptBuilder) -> Extractor:
    if candidate.is_structured:
        return RecordExtractor(builder.record_model)
    return TextCollector(builder.text_record)


class RetryFallbackOrchestrator:
    """Sequential attempts over an ordered candidate list."""

    def __init__(
        self,
        invoker: CompletionStreamProtocol,
        credits: CreditAccountant,
        max_output_tokens: int | None = None,
    ) -> None:
        self._invoker = invoker
        self._credits = credits
        self._max_output_tokens = max_output_tokens

    def _budget(self, system_prompt: str, user_prompt: str) -> GenerationBudget:
        return GenerationBudget.for_prompts(
            estimate_tokens(system_prompt),
            estimate_tokens(user_prompt),
            ceiling=self._max_output_tokens,
        )

    def _start_candidate(self, session: StreamSession, builder: PromptBuilder) -> None:
        candidate = session.current_candidate
        assert candidate is not None
        prompts = builder.build(candidate.output_mode)
        session.start_candidate(
            prompts.user_prompt,
            self._budget(prompts.system_prompt, prompts.user_prompt),
        )

    def _request(
        self, session: StreamSession, builder: PromptBuilder
    ) -> CompletionRequest:
        candidate = session.current_candidate
        assert candidate is not None and session.budget is not None
        return CompletionRequest(
            model=candidate.name,
            system_prompt=builder.system_prompt(candidate.output_mode),
            user_prompt=session.user_prompt,
            temperature=candidate.temperature,
            max_tokens=session.budget.max_output_tokens,
            output_mode=candidate.output_mode,
            response_schema=builder.response_schema() if candidate.is_structured else None,
            schema_name=f"{builder.feature}_response",
        )

    @staticmethod
    async def _ensure_connected(is_disconnected: IsDisconnected | None) -> None:
        if is_disconnected is not None and await is_disconnected():
            raise ClientDisconnected()

    async def run(
        self,
        session: StreamSession,
        builder: PromptBuilder,
        is_disconnected: IsDisconnected | None = None,
    ) -> AsyncIterator[BaseModel]:
        if session.current_candidate is None:
            session.status = SessionStatus.EXHAUSTED
            session.error_message = NoCandidatesConfigured().message
            structured_logger.error(
                "No candidate models configured", feature=builder.feature
            )
            return

        try:
            self._start_candidate(session, builder)
            while not session.is_terminal:
                await self._ensure_connected(is_disconnected)
                outcome = _Outcome.FALLBACK
                async with aclosing(
                    self._attempt(session, builder, is_disconnected)
                ) as items:
                    async for item in items:
                        if isinstance(item, _Outcome):
                            outcome = item
                        else:
                            yield item
                self._transition(session, builder, outcome)
        except ClientDisconnected:
            session.status = SessionStatus.FATAL
            session.error_message = ClientDisconnected().message
            structured_logger.info(
                "Client disconnected; stopping generation",
                feature=builder.feature,
                records=session.emitted_total,
            )
            raise
        except Exception:
            session.status = SessionStatus.FATAL
            session.error_message = FATAL_MESSAGE
            structured_logger.exception(
                "Unexpected failure during streamed generation",
                feature=builder.feature,
                model=getattr(session.current_candidate, "name", None),
                attempt=session.attempt,
            )

    async def _attempt(
        self,
        session: StreamSession,
        builder: PromptBuilder,
        is_disconnected: IsDisconnected | None,
    ) -> AsyncIterator[BaseModel | _Outcome]:
        """Run one provider call; yields records, then exactly one outcome."""
        candidate = session.current_candidate
        assert candidate is not None
        request = self._request(session, builder)
        extractor = make_extractor(candidate, builder)
        finish: FinishReason | None = None
        emitted = 0

        structured_logger.info(
            "Starting model attempt",
            feature=builder.feature,
            model=candidate.name,
            attempt=session.attempt,
            mode=candidate.output_mode.value,
            max_output=request.max_tokens,
        )
        try:
            async with aclosing(self._invoker.stream(request)) as events:
                async for event in events:
                    if isinstance(event, ContentDelta):
                        for record in extractor.feed(event.fragment):
                            session.record_emitted()
                            emitted += 1
                            yield record
                            await self._ensure_connected(is_disconnected)
                    elif isinstance(event, UsageReport):
                        self._credits.schedule(session.user_id, event)
                    elif isinstance(event, Finish):
                        # Keep draining: usage arrives after the finish chunk
                        finish = event.reason
        except ModelInvocationError as exc:
            structured_logger.warning(
                "Model attempt failed",
                feature=builder.feature,
                model=candidate.name,
                attempt=session.attempt,
                error_code=exc.error_code,
                error=exc.message,
            )
            yield _Outcome.FALLBACK
            return

        for record in extractor.finish():
            session.record_emitted()
            emitted += 1
            yield record
            await self._ensure_connected(is_disconnected)

        structured_logger.info(
            "Model attempt finished",
            feature=builder.feature,
            model=candidate.name,
            attempt=session.attempt,
            finish=finish.value if finish else None,
            records=emitted,
        )

        if not candidate.is_structured:
            # Text mode accepts whatever arrived, truncated or not
            yield _Outcome.SUCCEEDED if emitted else _Outcome.FALLBACK
        elif finish is FinishReason.LENGTH:
            yield _Outcome.RETRY
        else:
            yield _Outcome.SUCCEEDED

    def _transition(
        self, session: StreamSession, builder: PromptBuilder, outcome: _Outcome
    ) -> None:
        if outcome is _Outcome.SUCCEEDED:
            session.status = SessionStatus.SUCCEEDED
            structured_logger.info(
                "Streamed generation succeeded",
                feature=builder.feature,
                records=session.emitted_total,
            )
            return

        if (
            outcome is _Outcome.RETRY
            and session.attempt < session.max_attempts_per_model
        ):
            remaining_prompt = builder.continuation(session.processed_count)
            if remaining_prompt is not None:
                candidate = session.current_candidate
                assert candidate is not None
                session.start_retry(
                    remaining_prompt,
                    self._budget(
                        builder.system_prompt(candidate.output_mode), remaining_prompt
                    ),
                )
                structured_logger.info(
                    "Output truncated; continuing with unprocessed paragraphs",
                    feature=builder.feature,
                    model=candidate.name,
                    attempt=session.attempt,
                    processed=session.processed_count,
                )
                return

        failed = session.current_candidate
        if session.advance_candidate():
            self._start_candidate(session, builder)
            structured_logger.warning(
                "Falling back to next candidate model",
                feature=builder.feature,
                failed_model=failed.name if failed else None,
                model=session.current_candidate.name if session.current_candidate else None,
            )
            return

        session.status = SessionStatus.EXHAUSTED
        session.error_message = CandidatesExhausted().message
        structured_logger.error(
            "All candidate models failed",
            feature=builder.feature,
            records=session.emitted_total,
        )
