"""AI writing endpoints: streamed rephrase and diff, plus one-shot rephrase."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from core.config import get_settings
from dependencies.ai import AgentModelDep, CandidatesDep, OrchestratorDep
from dependencies.auth import CurrentUserDep
from schemas.api import ApiResponse
from schemas.auth import CurrentUser
from schemas.rephrase import (
    DiffCheckRequest,
    ParagraphMapping,
    RephraseRequest,
    RephraseTextResponse,
)
from services.ai.agents import map_rephrased_to_original, rephrase_text
from services.ai.forwarder import StreamForwarder, negotiate_framing
from services.ai.models import ModelCandidate, StreamSession
from services.ai.orchestrator import RetryFallbackOrchestrator
from services.ai.prompts import DiffPromptBuilder, PromptBuilder, RephrasePromptBuilder


__all__ = [
    "diff_checker_stream",
    "rephrase",
    "rephrase_mapped",
    "rephrase_stream",
]


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

# Proxies in front of the API must not buffer the stream
STREAM_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def _stream_response(
    builder: PromptBuilder,
    request: Request,
    current_user: CurrentUser,
    orchestrator: RetryFallbackOrchestrator,
    candidates: list[ModelCandidate],
) -> StreamingResponse:
    settings = get_settings()
    session = StreamSession(
        user_id=current_user.id,
        candidates=list(candidates),
        max_attempts_per_model=settings.LLM_MAX_ATTEMPTS_PER_MODEL,
    )
    forwarder = StreamForwarder(negotiate_framing(request.headers.get("accept")))
    records = orchestrator.run(session, builder, is_disconnected=request.is_disconnected)
    return StreamingResponse(
        forwarder.forward(records, session),
        media_type=forwarder.media_type,
        headers=STREAM_HEADERS,
    )


@router.post(
    "/rephrase-stream",
    response_class=StreamingResponse,
    summary="Stream rephrased paragraphs as they are generated",
)
async def rephrase_stream(
    payload: RephraseRequest,
    request: Request,
    current_user: CurrentUserDep,
    orchestrator: OrchestratorDep,
    candidates: CandidatesDep,
) -> StreamingResponse:
    """Stream `{rephrasedParagraphIndex, rephrasedParagraphContent,
    originalParagraphContents}` records, then `{"done": true}` or a single
    `{"type": "error", "message": ...}` marker.

    NDJSON by default; SSE when the `Accept` header asks for
    `text/event-stream`.
    """
    logger.debug(
        "rephrase-stream request: %d paragraphs", len(payload.text_to_rephrase)
    )
    return _stream_response(
        RephrasePromptBuilder(payload), request, current_user, orchestrator, candidates
    )


@router.post(
    "/diff-checker",
    response_class=StreamingResponse,
    summary="Stream paragraph-level differences between two texts",
)
async def diff_checker_stream(
    payload: DiffCheckRequest,
    request: Request,
    current_user: CurrentUserDep,
    orchestrator: OrchestratorDep,
    candidates: CandidatesDep,
) -> StreamingResponse:
    return _stream_response(
        DiffPromptBuilder(payload), request, current_user, orchestrator, candidates
    )


@router.post("/rephrase", response_model=ApiResponse[RephraseTextResponse])
async def rephrase(
    payload: RephraseRequest,
    current_user: CurrentUserDep,
    model: AgentModelDep,
) -> ApiResponse[RephraseTextResponse]:
    """Rephrase in a single model call and return the whole text."""
    text = await rephrase_text(payload, model)
    return ApiResponse(
        success=True,
        data=RephraseTextResponse(rephrased_text=text),
        message="Text rephrased",
    )


@router.post("/rephrase-mapped", response_model=ApiResponse[list[ParagraphMapping]])
async def rephrase_mapped(
    payload: RephraseRequest,
    current_user: CurrentUserDep,
    model: AgentModelDep,
) -> ApiResponse[list[ParagraphMapping]]:
    """Rephrase, then pair each rephrased paragraph with its originals."""
    text = await rephrase_text(payload, model)
    mappings = await map_rephrased_to_original(
        list(payload.text_to_rephrase), text, model
    )
    return ApiResponse(success=True, data=mappings, message="Text rephrased")
