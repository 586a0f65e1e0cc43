"""Test doubles and helpers for the streaming AI pipeline.

`ScriptedCompletionStream` replays a scripted list of attempts per model so
orchestrator and API tests never reach a provider. Each attempt is either a
list of stream events or an exception raised when the attempt starts (or,
for `FailAfter`, after some events were delivered).
"""

from __future__ import annotations

import json
from collections import defaultdict
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from services.ai.exceptions import ModelInvocationError
from services.ai.models import (
    CompletionRequest,
    ContentDelta,
    Finish,
    FinishReason,
    ModelCandidate,
    OutputMode,
    StreamEvent,
    UsageReport,
)


@dataclass
class FailAfter:
    """Deliver `events`, then raise `error` mid-stream."""

    events: list[StreamEvent]
    error: Exception


Attempt = list[StreamEvent] | Exception | FailAfter


@dataclass
class ScriptedCompletionStream:
    scripts: dict[str, list[Attempt]]
    requests: list[CompletionRequest] = field(default_factory=list)
    closed: int = 0
    _calls: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def requests_for(self, model: str) -> list[CompletionRequest]:
        return [r for r in self.requests if r.model == model]

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        attempts = self.scripts.get(request.model, [])
        index = self._calls[request.model]
        self._calls[request.model] += 1
        if index >= len(attempts):
            raise ModelInvocationError(request.model, "no scripted attempt left")
        attempt = attempts[index]
        if isinstance(attempt, Exception):
            raise attempt
        events = attempt.events if isinstance(attempt, FailAfter) else attempt
        try:
            for event in events:
                yield event
            if isinstance(attempt, FailAfter):
                raise attempt.error
        finally:
            self.closed += 1


class RecordingLedger:
    def __init__(self) -> None:
        self.updates: list[tuple[str, int, int, int]] = []

    async def update(
        self,
        user_id: str,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
    ) -> bool:
        self.updates.append((user_id, input_tokens, output_tokens, total_tokens))
        return True


# --------------------------------------------------------------------------- #
# Event builders
# --------------------------------------------------------------------------- #


def rephrase_record_json(index: int, content: str, originals: Sequence[str]) -> str:
    return json.dumps(
        {
            "rephrasedParagraphIndex": index,
            "rephrasedParagraphContent": content,
            "originalParagraphContents": list(originals),
        }
    )


def chunked(text: str, size: int) -> list[StreamEvent]:
    """Split `text` into content events of at most `size` characters."""
    return [ContentDelta(text[i : i + size]) for i in range(0, len(text), size)]


def structured_response(*records: str) -> str:
    return '{"rephrasedParagraphs": [' + ", ".join(records) + "]}"


def completed(
    text: str,
    reason: FinishReason = FinishReason.STOP,
    chunk_size: int = 7,
    usage: UsageReport | None = None,
) -> list[StreamEvent]:
    events: list[StreamEvent] = chunked(text, chunk_size)
    events.append(Finish(reason))
    if usage is not None:
        events.append(usage)
    return events


# --------------------------------------------------------------------------- #
# Candidates
# --------------------------------------------------------------------------- #


PRIMARY = ModelCandidate(name="primary-json", output_mode=OutputMode.JSON)
SECONDARY = ModelCandidate(name="secondary-json", output_mode=OutputMode.JSON)
TEXT_FALLBACK = ModelCandidate(name="fallback-text", output_mode=OutputMode.TEXT)

