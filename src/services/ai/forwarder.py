"""Serialisation of streamed records onto the HTTP response.

Each record becomes one self-delimited chunk, written as soon as the
orchestrator yields it. The stream always ends with exactly one terminal
marker unless the client went away first.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from core.error_handler import structured_logger
from services.ai.exceptions import ClientDisconnected
from services.ai.models import SessionStatus, StreamSession
from services.ai.orchestrator import FATAL_MESSAGE


class Framing(StrEnum):
    NDJSON = "ndjson"
    SSE = "sse"


MEDIA_TYPES: dict[Framing, str] = {
    Framing.NDJSON: "application/json",
    Framing.SSE: "text/event-stream",
}


def negotiate_framing(accept: str | None) -> Framing:
    """SSE when the client asks for an event stream, NDJSON otherwise."""
    if accept and "text/event-stream" in accept.lower():
        return Framing.SSE
    return Framing.NDJSON


class StreamForwarder:
    def __init__(self, framing: Framing = Framing.NDJSON) -> None:
        self.framing = framing

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES[self.framing]

    def frame(self, payload: str) -> str:
        if self.framing is Framing.SSE:
            return f"data: {payload}\n\n"
        return f"{payload}\n"

    def _frame_json(self, data: dict[str, Any]) -> str:
        return self.frame(json.dumps(data))

    def encode(self, record: BaseModel) -> str:
        return self.frame(record.model_dump_json(by_alias=True))

    def done(self) -> str:
        return self._frame_json({"done": True})

    def error(self, message: str) -> str:
        return self._frame_json({"type": "error", "message": message})

    async def forward(
        self, records: AsyncIterator[BaseModel], session: StreamSession
    ) -> AsyncIterator[str]:
        try:
            async with aclosing(records) as stream:
                async for record in stream:
                    yield self.encode(record)
        except ClientDisconnected:
            # Nobody is listening for a terminal marker
            return
        except Exception:
            structured_logger.exception(
                "Failed to forward streamed records",
                records=session.emitted_total,
            )
            session.status = SessionStatus.FATAL
            session.error_message = FATAL_MESSAGE

        if session.status is SessionStatus.SUCCEEDED:
            yield self.done()
        else:
            yield self.error(session.error_message or FATAL_MESSAGE)
