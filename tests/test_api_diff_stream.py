"""API tests for the streaming diff checker."""

from __future__ import annotations

import json
from collections.abc import Iterator

import pytest
from fastapi import status
from httpx import AsyncClient

from dependencies.ai import get_candidates, get_invoker
from main import app
from services.ai.exceptions import ModelInvocationError
from tests.fixtures.ai_fixtures import (
    PRIMARY,
    TEXT_FALLBACK,
    ScriptedCompletionStream,
    completed,
)


URL = "/api/v1/ai/diff-checker"
PAYLOAD = {
    "originalText": "The ship left at dawn.\n\nNo one waved.",
    "newText": "The ship slipped away at dawn.\n\nNobody waved goodbye.",
}


def _diff(new: str, original: str, diff: str) -> dict:
    return {"newParagraph": new, "originalParagraph": original, "diff": diff, "done": False}


@pytest.fixture
def scripted() -> Iterator[ScriptedCompletionStream]:
    invoker = ScriptedCompletionStream({})
    app.dependency_overrides[get_invoker] = lambda: invoker
    app.dependency_overrides[get_candidates] = lambda: [PRIMARY, TEXT_FALLBACK]
    yield invoker
    app.dependency_overrides.pop(get_invoker, None)
    app.dependency_overrides.pop(get_candidates, None)


@pytest.mark.asyncio
async def test_streams_diff_records(async_client: AsyncClient, scripted) -> None:
    records = [
        _diff("The ship slipped away at dawn.", "The ship left at dawn.", "left -> slipped away"),
        _diff("Nobody waved goodbye.", "No one waved.", "No one -> Nobody; added goodbye"),
    ]
    scripted.scripts[PRIMARY.name] = [completed(json.dumps({"diffs": records}), chunk_size=5)]

    resp = await async_client.post(URL, json=PAYLOAD)

    assert resp.status_code == status.HTTP_200_OK
    body = [json.loads(line) for line in resp.text.splitlines() if line]
    assert body == [*records, {"done": True}]

    (request,) = scripted.requests
    assert request.schema_name == "diff_response"
    assert "<newText>\nThe ship slipped away at dawn.\n\nNobody waved goodbye.\n</newText>" in (
        request.user_prompt
    )


@pytest.mark.asyncio
async def test_text_fallback_wraps_whole_texts(async_client: AsyncClient, scripted) -> None:
    scripted.scripts[PRIMARY.name] = [ModelInvocationError(PRIMARY.name)]
    scripted.scripts[TEXT_FALLBACK.name] = [completed("Both paragraphs were reworded.")]

    resp = await async_client.post(URL, json=PAYLOAD)

    body = [json.loads(line) for line in resp.text.splitlines() if line]
    assert body == [
        _diff(PAYLOAD["newText"], PAYLOAD["originalText"], "Both paragraphs were reworded."),
        {"done": True},
    ]


@pytest.mark.asyncio
async def test_model_done_flag_never_ends_the_stream(
    async_client: AsyncClient, scripted
) -> None:
    early = {
        **_diff("The ship slipped away at dawn.", "The ship left at dawn.", "reworded"),
        "done": True,
    }
    later = _diff("Nobody waved goodbye.", "No one waved.", "reworded")
    scripted.scripts[PRIMARY.name] = [completed(json.dumps({"diffs": [early, later]}))]

    resp = await async_client.post(URL, json=PAYLOAD)

    body = [json.loads(line) for line in resp.text.splitlines() if line]
    assert [item["done"] for item in body] == [False, False, True]
    assert body[-1] == {"done": True}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"originalText": "", "newText": "x"},
        {"originalText": "x", "newText": "   "},
        {"originalText": "x"},
    ],
)
async def test_empty_texts_rejected(async_client: AsyncClient, scripted, payload) -> None:
    resp = await async_client.post(URL, json=payload)

    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT
    assert scripted.requests == []
