"""Shared test fixtures for pytest.

We set minimal env defaults (SECRET_KEY, ENVIRONMENT) early so importing
modules that instantiate settings succeeds without an external .env file.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic_ai import models


os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["ENVIRONMENT"] = "test"

from dependencies.auth import get_current_user  # noqa: E402
from main import app  # noqa: E402
from schemas.auth import CurrentUser  # noqa: E402
from schemas.rephrase import RephraseRequest  # noqa: E402
from services.ai.credits import CreditAccountant  # noqa: E402
from services.ai.models import ModelCandidate  # noqa: E402
from tests.fixtures.ai_fixtures import (  # noqa: E402
    PRIMARY,
    SECONDARY,
    TEXT_FALLBACK,
    RecordingLedger,
)


# Block any real model requests in tests
models.ALLOW_MODEL_REQUESTS = False

TEST_USER = CurrentUser(id="user-123", email="writer@example.test")


async def _override_get_current_user() -> CurrentUser:
    return TEST_USER


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Async client with auth overridden to a fixed user."""
    app.dependency_overrides[get_current_user] = _override_get_current_user
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def no_auth_client() -> AsyncGenerator[AsyncClient, None]:
    """Async client exercising the real authentication dependency."""
    original = dict(app.dependency_overrides)
    app.dependency_overrides.pop(get_current_user, None)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides = original


@pytest.fixture
def three_paragraph_request() -> RephraseRequest:
    return RephraseRequest(
        text_to_rephrase=[
            "The rain fell on the harbour.",
            "Mara watched the ships come in.",
            "Nobody spoke of the storm.",
        ],
        text_before="Chapter one ended at dusk.",
        custom_instructions="Keep it melancholic.",
    )


@pytest.fixture
def candidates() -> list[ModelCandidate]:
    return [PRIMARY, SECONDARY, TEXT_FALLBACK]


@pytest.fixture
def ledger() -> RecordingLedger:
    return RecordingLedger()


@pytest.fixture
def accountant(ledger: RecordingLedger) -> CreditAccountant:
    return CreditAccountant(ledger)
