"""Tests for bearer-token authentication on the AI endpoints."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException, status
from httpx import AsyncClient

from core.security import create_access_token, decode_token
from dependencies.auth import get_current_user


URL = "/api/v1/ai/rephrase-stream"


class TestDecodeToken:
    def test_user_id_claim_is_subject(self):
        token = create_access_token({"userId": "u-1", "email": "a@example.test"})
        data = decode_token(token)
        assert data.sub == "u-1"
        assert data.email == "a@example.test"

    def test_standard_sub_claim_is_accepted(self):
        data = decode_token(create_access_token({"sub": "u-2"}))
        assert data.sub == "u-2"
        assert data.email is None

    def test_expired_token_is_rejected(self):
        token = create_access_token({"userId": "u-1"}, expires_delta=timedelta(seconds=-5))
        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED

    def test_token_without_subject_is_rejected(self):
        with pytest.raises(HTTPException):
            decode_token(create_access_token({"email": "a@example.test"}))

    def test_garbage_token_is_rejected(self):
        with pytest.raises(HTTPException):
            decode_token("not-a-jwt")


@pytest.mark.asyncio
async def test_get_current_user_without_token():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(None)
    assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.asyncio
async def test_get_current_user_resolves_claims():
    user = await get_current_user(create_access_token({"userId": "u-7"}))
    assert user.id == "u-7"


@pytest.mark.asyncio
async def test_missing_token_returns_401(no_auth_client: AsyncClient) -> None:
    resp = await no_auth_client.post(URL, json={"textToRephrase": ["One."]})
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_invalid_token_returns_401(no_auth_client: AsyncClient) -> None:
    resp = await no_auth_client.post(
        URL,
        json={"textToRephrase": ["One."]},
        headers={"Authorization": "Bearer forged.token.value"},
    )
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
