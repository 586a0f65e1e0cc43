"""Tests for settings parsing and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import DEFAULT_MODEL_CANDIDATES, Settings
from services.ai.model_factory import get_model_candidates
from services.ai.models import OutputMode


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, SECRET_KEY="k", **overrides)  # type: ignore[call-arg]


def test_defaults():
    settings = _settings()
    assert settings.LLM_MAX_ATTEMPTS_PER_MODEL == 3
    assert settings.LLM_MAX_OUTPUT_TOKENS == 8192
    assert settings.LLM_MODEL_CANDIDATES == DEFAULT_MODEL_CANDIDATES


def test_cors_origins_from_csv():
    settings = _settings(CORS_ORIGINS="https://a.test, https://b.test")
    assert settings.CORS_ORIGINS == ["https://a.test", "https://b.test"]


def test_cors_origins_from_json():
    settings = _settings(CORS_ORIGINS='["https://a.test"]')
    assert settings.CORS_ORIGINS == ["https://a.test"]


def test_wildcard_with_credentials_is_rejected():
    with pytest.raises(ValidationError):
        _settings(CORS_ORIGINS="*", ALLOW_CREDENTIALS=True)


def test_model_candidates_from_env(monkeypatch):
    monkeypatch.setenv(
        "LLM_MODEL_CANDIDATES",
        '[{"name": "a", "output_mode": "json"}, {"name": "b", "output_mode": "text"}]',
    )
    settings = _settings()
    assert [c.name for c in settings.LLM_MODEL_CANDIDATES] == ["a", "b"]


def test_empty_candidate_list_is_rejected():
    with pytest.raises(ValidationError):
        _settings(LLM_MODEL_CANDIDATES=[])


def test_max_attempts_must_be_positive():
    with pytest.raises(ValidationError):
        _settings(LLM_MAX_ATTEMPTS_PER_MODEL=0)


def test_candidates_convert_to_domain_objects(monkeypatch):
    settings = _settings()
    monkeypatch.setattr("services.ai.model_factory.get_settings", lambda: settings)

    candidates = get_model_candidates()

    assert [c.name for c in candidates] == [c.name for c in DEFAULT_MODEL_CANDIDATES]
    assert candidates[-1].output_mode is OutputMode.TEXT
    assert candidates[0].is_structured
