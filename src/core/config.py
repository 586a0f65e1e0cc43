"""Application settings, CORS and language-model configuration."""

import json
import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelCandidateSettings(BaseModel):
    """One entry of the ordered model fallback list."""

    name: str = Field(..., min_length=1)
    output_mode: Literal["json", "text"] = "json"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


DEFAULT_MODEL_CANDIDATES: list[ModelCandidateSettings] = [
    ModelCandidateSettings(
        name="meta-llama/Llama-3.3-70B-Instruct-Turbo",
        output_mode="json",
        temperature=0.7,
    ),
    ModelCandidateSettings(
        name="Qwen/Qwen2.5-72B-Instruct-Turbo",
        output_mode="json",
        temperature=0.7,
    ),
    ModelCandidateSettings(
        name="mistralai/Mixtral-8x7B-Instruct-v0.1",
        output_mode="text",
        temperature=0.7,
    ),
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "Manuscript AI"
    ENVIRONMENT: str = "development"  # development | production | test

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Language model provider (any OpenAI-compatible chat completions API)
    LLM_API_KEY: str | None = None
    LLM_BASE_URL: str | None = "https://api.together.xyz/v1"
    LLM_REQUEST_TIMEOUT_SECONDS: float = 120.0

    # Ordered fallback list for the streaming features; first entry is primary
    LLM_MODEL_CANDIDATES: list[ModelCandidateSettings] = DEFAULT_MODEL_CANDIDATES
    LLM_MAX_ATTEMPTS_PER_MODEL: int = Field(default=3, ge=1)
    # Hard ceiling for max_tokens on any single streaming request
    LLM_MAX_OUTPUT_TOKENS: int = Field(default=8192, ge=1)

    # Model used by the non-streaming pydantic-ai agents
    LLM_TEXT_MODEL: str = "meta-llama/Llama-3.3-70B-Instruct-Turbo"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @field_validator("LLM_MODEL_CANDIDATES")
    @classmethod
    def _require_candidates(
        cls, v: list[ModelCandidateSettings]
    ) -> list[ModelCandidateSettings]:
        if not v:
            raise ValueError("LLM_MODEL_CANDIDATES must list at least one model")
        return v

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""
    if env_file and not os.path.exists(env_file):  # pragma: no cover
        if env == "development":
            os.environ.setdefault("SECRET_KEY", "dev-test-secret")
    if env == "production":
        sec = os.getenv("SECRET_KEY")
        if not sec or sec == "dev-test-secret":
            raise RuntimeError("SECRET_KEY must be set to a secure value in production")

    # `_env_file` is a runtime-only pydantic-settings kwarg mypy does not know.
    return Settings(_env_file=env_file)  # type: ignore[call-arg]
