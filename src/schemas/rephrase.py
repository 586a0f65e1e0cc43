"""Schemas for the AI writing features (rephrase, diff checker).

Wire format is camelCase to match the authoring frontend; Python attributes
stay snake_case. Request models are frozen: once a request is accepted it is
shared read-only by the prompt builder and the orchestrator.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class PromptContext(_CamelModel):
    """Auxiliary context entry (character sheet, world note, ...)."""

    context_type: str
    id: str
    prompt: str


class RephraseRequest(_CamelModel):
    """Paragraphs to rephrase plus optional surrounding context."""

    text_to_rephrase: list[str] = Field(
        ...,
        min_length=1,
        description="Ordered paragraphs to rephrase; order is significant",
    )
    text_before: str | None = Field(default=None, description="Text preceding the selection")
    text_after: str | None = Field(default=None, description="Text following the selection")
    custom_instructions: str | None = Field(default=None, max_length=4000)
    prompt_contexts: list[PromptContext] | None = None


class DiffCheckRequest(_CamelModel):
    """Two versions of a passage to compare paragraph by paragraph."""

    original_text: str = Field(..., min_length=1)
    new_text: str = Field(..., min_length=1)

    @field_validator("original_text", "new_text")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must contain text")
        return v


# --------------------------------------------------------------------------- #
# Streamed records
# --------------------------------------------------------------------------- #


class RephrasedParagraph(_CamelModel):
    """One rephrased paragraph and the original paragraphs it replaces."""

    rephrased_paragraph_index: int
    rephrased_paragraph_content: str
    original_paragraph_contents: list[str]


class RephraseResponseFormat(_CamelModel):
    """Top-level object the model is constrained to in JSON output mode."""

    rephrased_paragraphs: list[RephrasedParagraph]


class DiffRecord(_CamelModel):
    """Differences between one new paragraph and its original counterpart."""

    new_paragraph: str
    original_paragraph: str
    diff: str
    done: bool = False

    @field_validator("done", mode="before")
    @classmethod
    def _never_done(cls, v: object) -> bool:
        # `{"done": true}` is reserved for the end-of-stream marker
        return False


class DiffResponseFormat(_CamelModel):
    diffs: list[DiffRecord]


# --------------------------------------------------------------------------- #
# Non-streaming responses
# --------------------------------------------------------------------------- #


class RephraseTextResponse(_CamelModel):
    rephrased_text: str


class ParagraphMapping(_CamelModel):
    """A rephrased paragraph paired with the original text it came from."""

    rephrased_paragraph: str
    original_paragraph: str
