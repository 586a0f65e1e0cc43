"""Prompt construction for the streaming writing features.

A builder turns one accepted request into a system prompt (static feature
instructions + the author's instructions and context + an output-format
section for the candidate's output mode) and a user prompt that wraps the
paragraphs being processed. After a truncated attempt it rebuilds the user
prompt over the paragraphs that have not been processed yet.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import ClassVar

from pydantic import BaseModel

from schemas.rephrase import (
    DiffCheckRequest,
    DiffRecord,
    DiffResponseFormat,
    RephrasedParagraph,
    RephraseRequest,
    RephraseResponseFormat,
)
from services.ai.models import OutputMode


_PARAGRAPH_BREAK = re.compile(r"\r?\n\r?\n")
_BLANK_LINE_RUNS = re.compile(r"\n\n+")


def split_into_paragraphs(text: str) -> list[str]:
    """Split text on blank lines, dropping empty paragraphs."""
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def normalize_paragraph_breaks(text: str) -> str:
    return _BLANK_LINE_RUNS.sub("\n\n", text).strip()


@dataclass(frozen=True, slots=True)
class PromptSet:
    system_prompt: str
    user_prompt: str


REPHRASE_INSTRUCTIONS = """You are a master storyteller and a world-class literary editor. \
Your task is to elevate a piece of writing by rephrasing it.

Work through the author's text paragraph by paragraph and sentence by sentence.
Your rephrasing should:
1. Enrich the language with more evocative vocabulary and varied sentence structure.
2. Improve the rhythm, flow and clarity of the prose.
3. Preserve the plot, character intentions and key details. Never add plot points or characters.
4. Rephrase paragraph by paragraph; each rephrased paragraph corresponds to the original paragraph(s) it replaces.
5. Keep the original meaning and intent.
6. Use <textBefore> and <textAfter>, when provided, only as context. Do not rephrase them.
7. Never skip a paragraph and never return a paragraph unchanged.
8. Do not make the text overly complex or hard to read."""

DIFF_INSTRUCTIONS = """You are an expert text analysis AI. Compare two versions of a text \
paragraph by paragraph.

The original version is inside <originalText></originalText> and the new version \
inside <newText></newText>.

For each paragraph of the new version, find the corresponding paragraph of the \
original version and describe the additions, deletions and modifications between them.

Do not include reasoning, explanations or summaries outside the requested output."""

JSON_OUTPUT_SECTION = """Output format:
Return a single JSON object matching the provided schema. Emit one array entry per \
processed paragraph, in the order the paragraphs appear, with no text outside the JSON."""

REPHRASE_TEXT_OUTPUT_SECTION = """Output format:
Return ONLY the final rephrased paragraphs separated by double line breaks, with no \
explanations."""

DIFF_TEXT_OUTPUT_SECTION = """Output format:
Return a plain-text description of the differences, one paragraph per compared \
paragraph, separated by double line breaks."""


class PromptBuilder(ABC):
    """Feature-specific prompt construction over an ordered paragraph list."""

    feature: ClassVar[str]
    # Shape of one streamed record, and of the object the model is constrained
    # to in JSON output mode.
    record_model: ClassVar[type[BaseModel]]
    response_model: ClassVar[type[BaseModel]]
    text_output_section: ClassVar[str]

    def __init__(self) -> None:
        self._system_prompts: dict[OutputMode, str] = {}

    @property
    @abstractmethod
    def paragraphs(self) -> list[str]:
        """Ordered input paragraphs; continuation prompts slice this list."""

    @abstractmethod
    def instructions(self) -> str:
        """Static feature instructions plus request-specific context."""

    @abstractmethod
    def user_prompt(self, paragraphs: Sequence[str]) -> str: ...

    @abstractmethod
    def text_record(self, text: str) -> BaseModel:
        """Wrap a whole free-text response as a single record."""

    def system_prompt(self, mode: OutputMode) -> str:
        if mode not in self._system_prompts:
            section = (
                JSON_OUTPUT_SECTION if mode is OutputMode.JSON else self.text_output_section
            )
            self._system_prompts[mode] = f"{self.instructions()}\n\n{section}"
        return self._system_prompts[mode]

    def build(self, mode: OutputMode) -> PromptSet:
        return PromptSet(
            system_prompt=self.system_prompt(mode),
            user_prompt=self.user_prompt(self.paragraphs),
        )

    def continuation(self, processed_count: int) -> str | None:
        """User prompt over the unprocessed suffix, or None when nothing remains.

        Progress is tracked by how many records were emitted, not by which
        paragraphs they cite.
        """
        remaining = self.paragraphs[processed_count:]
        if not remaining:
            return None
        return self.user_prompt(remaining)

    def response_schema(self) -> dict:
        return self.response_model.model_json_schema(by_alias=True)


def _or_none(value: str | None) -> str:
    return value if value and value.strip() else "None"


class RephrasePromptBuilder(PromptBuilder):
    feature = "rephrase"
    record_model = RephrasedParagraph
    response_model = RephraseResponseFormat
    text_output_section = REPHRASE_TEXT_OUTPUT_SECTION

    def __init__(self, request: RephraseRequest) -> None:
        super().__init__()
        self._request = request

    @property
    def paragraphs(self) -> list[str]:
        return list(self._request.text_to_rephrase)

    def instructions(self) -> str:
        req = self._request
        contexts = "None"
        if req.prompt_contexts:
            contexts = "\n".join(
                f"Type: {ctx.context_type}, ID: {ctx.id}, Prompt: {ctx.prompt}"
                for ctx in req.prompt_contexts
            )
        return (
            f"{REPHRASE_INSTRUCTIONS}\n\n"
            f"Additional Instructions:\n{_or_none(req.custom_instructions)}\n\n"
            "Context:\n"
            f"<textBefore>\n{_or_none(req.text_before)}\n</textBefore>\n"
            f"<textAfter>\n{_or_none(req.text_after)}\n</textAfter>\n\n"
            f"Other Context:\n{contexts}"
        )

    def user_prompt(self, paragraphs: Sequence[str]) -> str:
        joined = "\n\n".join(paragraphs)
        return f"<originalText>{joined}</originalText>"

    def text_record(self, text: str) -> RephrasedParagraph:
        return RephrasedParagraph(
            rephrased_paragraph_index=1,
            rephrased_paragraph_content=text,
            original_paragraph_contents=self.paragraphs,
        )


class DiffPromptBuilder(PromptBuilder):
    feature = "diff"
    record_model = DiffRecord
    response_model = DiffResponseFormat
    text_output_section = DIFF_TEXT_OUTPUT_SECTION

    def __init__(self, request: DiffCheckRequest) -> None:
        super().__init__()
        self._request = request
        self._paragraphs = split_into_paragraphs(request.new_text)

    @property
    def paragraphs(self) -> list[str]:
        return list(self._paragraphs)

    def instructions(self) -> str:
        return DIFF_INSTRUCTIONS

    def user_prompt(self, paragraphs: Sequence[str]) -> str:
        joined = "\n\n".join(paragraphs)
        return (
            f"<originalText>\n{self._request.original_text}\n</originalText>\n\n"
            f"<newText>\n{joined}\n</newText>"
        )

    def text_record(self, text: str) -> DiffRecord:
        return DiffRecord(
            new_paragraph=self._request.new_text,
            original_paragraph=self._request.original_text,
            diff=text,
        )
